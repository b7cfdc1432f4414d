"""Funnel metric definitions for one dimension-day.

Pure functions over the day's event rows. The aggregation service fetches the
rows for a window and hands them here, so the definitions can be tested without
a database.
"""

from __future__ import annotations

from collections.abc import Iterable

from recruit_stats.models.events import EventType
from recruit_stats.models.stats import DailyMetrics
from recruit_stats.types.database import EventMetricRowTD

BASIS_POINTS = 10000


def calculate_rate(numerator: int, denominator: int) -> int | None:
    """
    Ratio in basis points (85.5% -> 8550), None when the denominator is 0.

    Uses round-half-up to match PostgreSQL ROUND on numerics, so recomputing a
    rate from summed counts in SQL or Python gives the same integer.
    """
    if denominator == 0:
        return None
    return (numerator * BASIS_POINTS * 2 + denominator) // (denominator * 2)


def compute_daily_metrics(rows: Iterable[EventMetricRowTD]) -> DailyMetrics:
    """
    Compute every funnel count and rate from one window's events.

    Inbound candidates are people who messaged us: either a message_received
    event, or a message_sent that answered unread messages. proactive_responded
    joins outreach and inbound on candidate name, because outreach records the
    candidate's desired position while inbound records the chat's position,
    which gives the same person two candidate keys.
    """
    total_events = 0
    candidates: set[str] = set()
    sessions: set[str] = set()

    messages_sent = 0
    messages_received = 0
    inbound: set[str] = set()
    replied: set[str] = set()
    unread_replied = 0

    outreach: set[str] = set()
    contacted_names: set[str] = set()
    received_names: set[str] = set()

    wechat: set[str] = set()
    interviews: set[str] = set()
    hired: set[str] = set()

    for row in rows:
        event_type = EventType(row["event_type"])
        key = row["candidate_key"]
        unread_count = row["unread_count_before_reply"] or 0
        replied_to_unread = event_type is EventType.MESSAGE_SENT and bool(
            row["was_unread_before_reply"]
        )

        total_events += 1
        candidates.add(key)
        sessions.add(row["session_id"])

        match event_type:
            case EventType.MESSAGE_SENT:
                messages_sent += 1
                if replied_to_unread:
                    inbound.add(key)
                    replied.add(key)
                    unread_replied += unread_count
            case EventType.MESSAGE_RECEIVED:
                messages_received += unread_count
                inbound.add(key)
                if row["candidate_name"]:
                    received_names.add(row["candidate_name"])
            case EventType.CANDIDATE_CONTACTED:
                outreach.add(key)
                if row["candidate_name"]:
                    contacted_names.add(row["candidate_name"])
            case EventType.WECHAT_EXCHANGED:
                wechat.add(key)
            case EventType.INTERVIEW_BOOKED:
                interviews.add(key)
            case EventType.CANDIDATE_HIRED:
                hired.add(key)

    inbound_candidates = len(inbound)

    return DailyMetrics(
        total_events=total_events,
        unique_candidates=len(candidates),
        unique_sessions=len(sessions),
        messages_sent=messages_sent,
        messages_received=messages_received,
        inbound_candidates=inbound_candidates,
        candidates_replied=len(replied),
        unread_replied=unread_replied,
        proactive_outreach=len(outreach),
        proactive_responded=len(contacted_names & received_names),
        wechat_exchanged=len(wechat),
        interviews_booked=len(interviews),
        candidates_hired=len(hired),
        reply_rate=calculate_rate(len(replied), inbound_candidates),
        wechat_rate=calculate_rate(len(wechat), inbound_candidates),
        interview_rate=calculate_rate(len(interviews), inbound_candidates),
    )
