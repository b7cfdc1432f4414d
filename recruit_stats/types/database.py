"""Database record type definitions.

MAINTENANCE NOTE:
This file must be kept in sync with database/schema.sql manually.
Only rows that are fetched and converted to dicts in the service layer get a
type here. Use NotRequired for columns a query may leave out.
"""

from datetime import date, datetime
from typing import Any, NotRequired, TypedDict


class EventMetricRowTD(TypedDict):
    """Projection of recruitment_events read by the aggregation engine.

    Used in: services/events.py (fetch_events_for_window), services/metrics.py
    """

    candidate_key: str
    candidate_name: str | None
    session_id: str
    event_type: str
    was_unread_before_reply: bool
    unread_count_before_reply: int | None


class RecruitmentEventRecordTD(TypedDict):
    """Full record from recruitment_events table.

    Used in: services/events.py (find_by_session, find_by_candidate_key)
    """

    id: int
    agent_id: str
    candidate_key: str
    session_id: str
    event_type: str
    event_time: datetime
    candidate_name: NotRequired[str | None]
    candidate_position: NotRequired[str | None]
    brand_id: NotRequired[int | None]
    job_id: NotRequired[int | None]
    job_name: NotRequired[str | None]
    source_platform: str
    was_unread_before_reply: bool
    unread_count_before_reply: int
    message_sequence: NotRequired[int | None]
    event_details: dict[str, Any]
    api_source: str
    data_source: str
    created_at: NotRequired[datetime]


class DimensionRowTD(TypedDict):
    """Distinct (brand_id, job_id) pair observed on a day.

    Used in: services/events.py (get_distinct_dimensions), services/aggregation.py
    """

    brand_id: int | None
    job_id: int | None


class UnrepliedCandidateRowTD(TypedDict):
    """Inbound candidate with no qualifying reply.

    Used in: services/events.py (find_unreplied_candidates)
    """

    candidate_key: str
    candidate_name: str | None
    candidate_position: str | None
    agent_id: str
    source_platform: str | None
    last_message_time: datetime


class DailyStatsRecordTD(TypedDict):
    """Record from recruitment_daily_stats table.

    Used in: services/stats_store.py (get_stats, query_stats)
    """

    agent_id: str
    stat_date: date
    brand_id: int | None
    job_id: int | None
    total_events: int
    unique_candidates: int
    unique_sessions: int
    messages_sent: int
    messages_received: int
    inbound_candidates: int
    candidates_replied: int
    unread_replied: int
    proactive_outreach: int
    proactive_responded: int
    wechat_exchanged: int
    interviews_booked: int
    candidates_hired: int
    reply_rate: int | None
    wechat_rate: int | None
    interview_rate: int | None
    is_dirty: bool
    aggregated_at: NotRequired[datetime | None]
    updated_at: NotRequired[datetime | None]
