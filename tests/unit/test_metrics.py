"""Tests for funnel metric definitions (recruit_stats/services/metrics.py)."""

from __future__ import annotations

import pytest

from recruit_stats.models.events import EventType
from recruit_stats.services.metrics import calculate_rate, compute_daily_metrics
from recruit_stats.types.database import EventMetricRowTD


def row(
    event_type: EventType,
    candidate_key: str = "zhipin:Zhang San:Barista",
    candidate_name: str | None = "Zhang San",
    session_id: str = "s1",
    was_unread: bool = False,
    unread_count: int = 0,
) -> EventMetricRowTD:
    return EventMetricRowTD(
        candidate_key=candidate_key,
        candidate_name=candidate_name,
        session_id=session_id,
        event_type=event_type.value,
        was_unread_before_reply=was_unread,
        unread_count_before_reply=unread_count,
    )


@pytest.mark.parametrize(
    ("numerator", "denominator", "expected"),
    [
        (1, 1, 10000),
        (0, 5, 0),
        (1, 3, 3333),
        (2, 3, 6667),
        (171, 200, 8550),
        (1, 20000, 1),  # 0.5 bp rounds half up
    ],
)
def test_calculate_rate(numerator, denominator, expected):
    """Rates are basis points rounded half up."""
    assert calculate_rate(numerator, denominator) == expected


def test_calculate_rate_zero_denominator_is_none():
    """No denominator means no rate, not 0%."""
    assert calculate_rate(0, 0) is None
    assert calculate_rate(5, 0) is None


def test_empty_window_is_all_zero_with_null_rates():
    """A day without events recomputes to zeros and null rates."""
    metrics = compute_daily_metrics([])

    assert metrics.total_events == 0
    assert metrics.unique_candidates == 0
    assert metrics.inbound_candidates == 0
    assert metrics.reply_rate is None
    assert metrics.wechat_rate is None
    assert metrics.interview_rate is None


def test_unread_messages_then_reply():
    """Three unread messages answered by one reply."""
    metrics = compute_daily_metrics(
        [
            row(EventType.MESSAGE_RECEIVED, unread_count=3),
            row(EventType.MESSAGE_SENT, was_unread=True, unread_count=3),
        ]
    )

    assert metrics.total_events == 2
    assert metrics.messages_received == 3
    assert metrics.messages_sent == 1
    assert metrics.inbound_candidates == 1
    assert metrics.candidates_replied == 1
    assert metrics.unread_replied == 3
    assert metrics.reply_rate == 10000


def test_messages_received_sums_unread_counts():
    """messages_received is message volume, not event count."""
    metrics = compute_daily_metrics(
        [
            row(EventType.MESSAGE_RECEIVED, unread_count=2),
            row(EventType.MESSAGE_RECEIVED, unread_count=5),
        ]
    )

    assert metrics.messages_received == 7
    assert metrics.inbound_candidates == 1


def test_reply_without_unread_is_not_inbound():
    """A message_sent that did not answer unread messages is outbound chatter."""
    metrics = compute_daily_metrics([row(EventType.MESSAGE_SENT)])

    assert metrics.messages_sent == 1
    assert metrics.inbound_candidates == 0
    assert metrics.candidates_replied == 0
    assert metrics.unread_replied == 0
    assert metrics.reply_rate is None


def test_unread_reply_alone_counts_as_inbound():
    """A reply to unread messages implies the candidate wrote first."""
    metrics = compute_daily_metrics([row(EventType.MESSAGE_SENT, was_unread=True, unread_count=2)])

    assert metrics.inbound_candidates == 1
    assert metrics.candidates_replied == 1
    assert metrics.unread_replied == 2


def test_proactive_only_day_has_null_rates():
    """Outreach without any inbound leaves every rate null."""
    metrics = compute_daily_metrics(
        [
            row(EventType.CANDIDATE_CONTACTED, candidate_key="k1", candidate_name="A"),
            row(EventType.CANDIDATE_CONTACTED, candidate_key="k2", candidate_name="B"),
        ]
    )

    assert metrics.proactive_outreach == 2
    assert metrics.proactive_responded == 0
    assert metrics.inbound_candidates == 0
    assert metrics.reply_rate is None
    assert metrics.wechat_rate is None
    assert metrics.interview_rate is None


def test_proactive_responded_joins_on_candidate_name():
    """Outreach and inbound for the same person carry different keys but one name."""
    metrics = compute_daily_metrics(
        [
            row(
                EventType.CANDIDATE_CONTACTED,
                candidate_key="zhipin:Li Si:Cook",
                candidate_name="Li Si",
            ),
            row(
                EventType.MESSAGE_RECEIVED,
                candidate_key="zhipin:Li Si:Kitchen Helper",
                candidate_name="Li Si",
                unread_count=1,
            ),
            row(EventType.CANDIDATE_CONTACTED, candidate_key="k3", candidate_name="Wang Wu"),
        ]
    )

    assert metrics.proactive_outreach == 2
    assert metrics.proactive_responded == 1


def test_proactive_responded_ignores_missing_names():
    """Events without a name never match each other."""
    metrics = compute_daily_metrics(
        [
            row(EventType.CANDIDATE_CONTACTED, candidate_key="k1", candidate_name=None),
            row(EventType.MESSAGE_RECEIVED, candidate_key="k2", candidate_name=None),
        ]
    )

    assert metrics.proactive_responded == 0


def test_conversion_counts_are_distinct_candidates():
    """Repeated wechat/interview/hire events for one candidate count once."""
    metrics = compute_daily_metrics(
        [
            row(EventType.MESSAGE_RECEIVED, candidate_key="k1", unread_count=1),
            row(EventType.MESSAGE_RECEIVED, candidate_key="k2", unread_count=1),
            row(EventType.WECHAT_EXCHANGED, candidate_key="k1"),
            row(EventType.WECHAT_EXCHANGED, candidate_key="k1"),
            row(EventType.INTERVIEW_BOOKED, candidate_key="k1"),
            row(EventType.CANDIDATE_HIRED, candidate_key="k1"),
        ]
    )

    assert metrics.inbound_candidates == 2
    assert metrics.wechat_exchanged == 1
    assert metrics.interviews_booked == 1
    assert metrics.candidates_hired == 1
    assert metrics.wechat_rate == 5000
    assert metrics.interview_rate == 5000


def test_unique_counts():
    """unique_candidates and unique_sessions count distinct keys and sessions."""
    metrics = compute_daily_metrics(
        [
            row(EventType.MESSAGE_RECEIVED, candidate_key="k1", session_id="s1"),
            row(EventType.MESSAGE_SENT, candidate_key="k1", session_id="s1"),
            row(EventType.CANDIDATE_CONTACTED, candidate_key="k2", session_id="s2"),
        ]
    )

    assert metrics.total_events == 3
    assert metrics.unique_candidates == 2
    assert metrics.unique_sessions == 2


def test_rates_never_exceed_full():
    """Replied candidates are a subset of inbound, so reply_rate <= 10000."""
    rows = [
        row(EventType.MESSAGE_SENT, candidate_key=f"k{i}", was_unread=True, unread_count=1)
        for i in range(5)
    ]
    rows += [row(EventType.MESSAGE_RECEIVED, candidate_key=f"k{i}") for i in range(8)]

    metrics = compute_daily_metrics(rows)

    assert metrics.inbound_candidates == 8
    assert metrics.candidates_replied == 5
    assert metrics.reply_rate == 6250
    assert metrics.reply_rate <= 10000
