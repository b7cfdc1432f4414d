"""Test fixtures and factories."""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from recruit_stats.models.events import (
    CandidateContactedDetails,
    CandidateHiredDetails,
    EventType,
    InterviewBookedDetails,
    MessageReceivedDetails,
    MessageSentDetails,
    RecruitmentEvent,
    SourcePlatform,
    WechatExchangedDetails,
    generate_candidate_key,
    generate_session_id,
)
from recruit_stats.utils.time import business_day

SHANGHAI = ZoneInfo("Asia/Shanghai")

# 2025-12-10 10:00 in Shanghai
DEFAULT_EVENT_TIME = datetime(2025, 12, 10, 2, 0, tzinfo=UTC)

_DETAILS = {
    EventType.MESSAGE_SENT: lambda unread: MessageSentDetails(content="Hello"),
    EventType.MESSAGE_RECEIVED: lambda unread: MessageReceivedDetails(unread_count=unread),
    EventType.CANDIDATE_CONTACTED: lambda unread: CandidateContactedDetails(),
    EventType.WECHAT_EXCHANGED: lambda unread: WechatExchangedDetails(wechat_number="wx_test"),
    EventType.INTERVIEW_BOOKED: lambda unread: InterviewBookedDetails(
        interview_time="2025-12-12 14:00"
    ),
    EventType.CANDIDATE_HIRED: lambda unread: CandidateHiredDetails(hire_date="2025-12-20"),
}


def create_event(
    event_type: EventType = EventType.MESSAGE_RECEIVED,
    *,
    agent_id: str = "agent-1",
    candidate_name: str | None = "Zhang San",
    candidate_position: str | None = "Barista",
    event_time: datetime | None = None,
    brand_id: int | None = None,
    job_id: int | None = None,
    unread_count: int = 0,
    was_unread_before_reply: bool = False,
    platform: SourcePlatform = SourcePlatform.ZHIPIN,
    tz: ZoneInfo = SHANGHAI,
) -> RecruitmentEvent:
    """Create a valid event with derived candidate key and session id."""
    event_time = event_time or DEFAULT_EVENT_TIME
    candidate_key = generate_candidate_key(
        platform.value, candidate_name or "unknown", candidate_position
    )
    return RecruitmentEvent(
        agent_id=agent_id,
        candidate_key=candidate_key,
        session_id=generate_session_id(agent_id, candidate_key, business_day(event_time, tz)),
        event_type=event_type,
        event_time=event_time,
        candidate_name=candidate_name,
        candidate_position=candidate_position,
        brand_id=brand_id,
        job_id=job_id,
        source_platform=platform,
        was_unread_before_reply=was_unread_before_reply,
        unread_count_before_reply=unread_count,
        event_details=_DETAILS[event_type](unread_count),
    )


def create_unread_reply(**kwargs) -> RecruitmentEvent:
    """message_sent that answered `unread_count` unread messages."""
    unread_count = kwargs.pop("unread_count", 1)
    return create_event(
        EventType.MESSAGE_SENT,
        unread_count=unread_count,
        was_unread_before_reply=True,
        **kwargs,
    )


def event_payload(
    event_type: str = "message_received",
    *,
    agent_id: str = "agent-1",
    candidate_name: str = "Zhang San",
    event_time: str = "2025-12-10T02:00:00Z",
    brand_id: int | None = None,
    job_id: int | None = None,
    unread_count: int = 0,
    was_unread_before_reply: bool = False,
) -> dict:
    """JSON body for POST /events. The server derives candidate_key and session_id."""
    details: dict = {"type": event_type}
    if event_type == "message_received":
        details["unread_count"] = unread_count
    elif event_type == "message_sent":
        details["content"] = "Hello"
    elif event_type == "interview_booked":
        details["interview_time"] = "2025-12-12 14:00"

    return {
        "agent_id": agent_id,
        "event_type": event_type,
        "event_time": event_time,
        "candidate_name": candidate_name,
        "candidate_position": "Barista",
        "brand_id": brand_id,
        "job_id": job_id,
        "source_platform": "zhipin",
        "was_unread_before_reply": was_unread_before_reply,
        "unread_count_before_reply": unread_count,
        "event_details": details,
    }
