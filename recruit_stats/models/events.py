"""Pydantic models for recruitment events."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Annotated, Literal
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator, model_validator

from recruit_stats.utils.time import business_day, ensure_aware


class EventType(StrEnum):
    """Funnel event types. Values are stored verbatim in recruitment_events.event_type."""

    MESSAGE_SENT = "message_sent"
    MESSAGE_RECEIVED = "message_received"
    CANDIDATE_CONTACTED = "candidate_contacted"  # proactive outreach (we -> candidate)
    WECHAT_EXCHANGED = "wechat_exchanged"
    INTERVIEW_BOOKED = "interview_booked"
    CANDIDATE_HIRED = "candidate_hired"


class SourcePlatform(StrEnum):
    ZHIPIN = "zhipin"
    YUPAO = "yupao"


class ApiSource(StrEnum):
    WEB = "web"
    OPEN_API = "open_api"


class DataSource(StrEnum):
    TOOL_AUTO = "tool_auto"
    MANUAL = "manual"
    BACKFILL = "backfill"


class WechatExchangeType(StrEnum):
    REQUESTED = "requested"  # we asked, waiting for the candidate
    ACCEPTED = "accepted"  # we accepted the candidate's request
    COMPLETED = "completed"  # detected in chat history


# ============================================
# Event details (one variant per event type)
# ============================================


class MessageSentDetails(BaseModel):
    type: Literal["message_sent"] = "message_sent"
    content: str
    is_auto_reply: bool | None = None


class MessageReceivedDetails(BaseModel):
    type: Literal["message_received"] = "message_received"
    unread_count: int = Field(ge=0)
    last_message_preview: str | None = None


class CandidateContactedDetails(BaseModel):
    type: Literal["candidate_contacted"] = "candidate_contacted"


class WechatExchangedDetails(BaseModel):
    type: Literal["wechat_exchanged"] = "wechat_exchanged"
    wechat_number: str | None = None
    exchange_type: WechatExchangeType | None = None


class InterviewBookedDetails(BaseModel):
    type: Literal["interview_booked"] = "interview_booked"
    interview_time: str
    address: str | None = None
    candidate_phone: str | None = None
    job_id: int | None = None


class CandidateHiredDetails(BaseModel):
    type: Literal["candidate_hired"] = "candidate_hired"
    hire_date: str | None = None
    notes: str | None = None


EventDetails = Annotated[
    MessageSentDetails
    | MessageReceivedDetails
    | CandidateContactedDetails
    | WechatExchangedDetails
    | InterviewBookedDetails
    | CandidateHiredDetails,
    Field(discriminator="type"),
]


# ============================================
# Event
# ============================================


class EventPayload(BaseModel):
    """
    A funnel event as submitted by a producer.

    candidate_key and session_id are not accepted from the caller; to_event()
    derives them so every stored event agrees with the business day it falls on.
    """

    agent_id: str = Field(min_length=1)
    event_type: EventType
    event_time: datetime
    candidate_name: str | None = None
    candidate_position: str | None = None
    brand_id: int | None = None
    job_id: int | None = None
    job_name: str | None = None
    source_platform: SourcePlatform
    was_unread_before_reply: bool = False
    unread_count_before_reply: int = Field(default=0, ge=0)
    message_sequence: int | None = None
    event_details: EventDetails
    api_source: ApiSource = ApiSource.WEB
    data_source: DataSource = DataSource.TOOL_AUTO

    @field_validator("event_time")
    @classmethod
    def validate_event_time(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        return ensure_aware(v)

    @model_validator(mode="after")
    def validate_details_match_type(self) -> EventPayload:
        if self.event_details.type != self.event_type.value:
            raise ValueError(
                f"event_details.type '{self.event_details.type}' does not match "
                f"event_type '{self.event_type.value}'"
            )
        return self

    def to_event(self, tz: ZoneInfo) -> RecruitmentEvent:
        """Attach the derived candidate key and the per-day session id."""
        candidate_key = generate_candidate_key(
            self.source_platform.value, self.candidate_name or "unknown", self.candidate_position
        )
        session_id = generate_session_id(
            self.agent_id, candidate_key, business_day(self.event_time, tz)
        )
        return RecruitmentEvent(**dict(self), candidate_key=candidate_key, session_id=session_id)


class RecruitmentEvent(EventPayload):
    """An immutable funnel fact, as written to recruitment_events."""

    candidate_key: str = Field(min_length=1)
    session_id: str = Field(min_length=1)


class RecordEventResponse(BaseModel):
    """Response for POST /events."""

    id: int
    event_type: EventType
    candidate_key: str
    session_id: str


def generate_candidate_key(
    platform: str, candidate_name: str, candidate_position: str | None = None
) -> str:
    """
    Stable identity for a candidate across events.

    Brand is deliberately left out: the same person talking to two brands on
    one day is one unique candidate in the agent's aggregate row.
    """
    position = (candidate_position or "").strip() or "-"
    return f"{platform}:{candidate_name.strip()}:{position}"


def generate_session_id(agent_id: str, candidate_key: str, day: date) -> str:
    """One session per agent, candidate and business day."""
    return f"{agent_id}:{candidate_key}:{day.isoformat()}"
