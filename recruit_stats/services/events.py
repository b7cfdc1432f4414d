"""Recruitment event store: repository, recording service and event builder."""

from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from structlog import get_logger

from recruit_stats.core.database import Database, db
from recruit_stats.core.retry import with_retry
from recruit_stats.models.events import (
    ApiSource,
    CandidateContactedDetails,
    CandidateHiredDetails,
    DataSource,
    EventPayload,
    EventType,
    InterviewBookedDetails,
    MessageReceivedDetails,
    MessageSentDetails,
    RecruitmentEvent,
    SourcePlatform,
    WechatExchangedDetails,
    WechatExchangeType,
    generate_candidate_key,
    generate_session_id,
)
from recruit_stats.models.stats import DimensionKey
from recruit_stats.services.dirty_tracker import DirtyTracker
from recruit_stats.types.database import (
    DimensionRowTD,
    EventMetricRowTD,
    RecruitmentEventRecordTD,
    UnrepliedCandidateRowTD,
)
from recruit_stats.utils.time import business_day, day_window

logger = get_logger()

_INSERT_COLUMNS = (
    "agent_id",
    "candidate_key",
    "session_id",
    "event_type",
    "event_time",
    "candidate_name",
    "candidate_position",
    "brand_id",
    "job_id",
    "job_name",
    "source_platform",
    "was_unread_before_reply",
    "unread_count_before_reply",
    "message_sequence",
    "event_details",
    "api_source",
    "data_source",
)

_INSERT_SQL = f"""
    INSERT INTO recruitment_events ({", ".join(_INSERT_COLUMNS)})
    VALUES ({", ".join(f"${i}" for i in range(1, len(_INSERT_COLUMNS) + 1))})
"""


def _insert_args(event: RecruitmentEvent) -> tuple[Any, ...]:
    return (
        event.agent_id,
        event.candidate_key,
        event.session_id,
        event.event_type.value,
        event.event_time,
        event.candidate_name,
        event.candidate_position,
        event.brand_id,
        event.job_id,
        event.job_name,
        event.source_platform.value,
        event.was_unread_before_reply,
        event.unread_count_before_reply,
        event.message_sequence,
        event.event_details.model_dump(mode="json"),
        event.api_source.value,
        event.data_source.value,
    )


class EventRepository:
    """SQL access to recruitment_events. Writes and aggregation reads go through with_retry."""

    def __init__(self, database: Database = db) -> None:
        self.db = database

    async def insert(self, event: RecruitmentEvent) -> int | None:
        """Insert one event. Returns the new id, or None once retries are exhausted."""

        async def _insert() -> int:
            event_id: int = await self.db.fetchval(
                _INSERT_SQL + " RETURNING id", *_insert_args(event)
            )
            return event_id

        event_id = await with_retry(_insert, "insert_event")
        if event_id is not None:
            logger.info("event_inserted", event_id=event_id, event_type=event.event_type.value)
        return event_id

    async def insert_many(self, events: list[RecruitmentEvent]) -> int:
        """Insert events in one statement. Returns how many were written."""
        if not events:
            return 0

        async def _insert_many() -> int:
            await self.db.executemany(_INSERT_SQL, [_insert_args(e) for e in events])
            return len(events)

        inserted = await with_retry(_insert_many, "insert_events_batch")
        return inserted or 0

    async def fetch_events_for_window(
        self,
        agent_id: str,
        start: datetime,
        end: datetime,
        brand_id: int | None = None,
        job_id: int | None = None,
    ) -> list[EventMetricRowTD] | None:
        """
        Events for one agent in [start, end), narrowed by brand/job when given.

        Returns None once retries are exhausted so callers can tell "no events"
        apart from "could not read".
        """

        async def _fetch() -> list[EventMetricRowTD]:
            rows = await self.db.fetch(
                """
                SELECT candidate_key, candidate_name, session_id, event_type,
                       was_unread_before_reply, unread_count_before_reply
                FROM recruitment_events
                WHERE agent_id = $1
                  AND event_time >= $2
                  AND event_time < $3
                  AND ($4::int IS NULL OR brand_id = $4)
                  AND ($5::int IS NULL OR job_id = $5)
                """,
                agent_id,
                start,
                end,
                brand_id,
                job_id,
            )
            return [EventMetricRowTD(**dict(row)) for row in rows]  # type: ignore[typeddict-item]

        return await with_retry(_fetch, "fetch_events_for_window")

    async def get_distinct_event_dates(self, agent_id: str, tz: ZoneInfo) -> list[date] | None:
        """Business days (in `tz`) on which the agent has at least one event."""

        async def _fetch() -> list[date]:
            rows = await self.db.fetch(
                """
                SELECT DISTINCT (event_time AT TIME ZONE $2)::date AS day
                FROM recruitment_events
                WHERE agent_id = $1
                ORDER BY day
                """,
                agent_id,
                tz.key,
            )
            return [row["day"] for row in rows]

        return await with_retry(_fetch, "get_distinct_event_dates")

    async def get_distinct_dimensions(
        self, agent_id: str, day: date, tz: ZoneInfo
    ) -> list[DimensionRowTD] | None:
        """Every (brand_id, job_id) pair seen for the agent on `day`, nulls included."""
        start, end = day_window(day, tz)

        async def _fetch() -> list[DimensionRowTD]:
            rows = await self.db.fetch(
                """
                SELECT DISTINCT brand_id, job_id
                FROM recruitment_events
                WHERE agent_id = $1 AND event_time >= $2 AND event_time < $3
                """,
                agent_id,
                start,
                end,
            )
            return [
                DimensionRowTD(brand_id=row["brand_id"], job_id=row["job_id"]) for row in rows
            ]

        return await with_retry(_fetch, "get_distinct_dimensions")

    async def get_distinct_agents(self) -> list[str] | None:
        async def _fetch() -> list[str]:
            rows = await self.db.fetch(
                "SELECT DISTINCT agent_id FROM recruitment_events ORDER BY agent_id"
            )
            return [row["agent_id"] for row in rows]

        return await with_retry(_fetch, "get_distinct_agents")

    async def find_by_session(self, session_id: str) -> list[RecruitmentEventRecordTD]:
        rows = await self.db.fetch(
            """
            SELECT * FROM recruitment_events
            WHERE session_id = $1
            ORDER BY event_time
            """,
            session_id,
        )
        return [RecruitmentEventRecordTD(**dict(row)) for row in rows]  # type: ignore[typeddict-item]

    async def find_by_candidate_key(
        self, candidate_key: str, limit: int = 100
    ) -> list[RecruitmentEventRecordTD]:
        rows = await self.db.fetch(
            """
            SELECT * FROM recruitment_events
            WHERE candidate_key = $1
            ORDER BY event_time DESC
            LIMIT $2
            """,
            candidate_key,
            limit,
        )
        return [RecruitmentEventRecordTD(**dict(row)) for row in rows]  # type: ignore[typeddict-item]

    async def max_message_sequence(self, session_id: str) -> int:
        """Highest message_sequence in the session, 0 when there is none."""
        value = await self.db.fetchval(
            """
            SELECT COALESCE(MAX(message_sequence), 0)
            FROM recruitment_events
            WHERE session_id = $1
            """,
            session_id,
        )
        return int(value or 0)

    async def has_event_for_session(self, session_id: str, event_type: EventType) -> bool:
        exists = await self.db.fetchval(
            """
            SELECT EXISTS (
                SELECT 1 FROM recruitment_events
                WHERE session_id = $1 AND event_type = $2
            )
            """,
            session_id,
            event_type.value,
        )
        return bool(exists)

    async def find_unreplied_candidates(
        self, agent_id: str | None, start: datetime, end: datetime
    ) -> list[UnrepliedCandidateRowTD]:
        """
        Inbound candidates in [start, end) with no unread-reply message_sent.

        Inbound means a message_received, or a message_sent that answered
        unread messages. Newest last message first.
        """
        rows = await self.db.fetch(
            """
            SELECT candidate_key, candidate_name, candidate_position, agent_id,
                   source_platform, MAX(event_time) AS last_message_time
            FROM recruitment_events e
            WHERE event_time >= $1
              AND event_time < $2
              AND ($3::text IS NULL OR agent_id = $3)
              AND (
                  event_type = 'message_received'
                  OR (event_type = 'message_sent' AND was_unread_before_reply)
              )
              AND NOT EXISTS (
                  SELECT 1 FROM recruitment_events r
                  WHERE r.candidate_key = e.candidate_key
                    AND r.event_time >= $1
                    AND r.event_time < $2
                    AND ($3::text IS NULL OR r.agent_id = $3)
                    AND r.event_type = 'message_sent'
                    AND r.was_unread_before_reply
              )
            GROUP BY candidate_key, candidate_name, candidate_position, agent_id, source_platform
            ORDER BY last_message_time DESC
            """,
            start,
            end,
            agent_id,
        )
        return [UnrepliedCandidateRowTD(**dict(row)) for row in rows]  # type: ignore[typeddict-item]


class EventService:
    """
    Records events and keeps the affected stats rows marked dirty.

    Marking happens in a background task after the insert succeeds. A failed
    mark is logged and nothing else: the daily full reaggregation picks the
    day up regardless.
    """

    def __init__(self, repository: EventRepository, dirty_tracker: DirtyTracker) -> None:
        self.repository = repository
        self.dirty_tracker = dirty_tracker
        self._background: set[asyncio.Task[None]] = set()

    def event(
        self,
        agent_id: str,
        source_platform: SourcePlatform = SourcePlatform.ZHIPIN,
        *,
        api_source: ApiSource = ApiSource.WEB,
        data_source: DataSource = DataSource.TOOL_AUTO,
    ) -> EventBuilder:
        """Start building an event for one agent."""
        return EventBuilder(
            agent_id,
            source_platform,
            tz=self.dirty_tracker.tz,
            api_source=api_source,
            data_source=data_source,
        )

    def from_payload(self, payload: EventPayload) -> RecruitmentEvent:
        """Derive candidate key and session id in the reporting timezone."""
        return payload.to_event(self.dirty_tracker.tz)

    async def record(self, event: RecruitmentEvent) -> int | None:
        """
        Insert one event, then mark its stats rows dirty in the background.

        Returns:
            The new event id, or None if the insert did not happen
        """
        event_id = await self.repository.insert(event)
        if event_id is None:
            logger.error(
                "event_record_failed",
                agent_id=event.agent_id,
                event_type=event.event_type.value,
            )
            return None

        self._schedule_mark_dirty([event])
        return event_id

    async def record_batch(self, events: list[RecruitmentEvent]) -> int:
        """Insert events in one statement and mark each distinct stats key once."""
        if not events:
            return 0

        inserted = await self.repository.insert_many(events)
        if inserted == 0:
            logger.error("event_batch_record_failed", count=len(events))
            return 0

        self._schedule_mark_dirty(events)
        return inserted

    async def wait_for_background_tasks(self) -> None:
        """Let pending dirty marks finish. Used at shutdown and in tests."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def _schedule_mark_dirty(self, events: list[RecruitmentEvent]) -> None:
        task = asyncio.create_task(self._mark_dirty(events))
        self._background.add(task)
        task.add_done_callback(self._on_mark_dirty_done)

    async def _mark_dirty(self, events: list[RecruitmentEvent]) -> None:
        keys: list[DimensionKey] = []
        for event in events:
            for key in self.dirty_tracker.keys_for_event(event):
                if key not in keys:
                    keys.append(key)
        await self.dirty_tracker.mark_keys(keys)

    def _on_mark_dirty_done(self, task: asyncio.Task[None]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("mark_dirty_failed", error=str(exc), error_type=type(exc).__name__)

    async def get_events_by_session(self, session_id: str) -> list[RecruitmentEventRecordTD]:
        return await self.repository.find_by_session(session_id)

    async def get_events_by_candidate(
        self, candidate_key: str, limit: int = 100
    ) -> list[RecruitmentEventRecordTD]:
        return await self.repository.find_by_candidate_key(candidate_key, limit)

    async def get_next_message_sequence(self, session_id: str) -> int:
        """1-based sequence for the next message in the session."""
        return await self.repository.max_message_sequence(session_id) + 1

    async def has_event_for_session(self, session_id: str, event_type: EventType) -> bool:
        """Used to avoid recording the same one-off event (e.g. wechat) twice."""
        return await self.repository.has_event_for_session(session_id, event_type)


class EventBuilder:
    """
    Fluent builder that fills candidate key, session id and typed details.

    Usage:
        event = (
            service.event("zhipin-001")
            .candidate("Zhang San", "Barista")
            .for_brand(10)
            .with_unread_context(3)
            .message_sent("Hello!")
        )
        await service.record(event)
    """

    def __init__(
        self,
        agent_id: str,
        source_platform: SourcePlatform,
        *,
        tz: ZoneInfo,
        api_source: ApiSource = ApiSource.WEB,
        data_source: DataSource = DataSource.TOOL_AUTO,
    ) -> None:
        self._tz = tz
        self._data: dict[str, Any] = {
            "agent_id": agent_id,
            "source_platform": source_platform,
            "api_source": api_source,
            "data_source": data_source,
            "candidate_name": None,
            "candidate_position": None,
            "brand_id": None,
            "job_id": None,
            "job_name": None,
            "was_unread_before_reply": False,
            "unread_count_before_reply": 0,
            "message_sequence": None,
            "event_time": None,
        }

    def candidate(self, name: str, position: str | None = None) -> EventBuilder:
        self._data["candidate_name"] = name
        self._data["candidate_position"] = position
        return self

    def at(self, moment: datetime) -> EventBuilder:
        self._data["event_time"] = moment
        return self

    def with_unread_context(self, unread_count: int) -> EventBuilder:
        """Record that this reply answered `unread_count` unread messages."""
        self._data["was_unread_before_reply"] = unread_count > 0
        self._data["unread_count_before_reply"] = unread_count
        return self

    def with_message_sequence(self, sequence: int) -> EventBuilder:
        self._data["message_sequence"] = sequence
        return self

    def for_job(self, job_id: int, job_name: str | None = None) -> EventBuilder:
        self._data["job_id"] = job_id
        self._data["job_name"] = job_name
        return self

    def for_brand(self, brand_id: int) -> EventBuilder:
        self._data["brand_id"] = brand_id
        return self

    def for_platform(self, platform: SourcePlatform) -> EventBuilder:
        self._data["source_platform"] = platform
        return self

    def message_sent(self, content: str, *, is_auto_reply: bool | None = None) -> RecruitmentEvent:
        return self._finalize(
            EventType.MESSAGE_SENT,
            MessageSentDetails(content=content, is_auto_reply=is_auto_reply),
        )

    def message_received(
        self, unread_count: int, last_message_preview: str | None = None
    ) -> RecruitmentEvent:
        # Inbound volume is counted from unread_count_before_reply
        self._data["unread_count_before_reply"] = unread_count
        return self._finalize(
            EventType.MESSAGE_RECEIVED,
            MessageReceivedDetails(
                unread_count=unread_count, last_message_preview=last_message_preview
            ),
        )

    def candidate_contacted(self) -> RecruitmentEvent:
        return self._finalize(EventType.CANDIDATE_CONTACTED, CandidateContactedDetails())

    def wechat_exchanged(
        self,
        wechat_number: str | None = None,
        exchange_type: WechatExchangeType | None = None,
    ) -> RecruitmentEvent:
        return self._finalize(
            EventType.WECHAT_EXCHANGED,
            WechatExchangedDetails(wechat_number=wechat_number, exchange_type=exchange_type),
        )

    def interview_booked(
        self,
        interview_time: str,
        *,
        address: str | None = None,
        candidate_phone: str | None = None,
    ) -> RecruitmentEvent:
        return self._finalize(
            EventType.INTERVIEW_BOOKED,
            InterviewBookedDetails(
                interview_time=interview_time,
                address=address,
                candidate_phone=candidate_phone,
                job_id=self._data["job_id"],
            ),
        )

    def candidate_hired(
        self, hire_date: str | None = None, notes: str | None = None
    ) -> RecruitmentEvent:
        return self._finalize(
            EventType.CANDIDATE_HIRED,
            CandidateHiredDetails(hire_date=hire_date, notes=notes),
        )

    def _finalize(self, event_type: EventType, details: Any) -> RecruitmentEvent:
        event_time: datetime = self._data["event_time"] or datetime.now(UTC)
        platform = SourcePlatform(self._data["source_platform"])
        candidate_key = generate_candidate_key(
            platform.value,
            self._data["candidate_name"] or "unknown",
            self._data["candidate_position"],
        )
        session_id = generate_session_id(
            self._data["agent_id"], candidate_key, business_day(event_time, self._tz)
        )
        return RecruitmentEvent(
            **{**self._data, "event_time": event_time, "source_platform": platform},
            candidate_key=candidate_key,
            session_id=session_id,
            event_type=event_type,
            event_details=details,
        )
