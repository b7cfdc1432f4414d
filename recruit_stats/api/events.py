"""Event ingestion endpoint."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status
from structlog import get_logger

from recruit_stats.api.dependencies import get_event_service
from recruit_stats.core.errors import DatabaseError
from recruit_stats.models.events import EventPayload, RecordEventResponse
from recruit_stats.services.events import EventService

logger = get_logger()
router = APIRouter(tags=["events"])


@router.post("/events", status_code=status.HTTP_201_CREATED)
async def record_event(
    payload: EventPayload,
    event_service: Annotated[EventService, Depends(get_event_service)],
) -> RecordEventResponse:
    """
    Record one funnel event.

    The candidate key and session id are derived here. The matching stats rows
    are marked dirty in the background and picked up by the next scheduler tick.
    """
    event = event_service.from_payload(payload)
    event_id = await event_service.record(event)
    if event_id is None:
        raise DatabaseError(
            "Event could not be stored",
            context={"agent_id": event.agent_id, "event_type": event.event_type.value},
        )

    return RecordEventResponse(
        id=event_id,
        event_type=event.event_type,
        candidate_key=event.candidate_key,
        session_id=event.session_id,
    )
