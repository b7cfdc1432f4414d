"""FastAPI dependencies that hand out the services built in the lifespan."""

from __future__ import annotations

from typing import Any, cast

from fastapi import Request

from recruit_stats.core.errors import ConfigurationError
from recruit_stats.services.events import EventService
from recruit_stats.services.query import QueryService
from recruit_stats.services.scheduler import StatsScheduler


def _from_state(request: Request, name: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise ConfigurationError(f"{name} is not initialized", context={"service": name})
    return service


def get_scheduler(request: Request) -> StatsScheduler:
    return cast(StatsScheduler, _from_state(request, "stats_scheduler"))


def get_query_service(request: Request) -> QueryService:
    return cast(QueryService, _from_state(request, "query_service"))


def get_event_service(request: Request) -> EventService:
    return cast(EventService, _from_state(request, "event_service"))
