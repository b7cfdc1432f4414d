"""Admin endpoints for stats aggregation and dashboard queries."""

from __future__ import annotations

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query
from structlog import get_logger

from recruit_stats.api.dependencies import get_query_service, get_scheduler
from recruit_stats.core.errors import ValidationError
from recruit_stats.models.stats import (
    AggregatedStats,
    DailyTrendItem,
    DashboardSummary,
    SchedulerStatus,
    StatsQuery,
    TimeRange,
    TriggerAggregationRequest,
    TriggerAggregationResponse,
    UnrepliedCandidate,
)
from recruit_stats.services.query import QueryService
from recruit_stats.services.scheduler import StatsScheduler

logger = get_logger()
router = APIRouter(prefix="/admin/stats", tags=["stats"])

SchedulerDep = Annotated[StatsScheduler, Depends(get_scheduler)]
QueryDep = Annotated[QueryService, Depends(get_query_service)]


def _check_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationError(
            "start_date must not be after end_date",
            context={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )


@router.get("/aggregate")
async def get_aggregation_status(scheduler: SchedulerDep) -> SchedulerStatus:
    """Scheduler state, config and the last run's result."""
    return scheduler.get_status()


@router.post("/aggregate")
async def trigger_aggregation(
    scheduler: SchedulerDep,
    request: Annotated[TriggerAggregationRequest | None, Body()] = None,
) -> TriggerAggregationResponse:
    """
    Run an aggregation now.

    With agent_id: full reaggregation for that agent. Without: the main
    aggregation (dirty drain, full fallback when nothing was dirty).
    """
    agent_id = request.agent_id if request else None
    logger.info("admin_stats_aggregation_triggered", agent_id=agent_id)

    result = await scheduler.trigger_manual(agent_id)
    message = (
        f"Full re-aggregation completed for {agent_id}"
        if agent_id
        else "Main aggregation completed"
    )
    return TriggerAggregationResponse(message=message, result=result)


@router.get("")
async def query_stats(
    query_service: QueryDep,
    start_date: date,
    end_date: date,
    time_range: TimeRange = TimeRange.DAY,
    agent_id: str | None = None,
    brand_id: int | None = None,
    job_id: int | None = None,
) -> list[AggregatedStats]:
    """
    Stats summed over a date range.

    week/month/year expand to the calendar period containing start_date.
    Without brand_id/job_id only the per-agent aggregate rows are summed.
    """
    if time_range in (TimeRange.DAY, TimeRange.CUSTOM):
        _check_range(start_date, end_date)
    return await query_service.query_stats(
        StatsQuery(
            agent_id=agent_id,
            start_date=start_date,
            end_date=end_date,
            time_range=time_range,
            brand_id=brand_id,
            job_id=job_id,
        )
    )


@router.get("/daily")
async def get_daily_stats(
    query_service: QueryDep, agent_id: str, day: date
) -> list[AggregatedStats]:
    """Materialized aggregate row for one agent and day."""
    return await query_service.get_daily_stats(agent_id, day)


@router.get("/dashboard")
async def get_dashboard_summary(
    query_service: QueryDep,
    agent_id: str | None = None,
    days: Annotated[int, Query(ge=1, le=366)] = 7,
    reference_end: date | None = None,
) -> DashboardSummary:
    """Current period vs the one before it, with percentage trends."""
    return await query_service.get_dashboard_summary(agent_id, days, reference_end)


@router.get("/trend")
async def get_stats_trend(
    query_service: QueryDep,
    start_date: date,
    end_date: date,
    agent_id: str | None = None,
    brand_id: int | None = None,
    job_id: int | None = None,
) -> list[DailyTrendItem]:
    """Per-day funnel counts for charts."""
    _check_range(start_date, end_date)
    return await query_service.get_stats_trend(agent_id, start_date, end_date, brand_id, job_id)


@router.get("/unreplied")
async def get_unreplied_candidates(
    query_service: QueryDep,
    start_date: date,
    end_date: date,
    agent_id: str | None = None,
) -> list[UnrepliedCandidate]:
    """Inbound candidates still waiting on a reply, newest first."""
    _check_range(start_date, end_date)
    return await query_service.get_unreplied_candidates(agent_id, start_date, end_date)
