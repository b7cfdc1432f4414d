"""Read side for dashboards: range queries over materialized daily stats."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from structlog import get_logger

from recruit_stats.core.errors import ValidationError, service_boundary
from recruit_stats.models.stats import (
    COUNT_FIELDS,
    AggregatedStats,
    DailyTrendItem,
    DashboardSummary,
    StatsQuery,
    TimeRange,
    UnrepliedCandidate,
)
from recruit_stats.services.events import EventRepository
from recruit_stats.services.metrics import calculate_rate
from recruit_stats.services.stats_store import StatsRepository
from recruit_stats.utils.time import business_day, day_window, month_bounds, week_bounds, year_bounds

logger = get_logger()

TREND_FIELDS = (
    "total_events",
    "unique_candidates",
    "inbound_candidates",
    "messages_received",
    "wechat_exchanged",
    "interviews_booked",
    "candidates_hired",
    "proactive_outreach",
)

DAILY_TREND_FIELDS = (
    "messages_received",
    "inbound_candidates",
    "candidates_replied",
    "wechat_exchanged",
    "interviews_booked",
    "unread_replied",
    "proactive_outreach",
    "proactive_responded",
)


def resolve_date_range(start: date, end: date, time_range: TimeRange) -> tuple[date, date]:
    """Expand week/month/year to the calendar period containing `start`."""
    match time_range:
        case TimeRange.WEEK:
            return week_bounds(start)
        case TimeRange.MONTH:
            return month_bounds(start)
        case TimeRange.YEAR:
            return year_bounds(start)
        case _:
            return start, end


def calculate_trend(current: int, previous: int) -> int | None:
    """Percentage change, 100 when growing from zero, None when both are zero."""
    if previous == 0:
        return 100 if current > 0 else None
    return round((current - previous) / previous * 100)


def _to_aggregated(row: dict[str, Any], start: date, end: date) -> AggregatedStats:
    counts = {field: int(row[field] or 0) for field in COUNT_FIELDS}
    inbound = counts["inbound_candidates"]
    return AggregatedStats(
        agent_id=row["agent_id"],
        start_date=start,
        end_date=end,
        brand_id=row["brand_id"],
        job_id=row["job_id"],
        **counts,
        reply_rate=calculate_rate(counts["candidates_replied"], inbound),
        wechat_rate=calculate_rate(counts["wechat_exchanged"], inbound),
        interview_rate=calculate_rate(counts["interviews_booked"], inbound),
    )


class QueryService:
    """Dashboard queries. Rates over a range are recomputed from summed counts."""

    def __init__(self, stats: StatsRepository, events: EventRepository, tz: ZoneInfo) -> None:
        self.stats = stats
        self.events = events
        self.tz = tz

    @service_boundary
    async def query_stats(self, query: StatsQuery) -> list[AggregatedStats]:
        start, end = resolve_date_range(query.start_date, query.end_date, query.time_range)
        if start > end:
            raise ValidationError(
                "start_date must not be after end_date",
                context={"start_date": start.isoformat(), "end_date": end.isoformat()},
            )

        logger.info(
            "stats_query",
            agent_id=query.agent_id,
            start=start.isoformat(),
            end=end.isoformat(),
            time_range=query.time_range.value,
        )
        rows = await self.stats.query_aggregated_stats(
            query.agent_id, start, end, query.brand_id, query.job_id
        )
        return [_to_aggregated(row, start, end) for row in rows]

    @service_boundary
    async def get_daily_stats(self, agent_id: str, day: date) -> list[AggregatedStats]:
        """Aggregate rows for one day, with their stored rates."""
        rows = await self.stats.query_stats(agent_id, day, day)
        return [
            AggregatedStats(
                **row.model_dump(exclude={"stat_date", "is_dirty", "aggregated_at", "updated_at"}),
                start_date=day,
                end_date=day,
            )
            for row in rows
        ]

    @service_boundary
    async def get_dashboard_summary(
        self,
        agent_id: str | None = None,
        days: int = 7,
        reference_end: date | None = None,
    ) -> DashboardSummary:
        """Current period of `days` ending at reference_end, vs the period before it."""
        if days < 1:
            raise ValidationError("days must be at least 1", context={"days": days})

        current_end = reference_end or business_day(datetime.now(self.tz), self.tz)
        current_start = current_end - timedelta(days=days - 1)
        previous_end = current_start - timedelta(days=1)
        previous_start = previous_end - timedelta(days=days - 1)

        current_rows = await self.stats.query_aggregated_stats(agent_id, current_start, current_end)
        previous_rows = await self.stats.query_aggregated_stats(
            agent_id, previous_start, previous_end
        )

        current = [_to_aggregated(r, current_start, current_end) for r in current_rows]
        previous = [_to_aggregated(r, previous_start, previous_end) for r in previous_rows]

        trend = {
            field: calculate_trend(
                sum(getattr(s, field) for s in current),
                sum(getattr(s, field) for s in previous),
            )
            for field in TREND_FIELDS
        }
        return DashboardSummary(current=current, previous=previous, trend=trend)

    @service_boundary
    async def get_stats_trend(
        self,
        agent_id: str | None,
        start: date,
        end: date,
        brand_id: int | None = None,
        job_id: int | None = None,
    ) -> list[DailyTrendItem]:
        """One item per day in the range that has stats, summed across agents."""
        rows = await self.stats.query_stats(agent_id, start, end, brand_id, job_id)

        daily: dict[date, dict[str, int]] = {}
        for row in rows:
            totals = daily.setdefault(row.stat_date, dict.fromkeys(DAILY_TREND_FIELDS, 0))
            for field in DAILY_TREND_FIELDS:
                totals[field] += getattr(row, field)

        return [DailyTrendItem(stat_date=day, **daily[day]) for day in sorted(daily)]

    @service_boundary
    async def get_unreplied_candidates(
        self, agent_id: str | None, start: date, end: date
    ) -> list[UnrepliedCandidate]:
        """Inbound candidates over the business days [start, end] still waiting on a reply."""
        window_start, _ = day_window(start, self.tz)
        _, window_end = day_window(end, self.tz)

        rows = await self.events.find_unreplied_candidates(agent_id, window_start, window_end)
        logger.info("unreplied_candidates_found", agent_id=agent_id, count=len(rows))
        return [
            UnrepliedCandidate(
                name=row["candidate_name"] or "unknown",
                position=row["candidate_position"],
                agent_id=row["agent_id"],
                platform=row["source_platform"],
                last_message_time=row["last_message_time"],
            )
            for row in rows
        ]
