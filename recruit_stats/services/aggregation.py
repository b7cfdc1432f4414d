"""Aggregation engine: recompute materialized daily stats from the event store."""

from __future__ import annotations

import time
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from structlog import get_logger

from recruit_stats.core.errors import AggregationError
from recruit_stats.models.stats import AggregationResult, DailyStatsRecord, DimensionKey
from recruit_stats.services.events import EventRepository
from recruit_stats.services.metrics import compute_daily_metrics
from recruit_stats.services.stats_store import StatsRepository
from recruit_stats.utils.time import day_window, iter_days

logger = get_logger()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _keyed_error(key: DimensionKey, e: Exception) -> str:
    # AggregationError messages already start with the key label
    if isinstance(e, AggregationError):
        return e.message
    return f"{key.label()}: {str(e) or type(e).__name__}"


class AggregationService:
    """
    Incremental and full recomputation of recruitment_daily_stats.

    Every batch operation isolates failures per key (or per day) and returns an
    AggregationResult instead of raising. Only aggregate_single_day raises.
    """

    def __init__(
        self,
        events: EventRepository,
        stats: StatsRepository,
        tz: ZoneInfo,
    ) -> None:
        self.events = events
        self.stats = stats
        self.tz = tz

    async def aggregate_single_day(self, key: DimensionKey) -> DailyStatsRecord:
        """
        Recompute one dimension-day and overwrite its stats row.

        Raises:
            AggregationError: Events could not be read or the row could not be
                written. The row's dirty flag is left set.
        """
        scan_started_at = datetime.now(UTC)
        start, end = day_window(key.stat_date, self.tz)

        try:
            rows = await self.events.fetch_events_for_window(
                key.agent_id, start, end, key.brand_id, key.job_id
            )
        except Exception as e:
            raise AggregationError(
                f"{key.label()}: event scan failed: {e}", context={"key": key.label()}
            ) from e
        if rows is None:
            raise AggregationError(
                f"{key.label()}: event scan failed after retries", context={"key": key.label()}
            )

        record = DailyStatsRecord.from_metrics(key, compute_daily_metrics(rows))

        try:
            still_dirty = await self.stats.upsert_stats(
                record, aggregated_at=datetime.now(UTC), scan_started_at=scan_started_at
            )
        except Exception as e:
            raise AggregationError(
                f"{key.label()}: stats write failed: {e}", context={"key": key.label()}
            ) from e
        if still_dirty is None:
            raise AggregationError(
                f"{key.label()}: stats write failed after retries", context={"key": key.label()}
            )

        logger.info(
            "stats_aggregated",
            key=key.label(),
            total_events=record.total_events,
            inbound_candidates=record.inbound_candidates,
            remarked_during_scan=still_dirty,
        )
        return record

    async def process_dirty_records(self, batch_size: int = 50) -> AggregationResult:
        """
        Aggregate up to `batch_size` dirty keys, oldest mark first.

        Each key succeeds or fails on its own. Never raises.
        """
        started = time.monotonic()
        logger.info("dirty_aggregation_started", batch_size=batch_size)

        try:
            dirty_keys = await self.stats.find_dirty_records(batch_size)
        except Exception as e:
            logger.exception("dirty_scan_failed")
            return AggregationResult(
                success=False,
                failed_count=1,
                duration_ms=_elapsed_ms(started),
                errors=[f"dirty scan failed: {e}"],
            )
        if dirty_keys is None:
            return AggregationResult(
                success=False,
                failed_count=1,
                duration_ms=_elapsed_ms(started),
                errors=["dirty scan failed after retries"],
            )

        logger.info("dirty_records_found", count=len(dirty_keys))

        processed = 0
        errors: list[str] = []
        for key in dirty_keys:
            try:
                await self.aggregate_single_day(key)
                processed += 1
            except Exception as e:
                message = _keyed_error(key, e)
                errors.append(message)
                logger.warning("stats_aggregation_failed", key=key.label(), error=message)

        result = AggregationResult(
            success=not errors,
            processed_count=processed,
            failed_count=len(errors),
            duration_ms=_elapsed_ms(started),
            errors=errors or None,
        )
        logger.info(
            "dirty_aggregation_completed",
            processed=result.processed_count,
            failed=result.failed_count,
            duration_ms=result.duration_ms,
        )
        return result

    async def full_reaggregation(self, agent_id: str) -> AggregationResult:
        """
        Recompute every day the agent has events, ignoring dirty flags.

        For each day: the aggregate key, then every (brand, job) pair seen that
        day with a non-null brand. Pairs with no brand are already covered by
        the aggregate row. A day counts as processed only if all its keys
        succeed.
        """
        started = time.monotonic()
        logger.info("full_reaggregation_started", agent_id=agent_id)

        try:
            days = await self.events.get_distinct_event_dates(agent_id, self.tz)
        except Exception as e:
            logger.exception("event_dates_scan_failed", agent_id=agent_id)
            return AggregationResult(
                success=False,
                failed_count=1,
                duration_ms=_elapsed_ms(started),
                errors=[f"{agent_id}: event dates scan failed: {e}"],
            )
        if days is None:
            logger.error("event_dates_scan_failed", agent_id=agent_id, reason="retries_exhausted")
            return AggregationResult(
                success=False,
                failed_count=1,
                duration_ms=_elapsed_ms(started),
                errors=[f"{agent_id}: event dates scan failed after retries"],
            )

        processed = 0
        errors: list[str] = []
        for day in days:
            day_error = await self._reaggregate_day(agent_id, day)
            if day_error is None:
                processed += 1
            else:
                errors.append(day_error)

        result = AggregationResult(
            success=not errors,
            processed_count=processed,
            failed_count=len(errors),
            duration_ms=_elapsed_ms(started),
            errors=errors or None,
        )
        logger.info(
            "full_reaggregation_completed",
            agent_id=agent_id,
            days_processed=result.processed_count,
            days_failed=result.failed_count,
            duration_ms=result.duration_ms,
        )
        return result

    async def _reaggregate_day(self, agent_id: str, day: date) -> str | None:
        """Aggregate every key for one day. Returns an error line, or None on success."""
        aggregate_key = DimensionKey(agent_id=agent_id, stat_date=day)
        try:
            await self.aggregate_single_day(aggregate_key)
            dimensions = await self.events.get_distinct_dimensions(agent_id, day, self.tz)
            if dimensions is None:
                raise AggregationError(
                    f"{aggregate_key.label()}: dimension scan failed after retries",
                    context={"key": aggregate_key.label()},
                )
            for dimension in dimensions:
                if dimension["brand_id"] is None:
                    continue
                await self.aggregate_single_day(
                    DimensionKey(
                        agent_id=agent_id,
                        stat_date=day,
                        brand_id=dimension["brand_id"],
                        job_id=dimension["job_id"],
                    )
                )
        except Exception as e:
            message = _keyed_error(aggregate_key, e)
            logger.warning(
                "day_reaggregation_failed", agent_id=agent_id, day=day.isoformat(), error=message
            )
            return message
        return None

    async def run_main_aggregation(self, batch_size: int = 1000) -> AggregationResult:
        """
        Drain dirty keys; when there were none, fully reaggregate every agent.

        The fallback is the safety net for marks that never happened.
        """
        started = time.monotonic()
        logger.info("main_aggregation_started", batch_size=batch_size)

        dirty_result = await self.process_dirty_records(batch_size)
        if dirty_result.processed_count > 0:
            return dirty_result

        logger.info("main_aggregation_fallback_to_full")
        try:
            agents = await self.events.get_distinct_agents()
        except Exception as e:
            logger.exception("agents_scan_failed")
            agents = None
            scan_error = f"agents scan failed: {e}"
        else:
            scan_error = "agents scan failed after retries"
        if agents is None:
            logger.error("main_aggregation_fallback_failed", error=scan_error)
            errors = (dirty_result.errors or []) + [scan_error]
            return AggregationResult(
                success=False,
                failed_count=dirty_result.failed_count + 1,
                duration_ms=_elapsed_ms(started),
                errors=errors,
            )

        if not agents:
            logger.info("main_aggregation_no_agents")
            return dirty_result

        processed = 0
        failed = dirty_result.failed_count
        errors = list(dirty_result.errors or [])
        for agent_id in agents:
            agent_result = await self.full_reaggregation(agent_id)
            processed += agent_result.processed_count
            failed += agent_result.failed_count
            errors.extend(agent_result.errors or [])

        result = AggregationResult(
            success=failed == 0,
            processed_count=processed,
            failed_count=failed,
            duration_ms=_elapsed_ms(started),
            errors=errors or None,
        )
        logger.info(
            "main_aggregation_completed",
            agents=len(agents),
            processed=result.processed_count,
            failed=result.failed_count,
            duration_ms=result.duration_ms,
        )
        return result

    async def aggregate_date_range(
        self, agent_id: str, start: date, end: date
    ) -> AggregationResult:
        """Mark and aggregate the aggregate row of every day in [start, end]."""
        started = time.monotonic()
        logger.info(
            "date_range_aggregation_started",
            agent_id=agent_id,
            start=start.isoformat(),
            end=end.isoformat(),
        )

        processed = 0
        errors: list[str] = []
        for day in iter_days(start, end):
            key = DimensionKey(agent_id=agent_id, stat_date=day)
            try:
                await self.stats.mark_dirty(key, datetime.now(UTC))
                await self.aggregate_single_day(key)
                processed += 1
            except Exception as e:
                message = _keyed_error(key, e)
                errors.append(message)

        result = AggregationResult(
            success=not errors,
            processed_count=processed,
            failed_count=len(errors),
            duration_ms=_elapsed_ms(started),
            errors=errors or None,
        )
        logger.info(
            "date_range_aggregation_completed",
            agent_id=agent_id,
            processed=result.processed_count,
            failed=result.failed_count,
            duration_ms=result.duration_ms,
        )
        return result
