"""Scheduler service for background stats aggregation."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from structlog import get_logger

from recruit_stats.models.stats import AggregationResult, SchedulerConfig, SchedulerStatus
from recruit_stats.services.aggregation import AggregationService
from recruit_stats.utils.time import next_daily_run

logger = get_logger()

DIRTY_DRAIN_JOB_ID = "stats_dirty_drain"
MAIN_AGGREGATION_JOB_ID = "stats_main_aggregation"


class StatsScheduler:
    """
    Drives the aggregation engine on a timer.

    Jobs:
    - stats_dirty_drain: every dirty_interval_minutes, first run at start
    - stats_main_aggregation: once a day at main_aggregation_hour in the
      reporting timezone, rescheduling itself after each run

    Both jobs use coalesce=True and max_instances=1 to prevent overlaps. A job
    that blows up is recorded as a failed last_run_result and never stops the
    scheduler.
    """

    def __init__(
        self,
        aggregation: AggregationService,
        config: SchedulerConfig,
        tz: ZoneInfo,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self.aggregation = aggregation
        self.config = config
        self.tz = tz
        self.scheduler = scheduler or AsyncIOScheduler(timezone=tz)
        self.is_running = False
        self.last_run_result: AggregationResult | None = None
        self.last_run_time: datetime | None = None
        self.next_main_aggregation_time: datetime | None = None

    def start(self) -> None:
        """Add both jobs and start the underlying scheduler."""
        if self.is_running:
            logger.warning("stats_scheduler_already_running")
            return
        if not self.config.enabled:
            logger.info("stats_scheduler_disabled")
            return

        self.scheduler.add_job(
            self.run_dirty_aggregation,
            trigger="interval",
            minutes=self.config.dirty_interval_minutes,
            id=DIRTY_DRAIN_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            next_run_time=datetime.now(self.tz),
        )
        self._schedule_main_aggregation()

        if not self.scheduler.running:
            self.scheduler.start()
        self.is_running = True

        logger.info(
            "stats_scheduler_started",
            dirty_interval_minutes=self.config.dirty_interval_minutes,
            main_aggregation_hour=self.config.main_aggregation_hour,
            batch_size=self.config.batch_size,
            next_main_aggregation_time=self.next_main_aggregation_time,
        )

    def stop(self) -> None:
        """
        Cancel both jobs.

        The underlying APScheduler keeps running with an empty job store and a
        later start() adds the jobs back. shutdown() is for process exit.
        """
        if not self.is_running:
            logger.warning("stats_scheduler_not_running")
            return

        for job_id in (DIRTY_DRAIN_JOB_ID, MAIN_AGGREGATION_JOB_ID):
            try:
                self.scheduler.remove_job(job_id)
            except JobLookupError:
                logger.debug("stats_scheduler_job_missing", job_id=job_id)

        self.is_running = False
        self.next_main_aggregation_time = None
        logger.info("stats_scheduler_stopped")

    def shutdown(self) -> None:
        """Stop the jobs and shut the underlying scheduler down for good."""
        if self.is_running:
            self.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("stats_scheduler_shutdown")

    def _schedule_main_aggregation(self) -> None:
        next_run = next_daily_run(datetime.now(UTC), self.config.main_aggregation_hour, self.tz)
        self.next_main_aggregation_time = next_run
        # No misfire grace limit: a late daily run must still fire, or nothing
        # books the next one
        self.scheduler.add_job(
            self.run_scheduled_main_aggregation,
            trigger="date",
            run_date=next_run,
            id=MAIN_AGGREGATION_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=None,
        )
        logger.info("stats_main_aggregation_scheduled", run_at=next_run.isoformat())

    async def run_dirty_aggregation(self) -> None:
        """Drain tick."""
        try:
            result = await self.aggregation.process_dirty_records(self.config.batch_size)
        except Exception as e:
            logger.exception("stats_dirty_aggregation_failed")
            result = AggregationResult.failed(str(e))
        self._record(result)
        if result.processed_count > 0:
            logger.info(
                "stats_dirty_aggregation_completed",
                processed=result.processed_count,
                failed=result.failed_count,
            )

    async def run_scheduled_main_aggregation(self) -> None:
        """Daily tick. Always books the next day's run, even after a failure."""
        try:
            result = await self.aggregation.run_main_aggregation(self.config.main_batch_size)
        except Exception as e:
            logger.exception("stats_main_aggregation_failed")
            result = AggregationResult.failed(str(e))
        self._record(result)
        logger.info(
            "stats_main_aggregation_completed",
            success=result.success,
            processed=result.processed_count,
            failed=result.failed_count,
        )

        if self.is_running:
            self._schedule_main_aggregation()

    async def trigger_manual(self, agent_id: str | None = None) -> AggregationResult:
        """
        Run an aggregation now, whether or not the scheduler is running.

        With an agent_id, fully reaggregates that agent. Without one, runs the
        main aggregation (dirty drain with full fallback).
        """
        logger.info("stats_manual_aggregation_triggered", agent_id=agent_id)
        if agent_id:
            result = await self.aggregation.full_reaggregation(agent_id)
        else:
            result = await self.aggregation.run_main_aggregation(self.config.main_batch_size)
        self._record(result)
        return result

    def get_status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_running=self.is_running,
            last_run_result=self.last_run_result,
            last_run_time=self.last_run_time,
            next_main_aggregation_time=self.next_main_aggregation_time,
            config=self.config,
        )

    def update_config(self, **changes: Any) -> SchedulerConfig:
        """Merge config changes. Running jobs keep their settings until restart."""
        self.config = SchedulerConfig.model_validate({**self.config.model_dump(), **changes})
        logger.info("stats_scheduler_config_updated", changes=changes)
        return self.config

    def _record(self, result: AggregationResult) -> None:
        self.last_run_result = result
        self.last_run_time = datetime.now(UTC)
