"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException

from recruit_stats import __version__
from recruit_stats.api.errors import setup_exception_handlers
from recruit_stats.api.events import router as events_router
from recruit_stats.api.stats import router as stats_router
from recruit_stats.core.config import Settings, settings
from recruit_stats.core.database import Database, db
from recruit_stats.core.logging import logger, setup_logging
from recruit_stats.middleware import LoggingMiddleware, RequestIDMiddleware, setup_cors
from recruit_stats.models.stats import SchedulerConfig
from recruit_stats.services.aggregation import AggregationService
from recruit_stats.services.dirty_tracker import DirtyTracker
from recruit_stats.services.events import EventRepository, EventService
from recruit_stats.services.query import QueryService
from recruit_stats.services.scheduler import StatsScheduler
from recruit_stats.services.stats_store import StatsRepository

# Configure logging
setup_logging()


def build_services(app: FastAPI, database: Database, config: Settings) -> None:
    """Wire repositories and services onto app.state."""
    tz = config.reporting_tz
    event_repository = EventRepository(database)
    stats_repository = StatsRepository(database)
    dirty_tracker = DirtyTracker(stats_repository, tz)
    aggregation = AggregationService(event_repository, stats_repository, tz)

    app.state.event_service = EventService(event_repository, dirty_tracker)
    app.state.query_service = QueryService(stats_repository, event_repository, tz)
    app.state.aggregation_service = aggregation
    app.state.stats_scheduler = StatsScheduler(
        aggregation,
        SchedulerConfig(
            dirty_interval_minutes=config.stats_dirty_interval_minutes,
            main_aggregation_hour=config.stats_main_aggregation_hour,
            batch_size=config.stats_batch_size,
            main_batch_size=config.stats_main_batch_size,
            enabled=config.stats_scheduler_enabled,
        ),
        tz,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    # Startup
    logger.info("application_starting", reporting_timezone=settings.reporting_timezone)
    await db.connect()

    build_services(app, db, settings)
    app.state.stats_scheduler.start()

    logger.info("application_ready")

    yield

    # Shutdown
    logger.info("application_shutting_down")
    app.state.stats_scheduler.shutdown()
    await app.state.event_service.wait_for_background_tasks()
    await db.disconnect()
    logger.info("application_stopped")


app = FastAPI(
    title="Recruitment Stats",
    description="Materialized recruitment funnel statistics",
    version=__version__,
    lifespan=lifespan,
)

# Middleware runs outermost-last-added: request ids are bound before logging
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
setup_cors(app)
setup_exception_handlers(app)

app.include_router(events_router)
app.include_router(stats_router)


@app.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Health check endpoint.

    Verifies database connectivity and reports pool and scheduler state.

    Raises:
        HTTPException: 503 if database is unavailable
    """
    try:
        await db.fetchval("SELECT 1")

        if not db.pool:
            raise RuntimeError("Database pool not initialized")

        pool_size = db.pool.get_size()
        pool_free = db.pool.get_idle_size()
    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        raise HTTPException(status_code=503, detail="Database unavailable") from e

    scheduler = getattr(app.state, "stats_scheduler", None)
    status = scheduler.get_status() if scheduler else None

    return {
        "status": "healthy",
        "database": "connected",
        "scheduler": "running" if status and status.is_running else "stopped",
        "last_aggregation": (
            status.last_run_time.isoformat() if status and status.last_run_time else None
        ),
        "next_main_aggregation": (
            status.next_main_aggregation_time.isoformat()
            if status and status.next_main_aggregation_time
            else None
        ),
        "pool": {
            "size": pool_size,
            "free": pool_free,
            "in_use": pool_size - pool_free,
        },
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Recruitment Stats Engine"}
