"""Tests for FastAPI application (recruit_stats/main.py)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from recruit_stats.core.config import Settings
from recruit_stats.main import app, build_services, lifespan
from recruit_stats.services.events import EventService
from recruit_stats.services.query import QueryService
from recruit_stats.services.scheduler import StatsScheduler


@pytest_asyncio.fixture
async def http_client():
    """HTTP client for the app, without running the lifespan."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def healthy_pool():
    pool = MagicMock()
    pool.get_size.return_value = 5
    pool.get_idle_size.return_value = 3
    with (
        patch("recruit_stats.main.db.fetchval", new_callable=AsyncMock, return_value=1),
        patch("recruit_stats.main.db.pool", pool),
    ):
        yield pool


@pytest.mark.asyncio
async def test_health_check_success(http_client, healthy_pool):
    """Health check returns 200 with database, pool and scheduler info."""
    response = await http_client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "connected"
    assert data["pool"] == {"size": 5, "free": 3, "in_use": 2}
    assert data["scheduler"] in ("running", "stopped")


@pytest.mark.asyncio
async def test_health_check_reports_scheduler(http_client, healthy_pool):
    scheduler = MagicMock()
    scheduler.get_status.return_value = MagicMock(
        is_running=True, last_run_time=None, next_main_aggregation_time=None
    )
    with patch.object(app.state, "stats_scheduler", scheduler, create=True):
        response = await http_client.get("/health")

    data = response.json()
    assert data["scheduler"] == "running"
    assert data["last_aggregation"] is None


@pytest.mark.asyncio
async def test_health_check_database_unavailable(http_client):
    """Health check returns 503 when database is unavailable."""
    with patch("recruit_stats.main.db.fetchval", new_callable=AsyncMock) as mock_fetchval:
        mock_fetchval.side_effect = Exception("Connection failed")

        response = await http_client.get("/health")

    assert response.status_code == 503
    assert response.json()["error"]["message"] == "Database unavailable"


@pytest.mark.asyncio
async def test_health_check_pool_not_initialized(http_client):
    """Health check returns 503 when pool is not initialized."""
    with (
        patch("recruit_stats.main.db.fetchval", new_callable=AsyncMock, return_value=1),
        patch("recruit_stats.main.db.pool", None),
    ):
        response = await http_client.get("/health")

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_root_endpoint(http_client):
    response = await http_client.get("/")

    assert response.status_code == 200
    assert "Recruitment Stats" in response.json()["message"]


def test_build_services_wires_app_state():
    target = FastAPI()
    config = Settings(
        database_url="postgresql://localhost/test",
        stats_main_aggregation_hour=4,
        stats_scheduler_enabled=False,
    )

    build_services(target, MagicMock(), config)

    assert isinstance(target.state.event_service, EventService)
    assert isinstance(target.state.query_service, QueryService)
    assert isinstance(target.state.stats_scheduler, StatsScheduler)
    assert target.state.stats_scheduler.config.main_aggregation_hour == 4
    assert target.state.stats_scheduler.config.enabled is False


@pytest.mark.asyncio
async def test_lifespan_startup_and_shutdown_sequence():
    """Connect, start scheduler; on shutdown stop scheduler, drain marks, disconnect."""
    target = FastAPI()
    call_order: list[str] = []

    scheduler = MagicMock()
    scheduler.start.side_effect = lambda: call_order.append("start_scheduler")
    scheduler.shutdown.side_effect = lambda: call_order.append("stop_scheduler")
    event_service = MagicMock()
    event_service.wait_for_background_tasks = AsyncMock(
        side_effect=lambda: call_order.append("drain_marks")
    )

    def fake_build(app, database, config):
        call_order.append("build_services")
        app.state.stats_scheduler = scheduler
        app.state.event_service = event_service

    with (
        patch(
            "recruit_stats.main.db.connect",
            new_callable=AsyncMock,
            side_effect=lambda: call_order.append("connect"),
        ),
        patch("recruit_stats.main.build_services", side_effect=fake_build),
        patch(
            "recruit_stats.main.db.disconnect",
            new_callable=AsyncMock,
            side_effect=lambda: call_order.append("disconnect"),
        ),
    ):
        async with lifespan(target):
            call_order.append("serving")

    assert call_order == [
        "connect",
        "build_services",
        "start_scheduler",
        "serving",
        "stop_scheduler",
        "drain_marks",
        "disconnect",
    ]


@pytest.mark.asyncio
async def test_lifespan_connect_failure_propagates():
    with (
        patch(
            "recruit_stats.main.db.connect",
            new_callable=AsyncMock,
            side_effect=OSError("connection refused"),
        ),
        patch("recruit_stats.main.build_services") as mock_build,
    ):
        with pytest.raises(OSError):
            async with lifespan(FastAPI()):
                pass

    mock_build.assert_not_called()
