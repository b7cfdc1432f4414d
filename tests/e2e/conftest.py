"""E2E test fixtures for HTTP testing."""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from recruit_stats.core.config import settings
from recruit_stats.core.database import db
from recruit_stats.main import app, build_services


@pytest_asyncio.fixture
async def http_client(clean_db):
    """HTTP client for testing actual FastAPI app.

    Uses the clean_db fixture to ensure database is clean for each test.
    The app's lifespan context manager is not run: services are wired onto
    app.state directly and the scheduler is never started, so aggregation
    only happens when a test triggers it.
    """
    build_services(app, db, settings)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    await app.state.event_service.wait_for_background_tasks()
