"""Pytest configuration for tests."""

import os
from pathlib import Path

import pytest
import pytest_asyncio
from asyncpg import create_pool
from dotenv import load_dotenv

# Load .env.test file if it exists
env_test_path = Path(__file__).parent.parent / ".env.test"
if env_test_path.exists():
    load_dotenv(env_test_path)

# Set test environment variables before any imports (only if not already set)
os.environ.setdefault("DATABASE_URL", "postgresql://localhost:5432/recruit_stats_test")
os.environ.setdefault("LOG_LEVEL", "INFO")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("REPORTING_TIMEZONE", "Asia/Shanghai")
os.environ.setdefault("STATS_SCHEDULER_ENABLED", "false")

SCHEMA_PATH = Path(__file__).parent.parent / "database" / "schema.sql"


@pytest_asyncio.fixture
async def db_pool():
    """
    Test database pool wired into the app's Database singleton.

    Applies database/schema.sql. Tests that use it are skipped when no
    PostgreSQL 15+ server is reachable at DATABASE_URL.
    """
    from recruit_stats.core import database as db_module
    from recruit_stats.core.config import settings

    try:
        pool = await create_pool(
            settings.database_url,
            min_size=1,
            max_size=5,
            timeout=5,
            init=db_module._init_connection,
        )
    except Exception as e:
        pytest.skip(f"PostgreSQL not available: {e}")

    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_PATH.read_text())

    # Initialize the app's database singleton so repositories work
    db_module.db.pool = pool

    yield pool

    db_module.db.pool = None
    await pool.close()


@pytest_asyncio.fixture
async def clean_db(db_pool):
    """Empty both tables before each test."""
    async with db_pool.acquire() as conn:
        await conn.execute("TRUNCATE recruitment_daily_stats, recruitment_events RESTART IDENTITY")

    yield db_pool
