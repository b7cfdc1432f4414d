"""Tests for database connection pool manager (recruit_stats/core/database.py)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from recruit_stats.core.database import Database, _init_connection


# Helper class for async context manager mocking
class AsyncContextManager:
    """Helper for mocking async context managers."""

    def __init__(self, return_value):
        self.return_value = return_value

    async def __aenter__(self):
        return self.return_value

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


def pool_with(conn: MagicMock) -> MagicMock:
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=AsyncContextManager(conn))
    return pool


@pytest.mark.asyncio
async def test_connect_success():
    """Connection pool created with the JSONB codec installed on each connection."""
    db = Database()
    mock_pool = MagicMock()

    with patch(
        "recruit_stats.core.database.asyncpg.create_pool", new_callable=AsyncMock
    ) as mock_create:
        mock_create.return_value = mock_pool

        await db.connect()

        mock_create.assert_called_once()
        call_kwargs = mock_create.call_args[1]
        assert call_kwargs["min_size"] == 2
        assert call_kwargs["max_size"] == 10
        assert call_kwargs["command_timeout"] == 60
        assert call_kwargs["init"] is _init_connection

        assert db.pool == mock_pool


@pytest.mark.asyncio
async def test_connect_retry_on_failure():
    """Retries connection on failure with exponential backoff."""
    db = Database()
    mock_pool = MagicMock()

    with (
        patch(
            "recruit_stats.core.database.asyncpg.create_pool", new_callable=AsyncMock
        ) as mock_create,
        patch("recruit_stats.core.database.asyncio.sleep", new_callable=AsyncMock) as mock_sleep,
    ):
        mock_create.side_effect = [Exception("Connection failed"), mock_pool]

        await db.connect()

        assert mock_create.call_count == 2
        mock_sleep.assert_called_once_with(2)
        assert db.pool == mock_pool


@pytest.mark.asyncio
async def test_connect_max_retries_exhausted():
    """Exception raised after max retries exhausted."""
    db = Database()

    with (
        patch(
            "recruit_stats.core.database.asyncpg.create_pool", new_callable=AsyncMock
        ) as mock_create,
        patch("recruit_stats.core.database.asyncio.sleep", new_callable=AsyncMock),
    ):
        mock_create.side_effect = Exception("Connection failed")

        with pytest.raises(Exception, match="Connection failed"):
            await db.connect()

        assert mock_create.call_count == 3


@pytest.mark.asyncio
async def test_init_connection_registers_jsonb_codec():
    """event_details round-trips as a dict, not a JSON string."""
    conn = MagicMock()
    conn.set_type_codec = AsyncMock()

    await _init_connection(conn)

    conn.set_type_codec.assert_called_once()
    assert conn.set_type_codec.call_args[0][0] == "jsonb"
    assert conn.set_type_codec.call_args[1]["schema"] == "pg_catalog"


@pytest.mark.asyncio
async def test_disconnect_closes_pool():
    """Disconnect closes pool and forgets it."""
    db = Database()
    mock_pool = MagicMock()
    mock_pool.close = AsyncMock()
    db.pool = mock_pool

    await db.disconnect()

    mock_pool.close.assert_called_once()
    assert db.pool is None


@pytest.mark.asyncio
async def test_disconnect_when_no_pool():
    """Disconnect handles missing pool gracefully."""
    db = Database()
    db.pool = None

    await db.disconnect()


@pytest.mark.asyncio
async def test_execute_success():
    """Execute runs query successfully."""
    db = Database()
    mock_conn = MagicMock()
    mock_conn.execute = AsyncMock(return_value="UPDATE 1")
    db.pool = pool_with(mock_conn)

    result = await db.execute("UPDATE recruitment_daily_stats SET is_dirty = $1", True)

    assert result == "UPDATE 1"
    mock_conn.execute.assert_called_once_with(
        "UPDATE recruitment_daily_stats SET is_dirty = $1", True
    )


@pytest.mark.asyncio
async def test_executemany_passes_argument_tuples():
    db = Database()
    mock_conn = MagicMock()
    mock_conn.executemany = AsyncMock()
    db.pool = pool_with(mock_conn)

    await db.executemany("INSERT INTO t VALUES ($1)", [(1,), (2,)])

    mock_conn.executemany.assert_called_once_with("INSERT INTO t VALUES ($1)", [(1,), (2,)])


@pytest.mark.asyncio
async def test_execute_no_pool_raises_error():
    """Execute raises RuntimeError when pool not initialized."""
    db = Database()
    db.pool = None

    with pytest.raises(RuntimeError, match="Database pool not initialized"):
        await db.execute("SELECT 1")


@pytest.mark.asyncio
async def test_fetch_success():
    """Fetch returns multiple rows."""
    db = Database()
    mock_conn = MagicMock()
    mock_rows = [{"id": 1}, {"id": 2}]
    mock_conn.fetch = AsyncMock(return_value=mock_rows)
    db.pool = pool_with(mock_conn)

    result = await db.fetch("SELECT * FROM recruitment_events WHERE agent_id = $1", "agent-1")

    assert result == mock_rows
    mock_conn.fetch.assert_called_once_with(
        "SELECT * FROM recruitment_events WHERE agent_id = $1", "agent-1"
    )


@pytest.mark.asyncio
async def test_fetchrow_success():
    """Fetchrow returns single row."""
    db = Database()
    mock_conn = MagicMock()
    mock_row = {"id": 1, "agent_id": "agent-1"}
    mock_conn.fetchrow = AsyncMock(return_value=mock_row)
    db.pool = pool_with(mock_conn)

    result = await db.fetchrow("SELECT * FROM recruitment_events WHERE id = $1", 1)

    assert result == mock_row


@pytest.mark.asyncio
async def test_fetchval_success():
    """Fetchval returns single value."""
    db = Database()
    mock_conn = MagicMock()
    mock_conn.fetchval = AsyncMock(return_value=42)
    db.pool = pool_with(mock_conn)

    result = await db.fetchval("SELECT COUNT(*) FROM recruitment_events")

    assert result == 42
    mock_conn.fetchval.assert_called_once_with("SELECT COUNT(*) FROM recruitment_events")
