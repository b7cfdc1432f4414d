"""asyncpg connection pool manager."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import asyncpg
from structlog import get_logger

from recruit_stats.core.config import settings

logger = get_logger()


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode JSONB columns (event_details) into Python objects."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


class Database:
    """Thin wrapper around an asyncpg pool shared by all repositories."""

    def __init__(self) -> None:
        self.pool: asyncpg.Pool | None = None

    async def connect(self, max_retries: int = 3) -> None:
        """
        Create the connection pool.

        Retries with exponential backoff (2s, 4s, ...) so the service can start
        while PostgreSQL is still coming up.

        Raises:
            Exception: Last connection error once retries are exhausted
        """
        for attempt in range(1, max_retries + 1):
            try:
                self.pool = await asyncpg.create_pool(
                    settings.database_url,
                    min_size=2,
                    max_size=10,
                    command_timeout=60,
                    init=_init_connection,
                )
                logger.info("database_connected", attempt=attempt)
                return
            except Exception as e:
                logger.warning(
                    "database_connect_failed",
                    attempt=attempt,
                    max_retries=max_retries,
                    error=str(e),
                )
                if attempt == max_retries:
                    raise
                await asyncio.sleep(2**attempt)

    async def disconnect(self) -> None:
        """Close the pool if one is open."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("database_disconnected")

    def _require_pool(self) -> asyncpg.Pool:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")
        return self.pool

    async def execute(self, query: str, *args: Any) -> str:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            return await conn.execute(query, *args)

    async def executemany(self, query: str, args: list[tuple[Any, ...]]) -> None:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            await conn.executemany(query, args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval(query, *args)


db = Database()
