"""Stats store: SQL access to recruitment_daily_stats."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from structlog import get_logger

from recruit_stats.core.database import Database, db
from recruit_stats.core.retry import with_retry
from recruit_stats.models.stats import (
    COUNT_FIELDS,
    RATE_FIELDS,
    DailyStatsRecord,
    DimensionKey,
    StoredDailyStats,
)

logger = get_logger()

_METRIC_COLUMNS = COUNT_FIELDS + RATE_FIELDS

# Conflict target shared by marking and upserting. The constraint is
# NULLS NOT DISTINCT, so the (NULL, NULL) aggregate row conflicts with itself.
_CONFLICT = "ON CONFLICT ON CONSTRAINT uq_recruitment_daily_stats_dimension"

_UPSERT_SQL = f"""
    INSERT INTO recruitment_daily_stats
        (agent_id, stat_date, brand_id, job_id, {", ".join(_METRIC_COLUMNS)},
         is_dirty, aggregated_at, updated_at)
    VALUES ($1, $2, $3, $4, {", ".join(f"${i}" for i in range(5, 5 + len(_METRIC_COLUMNS)))},
            FALSE, ${5 + len(_METRIC_COLUMNS)}, ${5 + len(_METRIC_COLUMNS)})
    {_CONFLICT} DO UPDATE SET
        {", ".join(f"{col} = EXCLUDED.{col}" for col in _METRIC_COLUMNS)},
        is_dirty = recruitment_daily_stats.updated_at > ${6 + len(_METRIC_COLUMNS)},
        aggregated_at = EXCLUDED.aggregated_at,
        updated_at = CASE
            WHEN recruitment_daily_stats.updated_at > ${6 + len(_METRIC_COLUMNS)}
            THEN recruitment_daily_stats.updated_at
            ELSE EXCLUDED.updated_at
        END
    RETURNING is_dirty
"""


def _dimension_filter(
    brand_id: int | None, job_id: int | None, first_param: int
) -> tuple[str, list[Any]]:
    """
    SQL for the brand/job filter on stats reads.

    A missing filter reads the aggregate rows (IS NULL), never all rows:
    summing per-dimension rows on top of the aggregate would double count.
    """
    clauses: list[str] = []
    args: list[Any] = []
    param = first_param
    for column, value in (("brand_id", brand_id), ("job_id", job_id)):
        if value is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = ${param}")
            args.append(value)
            param += 1
    return " AND ".join(clauses), args


class StatsRepository:
    """Point upsert, dirty scan and range queries over recruitment_daily_stats."""

    def __init__(self, database: Database = db) -> None:
        self.db = database

    async def mark_dirty(self, key: DimensionKey, marked_at: datetime) -> bool | None:
        """
        Flag a dimension-day stale in one atomic statement.

        Inserts a zero row when the key is new; otherwise only is_dirty and
        updated_at change. Returns None once retries are exhausted.
        """

        async def _mark() -> bool:
            await self.db.execute(
                f"""
                INSERT INTO recruitment_daily_stats
                    (agent_id, stat_date, brand_id, job_id, is_dirty, updated_at)
                VALUES ($1, $2, $3, $4, TRUE, $5)
                {_CONFLICT} DO UPDATE SET
                    is_dirty = TRUE,
                    updated_at = EXCLUDED.updated_at
                """,
                key.agent_id,
                key.stat_date,
                key.brand_id,
                key.job_id,
                marked_at,
            )
            return True

        return await with_retry(_mark, "mark_dirty")

    async def upsert_stats(
        self, record: DailyStatsRecord, aggregated_at: datetime, scan_started_at: datetime
    ) -> bool | None:
        """
        Overwrite every metric column for the record's key and clear is_dirty.

        If the key was marked again after `scan_started_at`, the newer events
        may be missing from `record`, so is_dirty stays TRUE.

        Returns:
            The row's is_dirty after the write, or None once retries are exhausted
        """

        async def _upsert() -> bool:
            still_dirty: bool = await self.db.fetchval(
                _UPSERT_SQL,
                record.agent_id,
                record.stat_date,
                record.brand_id,
                record.job_id,
                *(getattr(record, col) for col in _METRIC_COLUMNS),
                aggregated_at,
                scan_started_at,
            )
            return still_dirty

        return await with_retry(_upsert, "upsert_stats")

    async def find_dirty_records(self, limit: int = 100) -> list[DimensionKey] | None:
        """Oldest-marked dirty keys first. None once retries are exhausted."""

        async def _find() -> list[DimensionKey]:
            rows = await self.db.fetch(
                """
                SELECT agent_id, stat_date, brand_id, job_id
                FROM recruitment_daily_stats
                WHERE is_dirty
                ORDER BY updated_at
                LIMIT $1
                """,
                limit,
            )
            return [DimensionKey(**dict(row)) for row in rows]

        return await with_retry(_find, "find_dirty_records")

    async def get_stats(self, key: DimensionKey) -> StoredDailyStats | None:
        row = await self.db.fetchrow(
            f"""
            SELECT agent_id, stat_date, brand_id, job_id, {", ".join(_METRIC_COLUMNS)},
                   is_dirty, aggregated_at, updated_at
            FROM recruitment_daily_stats
            WHERE agent_id = $1 AND stat_date = $2
              AND brand_id IS NOT DISTINCT FROM $3
              AND job_id IS NOT DISTINCT FROM $4
            """,
            key.agent_id,
            key.stat_date,
            key.brand_id,
            key.job_id,
        )
        return StoredDailyStats(**dict(row)) if row else None

    async def query_stats(
        self,
        agent_id: str | None,
        start: date,
        end: date,
        brand_id: int | None = None,
        job_id: int | None = None,
    ) -> list[StoredDailyStats]:
        """Materialized rows with stat_date in [start, end], oldest first."""
        dimension_sql, dimension_args = _dimension_filter(brand_id, job_id, first_param=4)

        async def _query() -> list[StoredDailyStats]:
            rows = await self.db.fetch(
                f"""
                SELECT agent_id, stat_date, brand_id, job_id, {", ".join(_METRIC_COLUMNS)},
                       is_dirty, aggregated_at, updated_at
                FROM recruitment_daily_stats
                WHERE stat_date >= $1 AND stat_date <= $2
                  AND ($3::text IS NULL OR agent_id = $3)
                  AND {dimension_sql}
                ORDER BY stat_date, agent_id
                """,
                start,
                end,
                agent_id,
                *dimension_args,
            )
            return [StoredDailyStats(**dict(row)) for row in rows]

        return await with_retry(_query, "query_stats") or []

    async def query_aggregated_stats(
        self,
        agent_id: str | None,
        start: date,
        end: date,
        brand_id: int | None = None,
        job_id: int | None = None,
    ) -> list[dict[str, Any]]:
        """Counts summed over [start, end], one row per (agent, brand, job)."""
        dimension_sql, dimension_args = _dimension_filter(brand_id, job_id, first_param=4)
        sums = ", ".join(f"COALESCE(SUM({col}), 0)::int AS {col}" for col in COUNT_FIELDS)

        async def _query() -> list[dict[str, Any]]:
            rows = await self.db.fetch(
                f"""
                SELECT agent_id, brand_id, job_id, {sums}
                FROM recruitment_daily_stats
                WHERE stat_date >= $1 AND stat_date <= $2
                  AND ($3::text IS NULL OR agent_id = $3)
                  AND {dimension_sql}
                GROUP BY agent_id, brand_id, job_id
                ORDER BY agent_id
                """,
                start,
                end,
                agent_id,
                *dimension_args,
            )
            return [dict(row) for row in rows]

        return await with_retry(_query, "query_aggregated_stats") or []
