"""Dirty tracker: flags dimension-days whose materialized stats are stale."""

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from structlog import get_logger

from recruit_stats.models.events import RecruitmentEvent
from recruit_stats.models.stats import DimensionKey
from recruit_stats.services.stats_store import StatsRepository
from recruit_stats.utils.time import business_day

logger = get_logger()


class DirtyTracker:
    """
    Marks stats rows dirty after event writes.

    Marking is one upsert per key, safe to repeat and safe to race: the
    conflict key serializes concurrent marks in the database.
    """

    def __init__(self, stats: StatsRepository, tz: ZoneInfo) -> None:
        self.stats = stats
        self.tz = tz

    def key_for(
        self,
        agent_id: str,
        event_time: datetime,
        brand_id: int | None = None,
        job_id: int | None = None,
    ) -> DimensionKey:
        return DimensionKey(
            agent_id=agent_id,
            stat_date=business_day(event_time, self.tz),
            brand_id=brand_id,
            job_id=job_id,
        )

    def keys_for_event(self, event: RecruitmentEvent) -> list[DimensionKey]:
        """The aggregate key, plus the (brand, job) key when the event has either."""
        keys = [self.key_for(event.agent_id, event.event_time)]
        if event.brand_id is not None or event.job_id is not None:
            keys.append(
                self.key_for(event.agent_id, event.event_time, event.brand_id, event.job_id)
            )
        return keys

    async def mark_dirty(
        self,
        agent_id: str,
        event_time: datetime,
        brand_id: int | None = None,
        job_id: int | None = None,
    ) -> bool:
        """Mark one key. Returns False when the store gave up after retries."""
        key = self.key_for(agent_id, event_time, brand_id, job_id)
        return await self._mark(key)

    async def mark_event_dirty(self, event: RecruitmentEvent) -> None:
        await self.mark_keys(self.keys_for_event(event))

    async def mark_keys(self, keys: list[DimensionKey]) -> None:
        for key in keys:
            await self._mark(key)

    async def _mark(self, key: DimensionKey) -> bool:
        marked = await self.stats.mark_dirty(key, datetime.now(UTC))
        if marked is None:
            logger.warning("mark_dirty_skipped", key=key.label())
            return False
        logger.debug("stats_marked_dirty", key=key.label())
        return True
