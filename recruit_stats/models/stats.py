"""Pydantic models for daily stats, aggregation results and the scheduler."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# ============================================
# Dimension keys
# ============================================


class DimensionKey(BaseModel):
    """
    One materialized row's identity: agent + business day + optional brand/job.

    brand_id=None and job_id=None is the aggregate row for the agent's day.
    None is a sentinel distinct from 0.
    """

    model_config = ConfigDict(frozen=True)

    agent_id: str
    stat_date: date
    brand_id: int | None = None
    job_id: int | None = None

    @property
    def is_aggregate(self) -> bool:
        return self.brand_id is None and self.job_id is None

    def label(self) -> str:
        """Short form for logs and error lists: agent@2025-12-10[brand/job]."""
        brand = "-" if self.brand_id is None else str(self.brand_id)
        job = "-" if self.job_id is None else str(self.job_id)
        return f"{self.agent_id}@{self.stat_date.isoformat()}[{brand}/{job}]"


# ============================================
# Materialized rows
# ============================================


class DailyMetrics(BaseModel):
    """Funnel counts and basis-point rates for one dimension-day."""

    # Traffic
    total_events: int = 0
    unique_candidates: int = 0
    unique_sessions: int = 0

    # Inbound funnel
    messages_sent: int = 0
    messages_received: int = 0
    inbound_candidates: int = 0
    candidates_replied: int = 0
    unread_replied: int = 0

    # Outbound funnel
    proactive_outreach: int = 0
    proactive_responded: int = 0

    # Conversion
    wechat_exchanged: int = 0
    interviews_booked: int = 0
    candidates_hired: int = 0

    # Basis points (8550 = 85.5%), None when inbound_candidates is 0
    reply_rate: int | None = None
    wechat_rate: int | None = None
    interview_rate: int | None = None


COUNT_FIELDS: tuple[str, ...] = (
    "total_events",
    "unique_candidates",
    "unique_sessions",
    "messages_sent",
    "messages_received",
    "inbound_candidates",
    "candidates_replied",
    "unread_replied",
    "proactive_outreach",
    "proactive_responded",
    "wechat_exchanged",
    "interviews_booked",
    "candidates_hired",
)

RATE_FIELDS: tuple[str, ...] = ("reply_rate", "wechat_rate", "interview_rate")


class DailyStatsRecord(DailyMetrics):
    """Full overwrite payload for recruitment_daily_stats."""

    agent_id: str
    stat_date: date
    brand_id: int | None = None
    job_id: int | None = None

    @classmethod
    def from_metrics(cls, key: DimensionKey, metrics: DailyMetrics) -> DailyStatsRecord:
        return cls(**key.model_dump(), **metrics.model_dump())

    @property
    def key(self) -> DimensionKey:
        return DimensionKey(
            agent_id=self.agent_id,
            stat_date=self.stat_date,
            brand_id=self.brand_id,
            job_id=self.job_id,
        )


class StoredDailyStats(DailyStatsRecord):
    """A row as read back from the stats store."""

    is_dirty: bool
    aggregated_at: datetime | None = None
    updated_at: datetime | None = None


# ============================================
# Aggregation runs
# ============================================


class AggregationResult(BaseModel):
    """Summary of one batch, full reaggregation or scheduler tick."""

    success: bool
    processed_count: int = 0
    failed_count: int = 0
    duration_ms: int = 0
    errors: list[str] | None = None

    @classmethod
    def failed(cls, error: str) -> AggregationResult:
        """Result recorded when a whole tick blew up."""
        return cls(success=False, processed_count=0, failed_count=1, errors=[error])


class SchedulerConfig(BaseModel):
    dirty_interval_minutes: int = Field(default=5, gt=0)
    main_aggregation_hour: int = Field(default=2, ge=0, le=23)
    batch_size: int = Field(default=50, gt=0)
    main_batch_size: int = Field(default=1000, gt=0)
    enabled: bool = True


class SchedulerStatus(BaseModel):
    is_running: bool
    last_run_result: AggregationResult | None
    last_run_time: datetime | None
    next_main_aggregation_time: datetime | None
    config: SchedulerConfig


class TriggerAggregationRequest(BaseModel):
    """Body for POST /admin/stats/aggregate."""

    agent_id: str | None = None


class TriggerAggregationResponse(BaseModel):
    message: str
    result: AggregationResult


# ============================================
# Query side
# ============================================


class TimeRange(StrEnum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    CUSTOM = "custom"


class StatsQuery(BaseModel):
    agent_id: str | None = None
    start_date: date
    end_date: date
    time_range: TimeRange = TimeRange.DAY
    brand_id: int | None = None
    job_id: int | None = None


class AggregatedStats(DailyMetrics):
    """Counts summed over a date range for one (agent, brand, job)."""

    agent_id: str
    start_date: date
    end_date: date
    brand_id: int | None = None
    job_id: int | None = None


class DashboardSummary(BaseModel):
    current: list[AggregatedStats]
    previous: list[AggregatedStats]
    # Percentage change vs previous period, None when both periods are empty
    trend: dict[str, int | None]


class DailyTrendItem(BaseModel):
    stat_date: date
    messages_received: int = 0
    inbound_candidates: int = 0
    candidates_replied: int = 0
    wechat_exchanged: int = 0
    interviews_booked: int = 0
    unread_replied: int = 0
    proactive_outreach: int = 0
    proactive_responded: int = 0


class UnrepliedCandidate(BaseModel):
    name: str
    position: str | None
    agent_id: str
    platform: str | None
    last_message_time: datetime
