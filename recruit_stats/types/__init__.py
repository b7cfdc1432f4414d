"""Type definitions for database rows."""

# Database record types
from recruit_stats.types.database import (
    DailyStatsRecordTD,
    DimensionRowTD,
    EventMetricRowTD,
    RecruitmentEventRecordTD,
    UnrepliedCandidateRowTD,
)

__all__ = [
    "DailyStatsRecordTD",
    "DimensionRowTD",
    "EventMetricRowTD",
    "RecruitmentEventRecordTD",
    "UnrepliedCandidateRowTD",
]
