"""Application configuration."""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(env_file=".env")

    # Database
    database_url: str
    db_retry_attempts: int = 2
    db_retry_delay_seconds: float = 0.5

    # Application
    log_level: str = "INFO"
    log_json: bool = True
    expose_error_details: bool = False

    # Frontend (for CORS)
    frontend_url: str = "http://localhost:3000"

    # Day boundaries for every stats read and write
    reporting_timezone: str = "Asia/Shanghai"

    # Stats scheduler
    stats_scheduler_enabled: bool = True
    stats_dirty_interval_minutes: int = 5
    stats_main_aggregation_hour: int = 2
    stats_batch_size: int = 50
    stats_main_batch_size: int = 1000

    @property
    def frontend_urls(self) -> list[str]:
        """Parse frontend URLs from comma-separated env var."""
        return [url.strip() for url in self.frontend_url.split(",")]

    @property
    def reporting_tz(self) -> ZoneInfo:
        return ZoneInfo(self.reporting_timezone)

    @field_validator("reporting_timezone")
    @classmethod
    def validate_reporting_timezone(cls, v: str) -> str:
        """Reject names the tz database does not know."""
        v = v.strip()
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(
                f"REPORTING_TIMEZONE '{v}' is not a valid IANA timezone (e.g. Asia/Shanghai)"
            ) from e
        return v

    @field_validator("stats_main_aggregation_hour")
    @classmethod
    def validate_main_aggregation_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("STATS_MAIN_AGGREGATION_HOUR must be between 0 and 23")
        return v

    @field_validator("stats_dirty_interval_minutes", "stats_batch_size", "stats_main_batch_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Scheduler intervals and batch sizes must be positive")
        return v


settings = Settings()
