import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    SQLite is for local development only. Set DATABASE_URL to a PostgreSQL
    connection string in any shared deployment.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"Using DATABASE_URL from environment: {db_url}")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "workout_schedule.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.warning(f"Using SQLite database (LOCAL DEV ONLY): {db_url}")
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(
        default=None,
        validation_alias="LOG_FILE",
        description="Optional rotating log file next to the stderr sink",
    )
    log_rotation: str = Field(default="10 MB", validation_alias="LOG_ROTATION")
    log_retention: str = Field(default="7 days", validation_alias="LOG_RETENTION")
    week_starts_on: int = Field(
        default=0,
        validation_alias="WEEK_STARTS_ON",
        description="Default first day of the calendar week (0=Sunday ... 6=Saturday)",
    )
    generation_advance_days: int = Field(
        default=14,
        validation_alias="GENERATION_ADVANCE_DAYS",
        description="How many days ahead of today instances are materialized by default",
    )
    generation_batch_size: int = Field(
        default=7,
        validation_alias="GENERATION_BATCH_SIZE",
        description="Number of days processed per generation batch",
    )
    template_update_max_attempts: int = Field(
        default=3,
        validation_alias="TEMPLATE_UPDATE_MAX_ATTEMPTS",
        description="Compare-and-swap attempts for whole-plan template writes",
    )
    regeneration_enabled: bool = Field(
        default=True,
        validation_alias="REGENERATION_ENABLED",
        description="Trigger background regeneration after whole-plan reschedules",
    )
    scheduler_enabled: bool = Field(
        default=True,
        validation_alias="SCHEDULER_ENABLED",
        description="Run the periodic generation job inside the API process",
    )
    generation_interval_minutes: int = Field(
        default=360,
        validation_alias="GENERATION_INTERVAL_MINUTES",
        description="Minutes between runs of the periodic generation job",
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("week_starts_on")
    @classmethod
    def validate_week_starts_on(cls, value: int) -> int:
        """Validate week start is a day-of-week index."""
        if not 0 <= value <= 6:
            logger.warning(f"Invalid WEEK_STARTS_ON '{value}'. Must be 0-6. Defaulting to 0 (Sunday).")
            return 0
        return value

    @field_validator(
        "generation_advance_days",
        "generation_batch_size",
        "template_update_max_attempts",
        "generation_interval_minutes",
    )
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Validate counters are at least 1."""
        if value < 1:
            raise ValueError(f"must be >= 1, got {value}")
        return value


settings = Settings()
