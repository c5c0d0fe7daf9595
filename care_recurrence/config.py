"""
Configuration management for the care recurrence service.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

from datetime import date, datetime
from functools import lru_cache
from typing import Literal

from dateutil import tz
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    See .env.example for available options.
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/care_recurrence.db",
        description="Database connection URL"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    api_reload: bool = Field(
        default=True,
        description="Enable auto-reload in development"
    )

    # Calendar
    timezone: str = Field(
        default="America/Los_Angeles",
        description="Timezone used to decide what 'today' is (IANA timezone name)"
    )

    # Materialization retries
    materialize_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per completion event before it is marked failed"
    )
    materialize_retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Exponential backoff multiplier between materialization attempts"
    )
    materialize_retry_max_wait_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Upper bound for a single backoff wait"
    )

    # Queue and preview limits
    event_batch_size: int = Field(
        default=50,
        ge=1,
        description="Maximum completion events drained per processing run"
    )
    preview_max_occurrences: int = Field(
        default=12,
        ge=1,
        description="Maximum upcoming dates returned by a series preview"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        if tz.gettz(v) is None:
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_postgresql(self) -> bool:
        """Check if PostgreSQL is the configured database."""
        return "postgresql" in self.database_url.lower()

    def today(self) -> date:
        """Current calendar date in the configured timezone."""
        return datetime.now(tz.gettz(self.timezone)).date()

    def validate_production_config(self) -> None:
        """
        Validate configuration for production environment.

        Raises:
            ValueError: If required production settings are missing or invalid
        """
        if not self.is_production:
            return

        errors = []

        # The conditional counter update relies on a real transactional store
        if not self.uses_postgresql:
            errors.append(
                "Production requires PostgreSQL. "
                "Set DATABASE_URL to a PostgreSQL connection string."
            )

        if errors:
            raise ValueError("Production configuration errors:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure we only load settings once.
    Use this function throughout the application to access settings.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from care_recurrence.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.database_url)
    """
    return Settings()
