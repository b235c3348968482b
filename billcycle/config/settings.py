"""
Configuration Management for Billcycle

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The engine itself is pure arithmetic, so the settings only cover the
knobs a caller legitimately varies between deployments: whether balances
are tracked per bank account, the default budget alert threshold, the
"due soon" window and logging output. Scoring thresholds used by the
loan analyzer are fixed heuristics and deliberately NOT configurable.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseSettings):
    """Structured logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BILLCYCLE_LOG_",
        extra="ignore"
    )

    level: str = Field(
        default="INFO",
        description="Minimum log level (DEBUG, INFO, WARNING, ERROR)"
    )
    json_output: bool = Field(
        default=True,
        description="Render log lines as JSON (False renders key=value pairs)"
    )

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Only allow standard level names."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Unsupported log level: {v}. Allowed: {sorted(allowed)}")
        return v.upper()


class EngineSettings(BaseSettings):
    """
    Ledger engine settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="BILLCYCLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Balance projection
    per_account_tracking: bool = Field(
        default=False,
        description=(
            "Sum per-account stored/initial balances instead of the single "
            "profile-level monthly snapshot"
        )
    )
    due_soon_days: int = Field(
        default=7,
        ge=0,
        le=31,
        description="Window used by the caller-side 'bills due soon' adjustment"
    )

    # Budgets
    default_alert_threshold: int = Field(
        default=80,
        ge=1,
        le=100,
        description="Alert threshold (percent) for budgets created without one"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.engine
        results["engine"] = True
    except ValueError as e:
        results["engine"] = False
        results["engine_error"] = str(e)

    try:
        _ = settings.logging
        results["logging"] = True
    except ValueError as e:
        results["logging"] = False
        results["logging_error"] = str(e)

    return results
