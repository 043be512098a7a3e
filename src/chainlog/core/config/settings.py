"""
Core configuration management for chainlog.

This module provides centralized configuration management using Pydantic
settings with support for environment variables, type validation, and
computed properties. All library settings are defined here with sensible
defaults and validation.

Classes:
    Settings: Main configuration class with all library settings

Environment Variables:
    Settings can be overridden using environment variables with the same
    names as the class attributes (case-sensitive), or through a ``.env``
    file in the working directory.

Example:
    >>> from chainlog.core.config.settings import Settings
    >>> settings = Settings()
    >>> print(settings.DATABASE_URL)
    sqlite:///chainlog.db

Configuration Sections:
    - Application: Basic app configuration (name, version, environment)
    - Diagnostics: chainlog's own logging output
    - Storage: Log store connection and table settings
    - Defaults: Fallback log level and audience for new entries
    - Retention: Age and count bounds applied by cleanup
"""

from datetime import timedelta
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENTRY_LEVELS = ["debug", "info", "warn", "error"]


class Settings(BaseSettings):
    """
    Library settings with environment variable support.

    Attributes:
        APP_NAME: Application name identifier
        APP_VERSION: Current library version
        ENVIRONMENT: Deployment environment (development/testing/production)
        DEBUG: Enable debug mode with rich console diagnostics

        LOG_LEVEL: Diagnostics level (DEBUG/INFO/WARNING/ERROR/CRITICAL)
        LOG_FORMAT: Diagnostics format (json/text)
        LOG_FILE_PATH: Path for diagnostics file output (optional)

        DATABASE_URL: Store URL, ``memory://`` or any SQLAlchemy URL
        LOG_TABLE_NAME: Table holding log entries in SQL stores
        DATABASE_ECHO: Echo SQL statements issued by the SQL store

        DEFAULT_LOG_LEVEL: Level given to entries logged without one
        DEFAULT_VISIBLE_TO: Audience tag given to entries logged without one

        RETENTION_OLDER_THAN_DAYS: Age after which entries become deletable
        RETENTION_KEEP_RECENT: Most recent entries per owner always kept
        RETENTION_POLICY_FILE: Optional YAML/JSON file with per-type policies

    Properties:
        retention_older_than: RETENTION_OLDER_THAN_DAYS as a timedelta
    """

    # Application
    APP_NAME: str = "chainlog"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Diagnostics Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    LOG_FILE_PATH: Optional[str] = None

    # Storage
    DATABASE_URL: str = "sqlite:///chainlog.db"
    LOG_TABLE_NAME: str = "chainlog_entries"
    DATABASE_ECHO: bool = False

    # Entry Defaults
    DEFAULT_LOG_LEVEL: str = "info"
    DEFAULT_VISIBLE_TO: str = "admin"

    # Retention
    RETENTION_OLDER_THAN_DAYS: int = 30
    RETENTION_KEEP_RECENT: int = 100
    RETENTION_POLICY_FILE: Optional[str] = None

    @property
    def retention_older_than(self) -> timedelta:
        """Default cleanup age threshold."""
        return timedelta(days=self.RETENTION_OLDER_THAN_DAYS)

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Validate diagnostics logging level is a supported value.

        Converts to uppercase for consistency with the standard library.

        Raises:
            ValueError: If log level is not supported
        """
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {valid_levels}")
        return v.upper()

    @field_validator("DEFAULT_LOG_LEVEL")
    @classmethod
    def validate_default_log_level(cls, v: str) -> str:
        """Validate the entry level default, accepting 'warning' for 'warn'."""
        level = v.lower()
        if level == "warning":
            level = "warn"
        if level not in ENTRY_LEVELS:
            raise ValueError(f"DEFAULT_LOG_LEVEL must be one of: {ENTRY_LEVELS}")
        return level

    @field_validator("RETENTION_OLDER_THAN_DAYS", "RETENTION_KEEP_RECENT")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retention bounds must not be negative")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


def get_settings() -> Settings:
    """Get library settings instance"""
    return Settings()


settings = Settings()
