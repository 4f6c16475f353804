"""Configuration management for docgraph.

All values can be overridden via environment variables (prefixed with
``DOCGRAPH_``) or a ``.env`` file.

Environment Variables:
    DOCGRAPH_LOG_LEVEL: Logging level (default: INFO)
    DOCGRAPH_LOG_FORMAT: ``console`` or ``json`` (default: console)
    DOCGRAPH_SCHEMA_LOCKED: Whether new schemas reject undeclared fields (default: true)
    DOCGRAPH_PRIMARY_KEY: Default primary key column name (default: id)
    DOCGRAPH_DATE_FORMAT: strftime pattern used when exporting dates
    DOCGRAPH_DATETIME_FORMAT: strftime pattern used when exporting datetimes
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library settings."""

    model_config = SettingsConfigDict(
        env_prefix="DOCGRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging configuration
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Schema defaults
    schema_locked: bool = True
    primary_key: str = "id"

    # Export formats
    date_format: str = "%Y-%m-%d"
    datetime_format: str = "%Y-%m-%d %H:%M:%S"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance (cached after first call)
    """
    return Settings()
