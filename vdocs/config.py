"""
Configuration settings for vdocs.

Uses Pydantic Settings to load environment variables for logging, store key
generation, fan-out scheduling and store retry behaviour.
"""
from __future__ import annotations

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Logging
    log_level: str = Field("INFO", alias="VDOCS_LOG_LEVEL")
    json_logs: bool = Field(False, alias="VDOCS_JSON_LOGS")

    # Store
    key_field: str = Field("id", alias="VDOCS_KEY_FIELD")
    store_retry_attempts: int = Field(1, ge=1, alias="VDOCS_STORE_RETRY_ATTEMPTS")
    store_retry_wait_max: float = Field(2.0, ge=0, alias="VDOCS_STORE_RETRY_WAIT_MAX")

    # Query engine
    fanout_concurrency: bool = Field(False, alias="VDOCS_FANOUT_CONCURRENCY")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
