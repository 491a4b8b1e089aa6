"""
App config from environment with defaults.
Single place for env-derived values used across the HTTP layer.
Uses pydantic-settings so all env vars are validated and documented in one model.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebSettings(BaseSettings):
    """
    All environment variables used by the web app.
    Env vars are read from os.environ (UPPER_SNAKE_CASE by default).
    """

    model_config = SettingsConfigDict(
        env_file=None,  # .env is loaded via bootstrap_env() in main so env is ready
        extra="ignore",
    )

    # Presigned GET (playback, thumbnail) and part PUT URLs
    signed_url_ttl_sec: int = Field(3600, ge=1, le=7 * 24 * 3600)
    # Largest raw upload accepted at completion
    max_video_size_bytes: int = Field(10 * 1024 * 1024 * 1024, ge=1)


def get_settings() -> WebSettings:
    """Return validated settings from current environment."""
    return WebSettings()
