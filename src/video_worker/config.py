"""
App config from environment with defaults.
Uses pydantic-settings so all env vars are validated and documented in one model.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VideoWorkerSettings(BaseSettings):
    """
    All environment variables used by the video worker.
    Env vars are read from os.environ (UPPER_SNAKE_CASE by default).
    """

    model_config = SettingsConfigDict(extra="ignore")

    # Worker slots: each claims one job at a time
    worker_concurrency: int = Field(2, ge=1)
    poll_interval_sec: float = Field(5.0, gt=0)

    # While a job runs its queue claim is extended every job_heartbeat_interval_sec by
    # job_visibility_extend_sec; keep the interval well under the queue visibility timeout
    job_heartbeat_interval_sec: float = Field(60.0, gt=0)
    job_visibility_extend_sec: int = Field(300, ge=1, le=43200)

    # Scratch root shared by all jobs; each job works in its own subdirectory
    scratch_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / "classroom-media")

    # ffmpeg / ffprobe
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    ffmpeg_timeout_sec: float | None = Field(None, gt=0)
    ffprobe_timeout_sec: float | None = Field(60.0, gt=0)
    hls_segment_duration_sec: int = Field(10, ge=1)
    thumbnail_width: int = Field(1280, ge=1)
    thumbnail_height: int = Field(720, ge=1)

    # Scratch cleanup: entries older than temp_max_age_sec, swept every cleanup_interval_sec
    temp_max_age_sec: int = Field(86400, ge=0)
    cleanup_interval_sec: float = Field(86400.0, gt=0)


def get_settings() -> VideoWorkerSettings:
    """Return validated settings from current environment."""
    return VideoWorkerSettings()
