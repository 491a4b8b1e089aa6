"""
Backend selection and resource settings from environment with defaults.
Single place for env-derived values used to build storage, record store and queue adapters.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendSettings(BaseSettings):
    """
    Environment variables that choose and configure the pipeline backends.
    Env vars are read from os.environ (UPPER_SNAKE_CASE by default).
    """

    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    storage_backend: Literal["aws", "memory"] = "aws"
    queue_backend: Literal["aws", "memory", "noop"] = "aws"
    record_store_backend: Literal["aws", "memory"] = "aws"

    # AWS resources (Terraform outputs passed in as env vars)
    media_bucket_name: str | None = None
    aws_region: str | None = None
    aws_endpoint_url: str | None = None
    video_jobs_queue_url: str | None = None
    video_jobs_dead_letter_queue_url: str | None = None
    videos_table_name: str | None = None
    videos_class_index_name: str = "class_id-index"
    video_views_table_name: str | None = None
    upload_sessions_table_name: str | None = None
    sqs_long_poll_wait_seconds: int = Field(20, ge=0, le=20)
    sqs_visibility_timeout_seconds: int | None = Field(900, ge=0, le=43200)

    # Retry policy and retained history
    job_max_attempts: int = Field(3, ge=1)
    job_backoff_base_seconds: float = Field(2.0, ge=0.0)
    completed_job_retention: int = Field(10, ge=0)
    failed_job_retention: int = Field(5, ge=0)


def get_backend_settings() -> BackendSettings:
    """Return validated backend settings from current environment."""
    return BackendSettings()


def bootstrap_env() -> None:
    """
    Load .env from path in CLASSROOM_MEDIA_ENV_FILE if set.
    Call once at process startup before reading settings so vars from the file are in os.environ.
    """
    import os
    from pathlib import Path

    import dotenv

    path = os.environ.get("CLASSROOM_MEDIA_ENV_FILE")
    if path:
        dotenv.load_dotenv(Path(path).resolve())
