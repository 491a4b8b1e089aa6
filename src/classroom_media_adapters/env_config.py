"""
Adapter facade: build storage, record store and queue adapters from BackendSettings.

Reads STORAGE_BACKEND, RECORD_STORE_BACKEND and QUEUE_BACKEND (aws | memory, plus noop
for the queue) and delegates to classroom_media_aws_adapters or the in-process
implementations in classroom_media_shared. Apps import from this module so the
implementation choice lives in one place; pipeline code never inspects the mode.

Required for aws backends:
- MEDIA_BUCKET_NAME (storage)
- VIDEOS_TABLE_NAME, VIDEO_VIEWS_TABLE_NAME, UPLOAD_SESSIONS_TABLE_NAME (record store)
- VIDEO_JOBS_QUEUE_URL (queue)

Optional:
- AWS_REGION, AWS_ENDPOINT_URL (e.g. for LocalStack or an S3-compatible store)
- VIDEO_JOBS_DEAD_LETTER_QUEUE_URL: terminal failures are forwarded here
- VIDEOS_CLASS_INDEX_NAME: class_id GSI on the videos table (default class_id-index)
- SQS_LONG_POLL_WAIT_SECONDS (default 20), SQS_VISIBILITY_TIMEOUT_SECONDS (default 900)
- JOB_MAX_ATTEMPTS (3), JOB_BACKOFF_BASE_SECONDS (2.0)
"""

import logging

from classroom_media_shared.errors import QueueDegraded
from classroom_media_shared.interfaces import (
    JobQueue,
    ObjectStorage,
    UploadSessionStore,
    VideoStore,
    VideoViewStore,
)
from classroom_media_shared.memory import (
    InMemoryObjectStorage,
    InMemoryUploadSessionStore,
    InMemoryVideoStore,
    InMemoryVideoViewStore,
)
from classroom_media_shared.queues import InMemoryJobQueue, NoOpJobQueue
from classroom_media_shared.retry import RetryPolicy

from .config import BackendSettings, get_backend_settings

logger = logging.getLogger(__name__)


def _require(value: str | None, env_name: str) -> str:
    if not value:
        raise ValueError(f"{env_name} must be set for the aws backend")
    return value


def retry_policy_from_settings(settings: BackendSettings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.job_max_attempts,
        base_delay_sec=settings.job_backoff_base_seconds,
    )


def object_storage_from_env(settings: BackendSettings | None = None) -> ObjectStorage:
    settings = settings or get_backend_settings()
    if settings.storage_backend == "memory":
        return InMemoryObjectStorage()
    from classroom_media_aws_adapters.s3_storage import S3ObjectStorage

    return S3ObjectStorage(
        _require(settings.media_bucket_name, "MEDIA_BUCKET_NAME"),
        region_name=settings.aws_region,
        endpoint_url=settings.aws_endpoint_url,
    )


def video_store_from_env(settings: BackendSettings | None = None) -> VideoStore:
    settings = settings or get_backend_settings()
    if settings.record_store_backend == "memory":
        return InMemoryVideoStore()
    from classroom_media_aws_adapters.dynamodb_stores import DynamoDBVideoStore

    return DynamoDBVideoStore(
        _require(settings.videos_table_name, "VIDEOS_TABLE_NAME"),
        class_index_name=settings.videos_class_index_name,
        region_name=settings.aws_region,
        endpoint_url=settings.aws_endpoint_url,
    )


def video_view_store_from_env(settings: BackendSettings | None = None) -> VideoViewStore:
    settings = settings or get_backend_settings()
    if settings.record_store_backend == "memory":
        return InMemoryVideoViewStore()
    from classroom_media_aws_adapters.dynamodb_stores import DynamoDBVideoViewStore

    return DynamoDBVideoViewStore(
        _require(settings.video_views_table_name, "VIDEO_VIEWS_TABLE_NAME"),
        region_name=settings.aws_region,
        endpoint_url=settings.aws_endpoint_url,
    )


def upload_session_store_from_env(settings: BackendSettings | None = None) -> UploadSessionStore:
    settings = settings or get_backend_settings()
    if settings.record_store_backend == "memory":
        return InMemoryUploadSessionStore()
    from classroom_media_aws_adapters.dynamodb_stores import DynamoDBUploadSessionStore

    return DynamoDBUploadSessionStore(
        _require(settings.upload_sessions_table_name, "UPLOAD_SESSIONS_TABLE_NAME"),
        region_name=settings.aws_region,
        endpoint_url=settings.aws_endpoint_url,
    )


def job_queue_from_env(settings: BackendSettings | None = None) -> JobQueue:
    """
    Build the job queue. For aws the queue is pinged once; if it cannot be reached the
    process runs in degraded mode with a NoOpJobQueue (logged at ERROR) instead of failing.
    """
    settings = settings or get_backend_settings()
    policy = retry_policy_from_settings(settings)
    if settings.queue_backend == "noop":
        logger.error("QUEUE_BACKEND=noop: video jobs will not be processed")
        return NoOpJobQueue("QUEUE_BACKEND=noop")
    if settings.queue_backend == "memory":
        return InMemoryJobQueue(
            policy,
            completed_retention=settings.completed_job_retention,
            failed_retention=settings.failed_job_retention,
        )
    from classroom_media_aws_adapters.sqs_job_queue import SQSJobQueue

    queue = SQSJobQueue(
        _require(settings.video_jobs_queue_url, "VIDEO_JOBS_QUEUE_URL"),
        dead_letter_queue_url=settings.video_jobs_dead_letter_queue_url,
        policy=policy,
        region_name=settings.aws_region,
        endpoint_url=settings.aws_endpoint_url,
        wait_time_seconds=settings.sqs_long_poll_wait_seconds,
        visibility_timeout_seconds=settings.sqs_visibility_timeout_seconds,
        completed_retention=settings.completed_job_retention,
        failed_retention=settings.failed_job_retention,
    )
    try:
        queue.ping()
    except QueueDegraded as e:
        logger.error("job queue unavailable, running degraded: %s", e)
        return NoOpJobQueue(str(e))
    return queue
