"""
Entrypoint for the video worker. Wires adapters from env and runs the worker pool
(WORKER_CONCURRENCY threads) plus the scratch cleanup timer in one process.
"""

import logging

from classroom_media_adapters.config import bootstrap_env, get_backend_settings
from classroom_media_adapters.env_config import (
    job_queue_from_env,
    object_storage_from_env,
    video_store_from_env,
)
from classroom_media_shared.logging_config import configure_logging

from .cleanup import CleanupScheduler
from .config import get_settings
from .processor import VideoJobProcessor
from .runner import VideoWorkerPool


def main() -> None:
    bootstrap_env()
    configure_logging()
    logger = logging.getLogger(__name__)

    backend = get_backend_settings()
    settings = get_settings()
    logger.info(
        "video-worker starting; storage=%s records=%s queue=%s concurrency=%s scratch=%s",
        backend.storage_backend,
        backend.record_store_backend,
        backend.queue_backend,
        settings.worker_concurrency,
        settings.scratch_dir,
    )
    storage = object_storage_from_env(backend)
    video_store = video_store_from_env(backend)
    queue = job_queue_from_env(backend)

    processor = VideoJobProcessor(storage, video_store, settings)
    pool = VideoWorkerPool(
        queue,
        processor,
        concurrency=settings.worker_concurrency,
        poll_interval_sec=settings.poll_interval_sec,
        heartbeat_interval_sec=settings.job_heartbeat_interval_sec,
        visibility_extend_sec=settings.job_visibility_extend_sec,
    )
    scheduler = CleanupScheduler(
        queue,
        processor.cleanup_temp_files,
        interval_sec=settings.cleanup_interval_sec,
    )
    pool.start()
    scheduler.start()
    try:
        pool.join()
    except KeyboardInterrupt:
        logger.info("video-worker stopping")
        scheduler.stop()
        pool.stop()


if __name__ == "__main__":
    main()
