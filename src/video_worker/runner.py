"""Worker loop and the fixed-size pool of worker threads."""

import logging
import threading

from classroom_media_shared.interfaces import JobQueue

from .processor import VideoJobProcessor, process_one_job

logger = logging.getLogger(__name__)


def run_worker_loop(
    queue: JobQueue,
    processor: VideoJobProcessor,
    *,
    poll_interval_sec: float = 5.0,
    heartbeat_interval_sec: float = 60.0,
    visibility_extend_sec: int = 300,
    stop_event: threading.Event | None = None,
) -> None:
    """
    Long-running loop: claim one job at a time (waiting up to poll_interval_sec), process it,
    ack or fail it. Exits when stop_event is set.
    """
    stop = stop_event or threading.Event()
    logger.info("worker loop started (%s)", threading.current_thread().name)
    while not stop.is_set():
        try:
            process_one_job(
                queue,
                processor,
                timeout=poll_interval_sec,
                heartbeat_interval_sec=heartbeat_interval_sec,
                visibility_extend_sec=visibility_extend_sec,
            )
        except Exception as e:
            logger.exception("worker loop: failed to claim or settle job: %s", e)
            stop.wait(poll_interval_sec)
    logger.info("worker loop stopped (%s)", threading.current_thread().name)


class VideoWorkerPool:
    """N worker threads sharing one queue; each thread runs one job at a time."""

    def __init__(
        self,
        queue: JobQueue,
        processor: VideoJobProcessor,
        *,
        concurrency: int = 2,
        poll_interval_sec: float = 5.0,
        heartbeat_interval_sec: float = 60.0,
        visibility_extend_sec: int = 300,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._queue = queue
        self._processor = processor
        self._concurrency = concurrency
        self._poll_interval_sec = poll_interval_sec
        self._heartbeat_interval_sec = heartbeat_interval_sec
        self._visibility_extend_sec = visibility_extend_sec
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def concurrency(self) -> int:
        return self._concurrency

    def start(self) -> None:
        if self._threads:
            return
        for i in range(self._concurrency):
            t = threading.Thread(
                target=run_worker_loop,
                args=(self._queue, self._processor),
                kwargs={
                    "poll_interval_sec": self._poll_interval_sec,
                    "heartbeat_interval_sec": self._heartbeat_interval_sec,
                    "visibility_extend_sec": self._visibility_extend_sec,
                    "stop_event": self._stop,
                },
                name=f"video-worker-{i}",
                daemon=True,
            )
            t.start()
            self._threads.append(t)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        for t in self._threads:
            t.join(timeout)
        self._threads = []

    def join(self) -> None:
        for t in self._threads:
            t.join()
