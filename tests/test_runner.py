"""Tests for the worker loop and the worker pool (real threads, in-memory queue)."""

import threading
import time
from unittest.mock import MagicMock

import pytest
from classroom_media_shared.memory import InMemoryVideoStore
from classroom_media_shared.models import JobPayload, JobType, VideoAsset
from classroom_media_shared.queues import InMemoryJobQueue
from classroom_media_shared.retry import RetryPolicy
from video_worker.config import VideoWorkerSettings
from video_worker.processor import VideoJobProcessor
from video_worker.runner import VideoWorkerPool, run_worker_loop


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_pool_rejects_zero_concurrency() -> None:
    with pytest.raises(ValueError):
        VideoWorkerPool(InMemoryJobQueue(), MagicMock(), concurrency=0)


def test_pool_processes_jobs_concurrently_and_stops() -> None:
    queue = InMemoryJobQueue(RetryPolicy(base_delay_sec=0))
    running: set[str] = set()
    peak: list[int] = []
    lock = threading.Lock()
    release = threading.Event()

    def process(job) -> None:
        with lock:
            running.add(threading.current_thread().name)
            peak.append(len(running))
        release.wait(5)
        with lock:
            running.discard(threading.current_thread().name)

    processor = MagicMock()
    processor.process.side_effect = process
    for _ in range(4):
        queue.enqueue(JobType.CLEANUP_TEMP_FILES)

    pool = VideoWorkerPool(queue, processor, concurrency=2, poll_interval_sec=0.05)
    pool.start()
    assert _wait_for(lambda: queue.active_count() == 2)
    assert queue.pending_count() == 2
    release.set()
    assert _wait_for(lambda: len(queue.completed_jobs()) == 4)
    pool.stop(timeout=5)

    assert max(peak) == 2
    assert running == set()


def test_loop_survives_queue_errors() -> None:
    queue = MagicMock()
    calls = []
    stop = threading.Event()

    def claim(timeout):
        calls.append(timeout)
        if len(calls) >= 3:
            stop.set()
            return None
        raise RuntimeError("queue blew up")

    queue.claim.side_effect = claim
    run_worker_loop(queue, MagicMock(), poll_interval_sec=0.01, stop_event=stop)
    assert len(calls) == 3


class _OverlappingWritesStore(InMemoryVideoStore):
    """Holds each metadata write at a barrier so the HLS and thumbnail writes overlap."""

    def __init__(self) -> None:
        super().__init__()
        self.barrier = threading.Barrier(2, timeout=5)

    def update_metadata(self, video_id: str, **fields) -> None:
        self.barrier.wait()
        super().update_metadata(video_id, **fields)


def test_pool_runs_hls_and_thumbnail_for_one_video_side_by_side(storage, tmp_path, fake_ffmpeg) -> None:
    video_store = _OverlappingWritesStore()
    video = VideoAsset(
        video_id="vid-1",
        title="Lecture 1",
        class_id="class-1",
        teacher_id="teacher-1",
        file_key="videos/teacher-1/vid-1.mp4",
        file_size=2048,
        created_at=1700000000,
    )
    video_store.put(video)
    storage.put(video.file_key, b"mp4" * 100, "video/mp4")
    queue = InMemoryJobQueue(RetryPolicy(base_delay_sec=0))
    for job_type in (JobType.GENERATE_HLS, JobType.GENERATE_THUMBNAIL):
        queue.enqueue(job_type, JobPayload(type=job_type, video_id="vid-1", file_key=video.file_key))
    processor = VideoJobProcessor(storage, video_store, VideoWorkerSettings(scratch_dir=tmp_path / "scratch"))

    pool = VideoWorkerPool(queue, processor, concurrency=2, poll_interval_sec=0.05)
    pool.start()
    assert _wait_for(lambda: len(queue.completed_jobs()) == 2)
    pool.stop(timeout=5)

    assert queue.failed_jobs() == []
    got = video_store.get("vid-1")
    assert got.hls_key == "hls/vid-1/playlist.m3u8"
    assert got.duration_seconds == 120
    assert got.thumbnail_key == "thumbnails/vid-1.jpg"
    assert got.file_size == 2048
