"""
Video job processing: derive HLS and thumbnail artifacts for an uploaded video, and run
the scratch sweep. One job runs in one worker slot; its scratch directory is removed on
every exit path and failures propagate to the queue's retry mechanism.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from classroom_media_shared.errors import InvalidJob, VideoNotFound
from classroom_media_shared.interfaces import ClaimedJob, JobQueue, ObjectStorage, VideoStore
from classroom_media_shared.keys import (
    HLS_MANIFEST_NAME,
    JPEG_CONTENT_TYPE,
    build_hls_key,
    build_hls_manifest_key,
    build_hls_prefix,
    build_thumbnail_key,
    content_type_for,
)
from classroom_media_shared.models import JobType, ProcessingJob

from .cleanup import cleanup_temp_files
from .config import VideoWorkerSettings
from .ffmpeg_hls import (
    extract_thumbnail,
    probe_duration_seconds,
    thumbnail_seek_seconds,
    transcode_to_hls,
)
from .scratch import scratch_dir

logger = logging.getLogger(__name__)

SOURCE_FILENAME = "source.mp4"


class VideoJobProcessor:
    """Runs generate_hls, generate_thumbnail and cleanup_temp_files jobs."""

    def __init__(
        self,
        storage: ObjectStorage,
        video_store: VideoStore,
        settings: VideoWorkerSettings | None = None,
    ) -> None:
        self._storage = storage
        self._video_store = video_store
        self._settings = settings or VideoWorkerSettings()

    @property
    def scratch_root(self) -> Path:
        return Path(self._settings.scratch_dir)

    def process(self, job: ProcessingJob) -> None:
        """Dispatch one job by type. Raises InvalidJob for payloads that can never succeed."""
        payload = job.payload
        if payload.type is JobType.CLEANUP_TEMP_FILES:
            self.cleanup_temp_files()
            return
        if not payload.video_id or not payload.file_key:
            raise InvalidJob(f"{payload.type.value} job needs videoId and fileKey")
        if payload.type is JobType.GENERATE_HLS:
            self.generate_hls(payload.video_id, payload.file_key)
        elif payload.type is JobType.GENERATE_THUMBNAIL:
            self.generate_thumbnail(payload.video_id, payload.file_key)
        else:
            raise InvalidJob(f"unknown job type: {payload.type!r}")

    def generate_hls(self, video_id: str, file_key: str) -> str:
        """Transcode to HLS, upload segments then manifest, record hls_key and duration."""
        self._require_video(video_id)
        settings = self._settings
        with scratch_dir(self.scratch_root, "hls", video_id) as work:
            source = work / SOURCE_FILENAME
            logger.info("video_id=%s hls: downloading %s", video_id, file_key)
            self._storage.download_file(file_key, str(source))

            out_dir = work / "hls"
            transcode_to_hls(
                source,
                out_dir,
                ffmpeg_bin=settings.ffmpeg_bin,
                segment_duration_sec=settings.hls_segment_duration_sec,
                timeout_sec=settings.ffmpeg_timeout_sec,
            )
            duration = probe_duration_seconds(
                source,
                ffprobe_bin=settings.ffprobe_bin,
                timeout_sec=settings.ffprobe_timeout_sec,
            )

            # Manifest last so a player never sees a playlist naming missing segments
            files = sorted(p for p in out_dir.iterdir() if p.is_file())
            ordered = [p for p in files if p.name != HLS_MANIFEST_NAME]
            ordered += [p for p in files if p.name == HLS_MANIFEST_NAME]
            for path in ordered:
                self._storage.upload_file(
                    build_hls_key(video_id, path.name), str(path), content_type_for(path.name)
                )
            logger.info("video_id=%s hls: uploaded %d files", video_id, len(ordered))

        manifest_key = build_hls_manifest_key(video_id)
        try:
            self._video_store.update_metadata(
                video_id, hls_key=manifest_key, duration_seconds=duration
            )
        except VideoNotFound:
            self._storage.delete_prefix(build_hls_prefix(video_id))
            raise
        logger.info("video_id=%s hls: done (%ss) %s", video_id, duration, manifest_key)
        return manifest_key

    def generate_thumbnail(self, video_id: str, file_key: str) -> str:
        """Grab one frame 10% in (at least 1s), upload as JPEG, record thumbnail_key."""
        self._require_video(video_id)
        settings = self._settings
        thumbnail_key = build_thumbnail_key(video_id)
        with scratch_dir(self.scratch_root, "thumb", video_id) as work:
            source = work / SOURCE_FILENAME
            self._storage.download_file(file_key, str(source))
            duration = probe_duration_seconds(
                source,
                ffprobe_bin=settings.ffprobe_bin,
                timeout_sec=settings.ffprobe_timeout_sec,
            )
            seek = thumbnail_seek_seconds(duration)
            frame = extract_thumbnail(
                source,
                work / "thumbnail.jpg",
                seek_sec=seek,
                width=settings.thumbnail_width,
                height=settings.thumbnail_height,
                ffmpeg_bin=settings.ffmpeg_bin,
                timeout_sec=settings.ffmpeg_timeout_sec,
            )
            self._storage.upload_file(thumbnail_key, str(frame), JPEG_CONTENT_TYPE)

        try:
            self._video_store.update_metadata(video_id, thumbnail_key=thumbnail_key)
        except VideoNotFound:
            self._storage.delete(thumbnail_key)
            raise
        logger.info("video_id=%s thumbnail: done (seek %ss) %s", video_id, seek, thumbnail_key)
        return thumbnail_key

    def cleanup_temp_files(self) -> int:
        return cleanup_temp_files(self.scratch_root, max_age_sec=self._settings.temp_max_age_sec)

    def _require_video(self, video_id: str) -> None:
        if self._video_store.get(video_id) is None:
            raise VideoNotFound(video_id)


@contextmanager
def visibility_heartbeat(
    queue: JobQueue,
    claimed: ClaimedJob,
    *,
    interval_sec: float,
    extend_sec: int,
) -> Iterator[None]:
    """
    While the block runs, extend the claim's visibility every interval_sec so a job
    that outlives the queue's visibility timeout is not handed to a second worker.
    """
    stop = threading.Event()
    job_id = claimed.job.job_id

    def beat() -> None:
        while not stop.wait(interval_sec):
            try:
                queue.extend_visibility(claimed, extend_sec)
            except Exception as e:
                logger.warning("job_id=%s failed to extend visibility: %s", job_id, e)

    thread = threading.Thread(
        target=beat, name=f"{threading.current_thread().name}-heartbeat", daemon=True
    )
    thread.start()
    try:
        yield
    finally:
        stop.set()
        thread.join()


def process_one_job(
    queue: JobQueue,
    processor: VideoJobProcessor,
    *,
    timeout: float = 0.0,
    heartbeat_interval_sec: float = 60.0,
    visibility_extend_sec: int = 300,
) -> bool:
    """
    Claim and run at most one job, then ack or fail it. While the job runs its claim is
    kept alive with a visibility heartbeat.

    Returns True if a job was claimed (whatever its outcome), False if none was ready.
    A job whose video was deleted completes without retry; a malformed job fails
    terminally; any other error goes back to the queue for retry with backoff.
    """
    claimed: ClaimedJob | None = queue.claim(timeout=timeout)
    if claimed is None:
        return False
    job = claimed.job
    video_id = job.payload.video_id
    logger.info(
        "job_id=%s type=%s video_id=%s attempt %s/%s start",
        job.job_id, job.type.value, video_id, job.attempts_made + 1, job.max_attempts,
    )
    try:
        with visibility_heartbeat(
            queue, claimed, interval_sec=heartbeat_interval_sec, extend_sec=visibility_extend_sec
        ):
            processor.process(job)
    except VideoNotFound:
        logger.warning("job_id=%s video_id=%s video no longer exists; dropping job", job.job_id, video_id)
        queue.ack(claimed)
    except InvalidJob as e:
        logger.error("job_id=%s invalid job: %s", job.job_id, e)
        queue.fail(claimed, str(e), retry=False)
    except Exception as e:
        logger.warning(
            "job_id=%s type=%s video_id=%s failed: %s", job.job_id, job.type.value, video_id, e
        )
        queue.fail(claimed, f"{type(e).__name__}: {e}")
    else:
        queue.ack(claimed)
    return True
