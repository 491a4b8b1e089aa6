"""
Backend-agnostic interfaces for object storage, the video record store, the video view
store, the upload session store and the processing job queue.

Implementations (S3, DynamoDB, SQS) live in classroom_media_aws_adapters; in-process
implementations live in classroom_media_shared.memory. Pipeline logic depends on these
interfaces and receives the implementation by construction.
"""

from typing import BinaryIO, Literal, Protocol, runtime_checkable

from .models import (
    CompletedPart,
    JobOutcome,
    JobPayload,
    JobType,
    ProcessingJob,
    UploadSession,
    VideoAsset,
    VideoView,
)

SignOperation = Literal["get", "put"]


@runtime_checkable
class ObjectStorage(Protocol):
    """Object storage over a single key namespace (videos/, hls/, thumbnails/, ...)."""

    def put(self, key: str, body: bytes, content_type: str) -> None:
        """Create or overwrite the object at key."""
        ...

    def open(self, key: str) -> BinaryIO:
        """Return a readable byte stream for the object. Raises ObjectNotFound."""
        ...

    def download_file(self, key: str, path: str) -> None:
        """Stream the object to a local file without holding it in memory."""
        ...

    def upload_file(self, key: str, path: str, content_type: str) -> None:
        """Upload a local file to key. May use multipart for large files."""
        ...

    def delete(self, key: str) -> None:
        """Delete the object. Deleting an absent key is not an error."""
        ...

    def delete_prefix(self, prefix: str) -> int:
        """Delete every object under prefix; return the number of keys removed."""
        ...

    def exists(self, key: str) -> bool:
        """Return True if the object exists, False otherwise."""
        ...

    def size(self, key: str) -> int | None:
        """Return the object size in bytes, or None if the object does not exist."""
        ...

    def sign_url(self, operation: SignOperation, key: str, *, expires_in: int = 3600) -> str:
        """Return a time-limited URL for a GET or PUT on key."""
        ...

    def create_multipart_upload(self, key: str, content_type: str) -> str:
        """Start a multipart upload to key; return the backend upload id."""
        ...

    def presign_upload_part(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        *,
        expires_in: int = 3600,
    ) -> str:
        """Return a time-limited PUT URL for one part of a multipart upload."""
        ...

    def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: list[CompletedPart],
    ) -> str:
        """Assemble the parts into the final object; return its location."""
        ...

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        """Abandon a multipart upload. Aborting an unknown upload is not an error."""
        ...


@runtime_checkable
class VideoStore(Protocol):
    """Record store for VideoAsset rows."""

    def get(self, video_id: str) -> VideoAsset | None:
        """Return the video if it exists, otherwise None."""
        ...

    def put(self, video: VideoAsset) -> None:
        """Create or overwrite a video record."""
        ...

    def update_metadata(
        self,
        video_id: str,
        *,
        file_size: int | None = None,
        duration_seconds: int | None = None,
        hls_key: str | None = None,
        thumbnail_key: str | None = None,
    ) -> None:
        """
        Partially update a video in one atomic write. Fields left as None are not touched.
        Raises VideoNotFound if the record does not exist.
        """
        ...

    def list_by_class(self, class_id: str) -> list[VideoAsset]:
        """Every video in the class, newest first."""
        ...

    def delete(self, video_id: str) -> None:
        """Delete the record. Deleting an absent record is not an error."""
        ...


@runtime_checkable
class VideoViewStore(Protocol):
    """Per-student watch records, one per (video_id, student_id)."""

    def record_view(
        self,
        video_id: str,
        student_id: str,
        *,
        progress: float,
        completion_percentage: float,
    ) -> VideoView:
        """
        Upsert the record: add progress to watch_duration, raise completion_percentage
        only if the new value is higher (is_completed follows the stored maximum), stamp
        last_watched_at and, on insert, first_watched_at. Returns the record after the update.
        """
        ...

    def list_views(self, video_id: str) -> list[VideoView]:
        """Every student's record for the video, most recent first_watched_at first."""
        ...

    def delete_for_video(self, video_id: str) -> int:
        """Delete every record for the video; return how many were removed."""
        ...


@runtime_checkable
class UploadSessionStore(Protocol):
    """Store for multipart upload sessions."""

    def put(self, session: UploadSession) -> None:
        ...

    def get(self, session_id: str) -> UploadSession | None:
        ...

    def mark_completed(self, session_id: str) -> bool:
        """
        Close the session as completed, only if it exists and is still open.
        Returns True if this call closed it, False otherwise.
        """
        ...

    def mark_aborted(self, session_id: str) -> bool:
        """Close the session as aborted, only if it exists and is still open."""
        ...


class ClaimedJob:
    """A job handed to one worker slot (job + backend handle for ack/fail)."""

    def __init__(self, job: ProcessingJob, handle: str) -> None:
        self.job = job
        self.handle = handle


@runtime_checkable
class JobQueue(Protocol):
    """Durable at-least-once job queue with bounded retry and retained history."""

    def enqueue(self, job_type: JobType, payload: JobPayload | None = None) -> str:
        """Persist a job and return its id without waiting for processing."""
        ...

    def claim(self, timeout: float = 0.0) -> ClaimedJob | None:
        """Take the next ready job, waiting up to timeout seconds. None if nothing is ready."""
        ...

    def ack(self, claimed: ClaimedJob) -> None:
        """Mark the job completed."""
        ...

    def extend_visibility(self, claimed: ClaimedJob, seconds: int) -> None:
        """Keep a long-running job hidden from other claimers for another `seconds`."""
        ...

    def fail(self, claimed: ClaimedJob, error: str, *, retry: bool = True) -> JobOutcome:
        """Record a failed attempt; reschedule with backoff or mark terminal."""
        ...

    def completed_jobs(self) -> list[ProcessingJob]:
        """Most recently completed jobs (bounded)."""
        ...

    def failed_jobs(self) -> list[ProcessingJob]:
        """Most recent terminally failed jobs, with their error messages (bounded)."""
        ...
