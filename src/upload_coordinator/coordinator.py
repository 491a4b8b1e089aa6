"""
Multipart upload coordination: the client PUTs parts straight to the object store through
signed URLs; only URLs and metadata pass through here.

A session is single-use. Completion validates that the parts form 1..N, asks the store to
assemble them, rejects an assembled object over the size cap (the object is deleted and
the session aborted), then closes the session with a conditional write so two concurrent
completions cannot both run the side effects (file size update, HLS and thumbnail jobs).
"""

import logging
import time
import uuid
from typing import NamedTuple

from classroom_media_shared.errors import (
    IncompleteUpload,
    InvalidSession,
    QueueDegraded,
    StoreUnavailable,
    UploadTooLarge,
    VideoNotFound,
)
from classroom_media_shared.interfaces import (
    JobQueue,
    ObjectStorage,
    UploadSessionStore,
    VideoStore,
)
from classroom_media_shared.models import CompletedPart, JobPayload, JobType, UploadSession

logger = logging.getLogger(__name__)

MAX_PART_NUMBER = 10000
DEFAULT_PART_URL_TTL_SEC = 3600

POST_UPLOAD_JOBS = (JobType.GENERATE_HLS, JobType.GENERATE_THUMBNAIL)


class UploadCompletion(NamedTuple):
    location: str
    jobs_enqueued: int


def validate_part_numbers(parts: list[CompletedPart]) -> None:
    """Raise IncompleteUpload unless part numbers are exactly {1..N} (no gaps, no duplicates)."""
    if not parts:
        raise IncompleteUpload("no parts supplied")
    numbers = sorted(p.part_number for p in parts)
    if len(set(numbers)) != len(numbers):
        raise IncompleteUpload(f"duplicate part numbers: {numbers}")
    if numbers != list(range(1, len(numbers) + 1)):
        missing = sorted(set(range(1, numbers[-1] + 1)) - set(numbers))
        raise IncompleteUpload(f"parts must be contiguous from 1; missing {missing}")
    if numbers[-1] > MAX_PART_NUMBER:
        raise IncompleteUpload(f"at most {MAX_PART_NUMBER} parts are allowed")


class MultipartUploadCoordinator:
    """Initiate, sign, complete and abort multipart uploads against an ObjectStorage."""

    def __init__(
        self,
        storage: ObjectStorage,
        sessions: UploadSessionStore,
        *,
        video_store: VideoStore | None = None,
        job_queue: JobQueue | None = None,
        part_url_ttl_sec: int = DEFAULT_PART_URL_TTL_SEC,
        max_object_size_bytes: int | None = None,
    ) -> None:
        self._storage = storage
        self._sessions = sessions
        self._video_store = video_store
        self._job_queue = job_queue
        self._part_url_ttl_sec = part_url_ttl_sec
        self._max_object_size_bytes = max_object_size_bytes

    def initiate(self, key: str, content_type: str, video_id: str | None = None) -> str:
        """Start a multipart upload to key and return the new session id."""
        upload_id = self._storage.create_multipart_upload(key, content_type)
        session = UploadSession(
            session_id=str(uuid.uuid4()),
            key=key,
            upload_id=upload_id,
            content_type=content_type,
            video_id=video_id,
            created_at=int(time.time()),
        )
        self._sessions.put(session)
        logger.info("session_id=%s video_id=%s key=%s upload initiated", session.session_id, video_id, key)
        return session.session_id

    def get_open_session(self, session_id: str) -> UploadSession:
        """Return the session if it exists and is neither completed nor aborted."""
        session = self._sessions.get(session_id)
        if session is None:
            raise InvalidSession(f"unknown upload session: {session_id}")
        if not session.is_open:
            raise InvalidSession(f"upload session {session_id} is already closed")
        return session

    def sign_part_url(self, session_id: str, part_number: int) -> str:
        if not 1 <= part_number <= MAX_PART_NUMBER:
            raise ValueError(f"part_number must be 1..{MAX_PART_NUMBER}, got {part_number}")
        session = self.get_open_session(session_id)
        return self._storage.presign_upload_part(
            session.key,
            session.upload_id,
            part_number,
            expires_in=self._part_url_ttl_sec,
        )

    def complete(
        self,
        session_id: str,
        parts: list[CompletedPart],
        *,
        client_file_size: int | None = None,
    ) -> UploadCompletion:
        """
        Assemble the uploaded parts into the final object.

        The size cap is checked against the stored object (the client-reported size only
        when the store cannot report one); an oversized object is deleted, its session
        aborted, and UploadTooLarge raised. When the session is bound to a video, its
        file_size is updated from the stored object and one generate_hls and one
        generate_thumbnail job are enqueued. A degraded queue is logged and does not fail
        the completion.
        """
        session = self.get_open_session(session_id)
        validate_part_numbers(parts)
        ordered = sorted(parts, key=lambda p: p.part_number)

        location = self._storage.complete_multipart_upload(session.key, session.upload_id, ordered)
        size = self._stored_size(session)
        if size is None:
            size = client_file_size
        limit = self._max_object_size_bytes
        if limit is not None and size is not None and size > limit:
            self._storage.delete(session.key)
            self._sessions.mark_aborted(session_id)
            logger.warning(
                "session_id=%s video_id=%s rejected: %d bytes over the %d byte cap",
                session_id, session.video_id, size, limit,
            )
            raise UploadTooLarge(size, limit)
        if not self._sessions.mark_completed(session_id):
            raise InvalidSession(f"upload session {session_id} was closed concurrently")
        logger.info(
            "session_id=%s video_id=%s completed with %d parts", session_id, session.video_id, len(ordered)
        )

        jobs_enqueued = 0
        if session.video_id is not None:
            self._record_file_size(session, size)
            jobs_enqueued = self._enqueue_post_upload_jobs(session.video_id, session.key)
        return UploadCompletion(location=location, jobs_enqueued=jobs_enqueued)

    def abort(self, session_id: str) -> None:
        """Abandon the session and the backend multipart upload."""
        session = self.get_open_session(session_id)
        self._storage.abort_multipart_upload(session.key, session.upload_id)
        if not self._sessions.mark_aborted(session_id):
            raise InvalidSession(f"upload session {session_id} was closed concurrently")
        logger.info("session_id=%s video_id=%s aborted", session_id, session.video_id)

    def _stored_size(self, session: UploadSession) -> int | None:
        try:
            return self._storage.size(session.key)
        except StoreUnavailable:
            logger.warning("session_id=%s could not read stored size, using client size", session.session_id)
            return None

    def _record_file_size(self, session: UploadSession, size: int | None) -> None:
        if self._video_store is None:
            return
        if size is None:
            logger.warning("video_id=%s file size unknown after upload", session.video_id)
            return
        try:
            self._video_store.update_metadata(session.video_id, file_size=size)
        except VideoNotFound:
            logger.warning("video_id=%s record gone before upload completed", session.video_id)

    def _enqueue_post_upload_jobs(self, video_id: str, file_key: str) -> int:
        if self._job_queue is None:
            return 0
        enqueued = 0
        for job_type in POST_UPLOAD_JOBS:
            payload = JobPayload(type=job_type, video_id=video_id, file_key=file_key)
            try:
                self._job_queue.enqueue(job_type, payload)
                enqueued += 1
            except QueueDegraded as e:
                logger.error("video_id=%s %s not enqueued: %s", video_id, job_type.value, e)
        return enqueued
