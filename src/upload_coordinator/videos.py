"""
Video lifecycle: create the record with its upload, sign playback URLs, list a class's
videos, track student views, cascade delete.
"""

import logging
import time
import uuid

from classroom_media_shared.errors import InvalidSession, UploadTooLarge, VideoNotFound
from classroom_media_shared.interfaces import ObjectStorage, VideoStore, VideoViewStore
from classroom_media_shared.keys import (
    MP4_CONTENT_TYPE,
    build_hls_prefix,
    build_raw_video_key,
    build_thumbnail_key,
)
from classroom_media_shared.models import (
    ClassVideosResponse,
    CompletedPart,
    CompleteUploadResponse,
    InitiateUploadResponse,
    TrackViewRequest,
    UploadSession,
    VideoAsset,
    VideoDetailResponse,
    VideoSummary,
    VideoView,
    VideoViewsResponse,
)

from .coordinator import MultipartUploadCoordinator

logger = logging.getLogger(__name__)

DEFAULT_SIGNED_URL_TTL_SEC = 3600


class VideoService:
    """Video records plus their raw upload and derived artifacts in the object store."""

    def __init__(
        self,
        storage: ObjectStorage,
        video_store: VideoStore,
        coordinator: MultipartUploadCoordinator,
        *,
        view_store: VideoViewStore | None = None,
        signed_url_ttl_sec: int = DEFAULT_SIGNED_URL_TTL_SEC,
    ) -> None:
        self._storage = storage
        self._video_store = video_store
        self._coordinator = coordinator
        self._view_store = view_store
        self._signed_url_ttl_sec = signed_url_ttl_sec

    def initiate_video_upload(
        self,
        teacher_id: str,
        class_id: str,
        title: str,
        description: str | None = None,
    ) -> InitiateUploadResponse:
        """Reserve videos/{teacher_id}/{uuid}.mp4, start its multipart upload, create the record."""
        video_id = str(uuid.uuid4())
        file_key = build_raw_video_key(teacher_id)
        session_id = self._coordinator.initiate(file_key, MP4_CONTENT_TYPE, video_id=video_id)
        now = int(time.time())
        self._video_store.put(
            VideoAsset(
                video_id=video_id,
                title=title,
                description=description,
                class_id=class_id,
                teacher_id=teacher_id,
                file_key=file_key,
                file_size=0,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("video_id=%s teacher_id=%s class_id=%s created", video_id, teacher_id, class_id)
        return InitiateUploadResponse(video_id=video_id, upload_id=session_id, file_key=file_key)

    def sign_part_url(self, video_id: str, session_id: str, part_number: int) -> str:
        self._session_for_video(video_id, session_id)
        return self._coordinator.sign_part_url(session_id, part_number)

    def complete_video_upload(
        self,
        video_id: str,
        session_id: str,
        parts: list[CompletedPart],
        file_size: int | None = None,
    ) -> CompleteUploadResponse:
        self._session_for_video(video_id, session_id)
        try:
            result = self._coordinator.complete(session_id, parts, client_file_size=file_size)
        except UploadTooLarge:
            self._video_store.delete(video_id)
            logger.info("video_id=%s removed after oversized upload", video_id)
            raise
        return CompleteUploadResponse(
            video_id=video_id,
            location=result.location,
            jobs_enqueued=result.jobs_enqueued,
        )

    def abort_video_upload(self, video_id: str, session_id: str) -> None:
        """Abort the upload and drop the placeholder record (it never had a file)."""
        self._session_for_video(video_id, session_id)
        self._coordinator.abort(session_id)
        self._video_store.delete(video_id)
        logger.info("video_id=%s removed after aborted upload", video_id)

    def get_video(self, video_id: str) -> VideoAsset:
        video = self._video_store.get(video_id)
        if video is None:
            raise VideoNotFound(video_id)
        return video

    def get_video_detail(self, video_id: str) -> VideoDetailResponse:
        """
        Video plus signed URLs: the HLS manifest once processed, otherwise the raw file;
        the thumbnail only when one has been generated.
        """
        video = self.get_video(video_id)
        playback_key = video.hls_key or video.file_key
        video_url = self._storage.sign_url("get", playback_key, expires_in=self._signed_url_ttl_sec)
        thumbnail_url = None
        if video.thumbnail_key:
            thumbnail_url = self._storage.sign_url(
                "get", video.thumbnail_key, expires_in=self._signed_url_ttl_sec
            )
        return VideoDetailResponse(
            **video.model_dump(), video_url=video_url, thumbnail_url=thumbnail_url
        )

    def list_class_videos(self, class_id: str) -> ClassVideosResponse:
        return ClassVideosResponse(class_id=class_id, videos=self._video_store.list_by_class(class_id))

    def record_view(self, video_id: str, student_id: str, report: TrackViewRequest) -> VideoView:
        """
        Fold one player report into the student's view record.

        watch_duration grows by the reported playback position on every report, so a
        player that reports its absolute position repeatedly is counted more than once.
        Clients that need exact watch time should report deltas.
        """
        self.get_video(video_id)
        view = self._views().record_view(
            video_id,
            student_id,
            progress=report.progress,
            completion_percentage=report.completion_percentage,
        )
        logger.info(
            "video_id=%s student_id=%s view %s at %.1f%%",
            video_id, student_id, report.action, view.completion_percentage,
        )
        return view

    def get_views(self, video_id: str) -> VideoViewsResponse:
        video = self.get_video(video_id)
        return VideoViewsResponse(
            video=VideoSummary(video_id=video.video_id, title=video.title),
            views=self._views().list_views(video_id),
        )

    def delete_video(self, video_id: str) -> None:
        """Delete the raw file, every HLS file, the thumbnail, the view records, then the record."""
        video = self.get_video(video_id)
        self._storage.delete(video.file_key)
        removed = self._storage.delete_prefix(build_hls_prefix(video_id))
        self._storage.delete(video.thumbnail_key or build_thumbnail_key(video_id))
        if self._view_store is not None:
            self._view_store.delete_for_video(video_id)
        self._video_store.delete(video_id)
        logger.info("video_id=%s deleted (%d hls objects)", video_id, removed)

    def _views(self) -> VideoViewStore:
        if self._view_store is None:
            raise RuntimeError("VideoService was built without a view store")
        return self._view_store

    def _session_for_video(self, video_id: str, session_id: str) -> UploadSession:
        session = self._coordinator.get_open_session(session_id)
        if session.video_id != video_id:
            raise InvalidSession(f"upload session {session_id} does not belong to video {video_id}")
        return session
