"""Dependencies and app state for FastAPI routes."""

from dataclasses import dataclass

from classroom_media_shared.interfaces import (
    JobQueue,
    ObjectStorage,
    UploadSessionStore,
    VideoStore,
    VideoViewStore,
)
from fastapi import Depends, Header, HTTPException, Request
from upload_coordinator import MultipartUploadCoordinator, VideoService

from .config import WebSettings, get_settings

TEACHER_ROLE = "teacher"
STUDENT_ROLE = "student"


@dataclass(frozen=True)
class Caller:
    """Identity forwarded by the upstream auth layer."""

    user_id: str
    role: str

    @property
    def is_teacher(self) -> bool:
        return self.role == TEACHER_ROLE

    @property
    def is_student(self) -> bool:
        return self.role == STUDENT_ROLE


def _state_or_build(request: Request, name: str, build):
    """Return app.state.<name>, building it once from env when unset."""
    value = getattr(request.app.state, name, None)
    if value is None:
        value = build()
        setattr(request.app.state, name, value)
    return value


def get_web_settings(request: Request) -> WebSettings:
    """Return WebSettings from app state or env."""
    return _state_or_build(request, "settings", get_settings)


def get_object_storage(request: Request) -> ObjectStorage:
    """Return ObjectStorage from app state or build from env."""
    from classroom_media_adapters.env_config import object_storage_from_env

    return _state_or_build(request, "object_storage", object_storage_from_env)


def get_video_store(request: Request) -> VideoStore:
    """Return VideoStore from app state or build from env."""
    from classroom_media_adapters.env_config import video_store_from_env

    return _state_or_build(request, "video_store", video_store_from_env)


def get_video_view_store(request: Request) -> VideoViewStore:
    """Return VideoViewStore from app state or build from env."""
    from classroom_media_adapters.env_config import video_view_store_from_env

    return _state_or_build(request, "video_view_store", video_view_store_from_env)


def get_upload_session_store(request: Request) -> UploadSessionStore:
    """Return UploadSessionStore from app state or build from env."""
    from classroom_media_adapters.env_config import upload_session_store_from_env

    return _state_or_build(request, "upload_session_store", upload_session_store_from_env)


def get_job_queue(request: Request) -> JobQueue:
    """Return JobQueue from app state or build from env (NoOpJobQueue when unreachable)."""
    from classroom_media_adapters.env_config import job_queue_from_env

    return _state_or_build(request, "job_queue", job_queue_from_env)


def get_video_service(
    storage: ObjectStorage = Depends(get_object_storage),
    video_store: VideoStore = Depends(get_video_store),
    view_store: VideoViewStore = Depends(get_video_view_store),
    sessions: UploadSessionStore = Depends(get_upload_session_store),
    job_queue: JobQueue = Depends(get_job_queue),
    settings: WebSettings = Depends(get_web_settings),
) -> VideoService:
    """VideoService over the request's adapters."""
    coordinator = MultipartUploadCoordinator(
        storage,
        sessions,
        video_store=video_store,
        job_queue=job_queue,
        part_url_ttl_sec=settings.signed_url_ttl_sec,
        max_object_size_bytes=settings.max_video_size_bytes,
    )
    return VideoService(
        storage,
        video_store,
        coordinator,
        view_store=view_store,
        signed_url_ttl_sec=settings.signed_url_ttl_sec,
    )


def get_caller(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> Caller:
    """Caller identity from X-User-Id / X-User-Role; 401 when absent."""
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Authentication required")
    return Caller(user_id=x_user_id, role=x_user_role.strip().lower())


def require_teacher(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_teacher:
        raise HTTPException(status_code=403, detail="Only teachers can manage videos")
    return caller


def require_student(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_student:
        raise HTTPException(status_code=403, detail="Only students can record views")
    return caller
