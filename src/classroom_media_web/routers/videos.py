"""
Video routes: upload-url, upload-part-url, complete, abort, class listing, detail,
view tracking and view statistics, delete.
"""

import logging

from classroom_media_shared import (
    AbortUploadRequest,
    ClassVideosResponse,
    CompleteUploadRequest,
    CompleteUploadResponse,
    InitiateUploadRequest,
    InitiateUploadResponse,
    PartUrlRequest,
    PartUrlResponse,
    TrackViewRequest,
    VideoDetailResponse,
    VideoView,
    VideoViewsResponse,
)
from fastapi import APIRouter, Depends, HTTPException
from upload_coordinator import VideoService

from ..config import WebSettings
from ..deps import (
    Caller,
    get_caller,
    get_video_service,
    get_web_settings,
    require_student,
    require_teacher,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


def _require_owner(service: VideoService, video_id: str, caller: Caller) -> None:
    video = service.get_video(video_id)
    if video.teacher_id != caller.user_id:
        raise HTTPException(status_code=403, detail="Not the owner of this video")


@router.post("/upload-url", response_model=InitiateUploadResponse)
async def create_upload_url(
    body: InitiateUploadRequest,
    caller: Caller = Depends(require_teacher),
    service: VideoService = Depends(get_video_service),
) -> InitiateUploadResponse:
    """Create the video record and start its multipart upload."""
    return service.initiate_video_upload(
        caller.user_id, body.class_id, body.title, body.description
    )


@router.post("/upload-part-url", response_model=PartUrlResponse)
async def create_upload_part_url(
    body: PartUrlRequest,
    caller: Caller = Depends(require_teacher),
    service: VideoService = Depends(get_video_service),
) -> PartUrlResponse:
    """Signed PUT URL for one part; the client uploads the bytes directly to the store."""
    _require_owner(service, body.video_id, caller)
    url = service.sign_part_url(body.video_id, body.upload_id, body.part_number)
    return PartUrlResponse(signed_url=url)


@router.post("/complete-upload", response_model=CompleteUploadResponse)
async def complete_upload(
    body: CompleteUploadRequest,
    caller: Caller = Depends(require_teacher),
    service: VideoService = Depends(get_video_service),
    settings: WebSettings = Depends(get_web_settings),
) -> CompleteUploadResponse:
    """Assemble the parts, record the file size, enqueue HLS and thumbnail jobs."""
    # Early reject on the client's word; the coordinator re-checks the stored object
    if body.file_size is not None and body.file_size > settings.max_video_size_bytes:
        raise HTTPException(status_code=413, detail="Video exceeds the maximum upload size")
    _require_owner(service, body.video_id, caller)
    result = service.complete_video_upload(
        body.video_id, body.upload_id, body.parts, file_size=body.file_size
    )
    logger.info("video_id=%s upload completed, jobs_enqueued=%s", body.video_id, result.jobs_enqueued)
    return result


@router.post("/abort-upload", status_code=204)
async def abort_upload(
    body: AbortUploadRequest,
    caller: Caller = Depends(require_teacher),
    service: VideoService = Depends(get_video_service),
) -> None:
    """Abandon the upload and drop the placeholder video."""
    _require_owner(service, body.video_id, caller)
    service.abort_video_upload(body.video_id, body.upload_id)


@router.get("/class/{class_id}", response_model=ClassVideosResponse)
async def list_class_videos(
    class_id: str,
    caller: Caller = Depends(get_caller),
    service: VideoService = Depends(get_video_service),
) -> ClassVideosResponse:
    """Every video in the class, newest first."""
    return service.list_class_videos(class_id)


@router.get("/{video_id}", response_model=VideoDetailResponse)
async def get_video(
    video_id: str,
    caller: Caller = Depends(get_caller),
    service: VideoService = Depends(get_video_service),
) -> VideoDetailResponse:
    """Video with signed playback URL (HLS manifest once processed) and thumbnail URL."""
    return service.get_video_detail(video_id)


@router.post("/{video_id}/view", response_model=VideoView)
async def track_view(
    video_id: str,
    body: TrackViewRequest,
    caller: Caller = Depends(require_student),
    service: VideoService = Depends(get_video_service),
) -> VideoView:
    """Record a player report (start, pause, seek, complete) for the calling student."""
    return service.record_view(video_id, caller.user_id, body)


@router.get("/{video_id}/views", response_model=VideoViewsResponse)
async def get_video_views(
    video_id: str,
    caller: Caller = Depends(require_teacher),
    service: VideoService = Depends(get_video_service),
) -> VideoViewsResponse:
    """Per-student view records; only the owning teacher may read them."""
    _require_owner(service, video_id, caller)
    return service.get_views(video_id)


@router.delete("/{video_id}", status_code=204)
async def delete_video(
    video_id: str,
    caller: Caller = Depends(require_teacher),
    service: VideoService = Depends(get_video_service),
) -> None:
    """Delete the raw file, HLS files, thumbnail and record."""
    _require_owner(service, video_id, caller)
    service.delete_video(video_id)
