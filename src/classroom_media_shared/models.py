"""Pydantic models for video assets, processing jobs, upload sessions, and API DTOs."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class JobType(str, Enum):
    """Kind of work carried by a processing job."""

    GENERATE_HLS = "generate_hls"
    GENERATE_THUMBNAIL = "generate_thumbnail"
    CLEANUP_TEMP_FILES = "cleanup_temp_files"


class JobState(str, Enum):
    """Lifecycle state of a processing job."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class JobOutcome(str, Enum):
    """What the queue did with a job after a failed attempt."""

    RETRY_SCHEDULED = "retry_scheduled"
    FAILED_TERMINAL = "failed_terminal"


class VideoAsset(BaseModel):
    """Video record (record store, API)."""

    video_id: str = Field(..., description="Unique video identifier")
    title: str = Field(..., description="Display title")
    description: str | None = Field(None, description="Optional description")
    class_id: str = Field(..., description="Owning class")
    teacher_id: str = Field(..., description="Owning teacher")
    file_key: str = Field(..., description="Raw upload key, videos/{teacher_id}/{uuid}.mp4")
    file_size: int = Field(0, ge=0, description="Raw size in bytes; 0 until upload completes")
    duration_seconds: int | None = Field(None, ge=0, description="Set by the HLS job")
    hls_key: str | None = Field(None, description="HLS manifest key, set by the HLS job")
    thumbnail_key: str | None = Field(None, description="Thumbnail key, set by the thumbnail job")
    created_at: int | None = Field(None, description="Unix timestamp when created")
    updated_at: int | None = Field(None, description="Unix timestamp of last update")


# --- Job queue ---

class JobPayload(BaseModel):
    """
    Wire payload of a processing job: {"type": ..., "videoId"?: ..., "fileKey"?: ...}.

    Cleanup jobs carry neither videoId nor fileKey.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: JobType
    video_id: str | None = Field(None, alias="videoId")
    file_key: str | None = Field(None, alias="fileKey")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProcessingJob(BaseModel):
    """A job as held by a queue backend (payload plus attempt bookkeeping)."""

    job_id: str
    payload: JobPayload
    attempts_made: int = Field(0, ge=0, description="Attempts that have already run")
    max_attempts: int = Field(3, ge=1)
    backoff_base_sec: float = Field(2.0, ge=0.0, description="Delay before the first retry")
    state: JobState = JobState.PENDING
    last_error: str | None = None
    enqueued_at: float | None = Field(None, description="Unix time of first enqueue")
    finished_at: float | None = None

    @property
    def type(self) -> JobType:
        return self.payload.type


# --- Multipart uploads ---

class CompletedPart(BaseModel):
    """One uploaded part as acknowledged by the store (PUT response ETag)."""

    model_config = ConfigDict(populate_by_name=True)

    part_number: int = Field(..., ge=1, alias="PartNumber")
    etag: str = Field(..., min_length=1, alias="ETag")


class UploadSession(BaseModel):
    """Multipart upload session (upload session store)."""

    session_id: str
    key: str = Field(..., description="Destination object key")
    upload_id: str = Field(..., description="Backend multipart upload id")
    content_type: str = "application/octet-stream"
    video_id: str | None = Field(None, description="Video whose raw file this session uploads")
    created_at: int | None = None
    completed_at: int | None = None
    aborted_at: int | None = None

    @property
    def is_open(self) -> bool:
        return self.completed_at is None and self.aborted_at is None


# --- API DTOs ---

class InitiateUploadRequest(BaseModel):
    """Request body for POST /videos/upload-url."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    class_id: str = Field(..., min_length=1, alias="classId")


class InitiateUploadResponse(BaseModel):
    """Response of POST /videos/upload-url."""

    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(..., alias="videoId")
    upload_id: str = Field(..., alias="uploadId", description="Opaque upload session id")
    file_key: str = Field(..., alias="fileKey")


class PartUrlRequest(BaseModel):
    """Request body for POST /videos/upload-part-url."""

    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(..., alias="videoId")
    upload_id: str = Field(..., alias="uploadId")
    part_number: int = Field(..., ge=1, le=10000, alias="partNumber")


class PartUrlResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    signed_url: str = Field(..., alias="signedUrl")


class CompleteUploadRequest(BaseModel):
    """Request body for POST /videos/complete-upload."""

    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(..., alias="videoId")
    upload_id: str = Field(..., alias="uploadId")
    parts: list[CompletedPart] = Field(..., min_length=1)
    file_size: int | None = Field(
        None,
        ge=0,
        le=10 * 1024 * 1024 * 1024,
        alias="fileSize",
        description="Client-reported size; used only if the store cannot report one",
    )


class CompleteUploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(..., alias="videoId")
    location: str
    jobs_enqueued: int = Field(..., alias="jobsEnqueued")


class AbortUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(..., alias="videoId")
    upload_id: str = Field(..., alias="uploadId")


class VideoDetailResponse(VideoAsset):
    """Video fields plus presigned playback and thumbnail URLs."""

    model_config = ConfigDict(populate_by_name=True)

    video_url: str = Field(..., alias="videoUrl", description="Manifest URL once processed, raw otherwise")
    thumbnail_url: str | None = Field(None, alias="thumbnailUrl")


class ClassVideosResponse(BaseModel):
    """Response of GET /videos/class/{class_id}: the class's videos, newest first."""

    model_config = ConfigDict(populate_by_name=True)

    class_id: str = Field(..., alias="classId")
    videos: list[VideoAsset]


# --- View tracking ---

# A view at or past this completion percentage counts as watched
COMPLETION_THRESHOLD_PERCENT = 90.0

ViewAction = Literal["start", "pause", "seek", "complete"]


class VideoView(BaseModel):
    """One student's watch record for one video (video view store, API)."""

    video_id: str
    student_id: str
    watch_duration: float = Field(0.0, ge=0, description="Sum of reported progress, seconds")
    completion_percentage: float = Field(0.0, ge=0, le=100, description="Highest completion reported")
    is_completed: bool = False
    first_watched_at: int | None = None
    last_watched_at: int | None = None


class TrackViewRequest(BaseModel):
    """Request body for POST /videos/{video_id}/view."""

    action: ViewAction
    progress: float = Field(0.0, ge=0, description="Playback position, seconds")
    duration: float = Field(0.0, ge=0, description="Video length as seen by the player, seconds")

    @property
    def completion_percentage(self) -> float:
        if self.duration <= 0:
            return 0.0
        return min(self.progress / self.duration * 100, 100.0)


class VideoSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(..., alias="id")
    title: str


class VideoViewsResponse(BaseModel):
    """Response of GET /videos/{video_id}/views: one record per student, newest first watch first."""

    video: VideoSummary
    views: list[VideoView]
