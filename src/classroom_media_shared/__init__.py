"""Shared types and conventions for the classroom video post-processing pipeline."""

from .errors import (
    IncompleteUpload,
    InvalidJob,
    InvalidSession,
    MediaPipelineError,
    ObjectNotFound,
    QueueDegraded,
    StoreUnavailable,
    TranscodeFailure,
    UploadError,
    UploadTooLarge,
    VideoNotFound,
)
from .interfaces import (
    ClaimedJob,
    JobQueue,
    ObjectStorage,
    UploadSessionStore,
    VideoStore,
    VideoViewStore,
)
from .keys import (
    build_hls_manifest_key,
    build_hls_prefix,
    build_raw_video_key,
    build_thumbnail_key,
    content_type_for,
    parse_raw_video_key,
)
from .models import (
    AbortUploadRequest,
    ClassVideosResponse,
    CompletedPart,
    CompleteUploadRequest,
    CompleteUploadResponse,
    InitiateUploadRequest,
    InitiateUploadResponse,
    JobOutcome,
    JobPayload,
    JobState,
    JobType,
    PartUrlRequest,
    PartUrlResponse,
    ProcessingJob,
    TrackViewRequest,
    UploadSession,
    VideoAsset,
    VideoDetailResponse,
    VideoView,
    VideoViewsResponse,
)
from .retry import RetryPolicy

__version__ = "0.1.0"
__all__ = [
    "AbortUploadRequest",
    "ClaimedJob",
    "ClassVideosResponse",
    "CompleteUploadRequest",
    "CompleteUploadResponse",
    "CompletedPart",
    "IncompleteUpload",
    "InitiateUploadRequest",
    "InitiateUploadResponse",
    "InvalidJob",
    "InvalidSession",
    "JobOutcome",
    "JobPayload",
    "JobQueue",
    "JobState",
    "JobType",
    "MediaPipelineError",
    "ObjectNotFound",
    "ObjectStorage",
    "PartUrlRequest",
    "PartUrlResponse",
    "ProcessingJob",
    "QueueDegraded",
    "RetryPolicy",
    "StoreUnavailable",
    "TrackViewRequest",
    "TranscodeFailure",
    "UploadError",
    "UploadSession",
    "UploadSessionStore",
    "UploadTooLarge",
    "VideoAsset",
    "VideoDetailResponse",
    "VideoNotFound",
    "VideoStore",
    "VideoView",
    "VideoViewStore",
    "VideoViewsResponse",
    "build_hls_manifest_key",
    "build_hls_prefix",
    "build_raw_video_key",
    "build_thumbnail_key",
    "content_type_for",
    "parse_raw_video_key",
]
