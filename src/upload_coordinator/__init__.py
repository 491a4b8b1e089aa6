"""Multipart upload coordination and the video lifecycle service."""

from .coordinator import MultipartUploadCoordinator, UploadCompletion, validate_part_numbers
from .videos import VideoService

__all__ = [
    "MultipartUploadCoordinator",
    "UploadCompletion",
    "VideoService",
    "validate_part_numbers",
]
