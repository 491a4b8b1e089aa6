"""Error taxonomy for the upload and processing pipeline."""


class MediaPipelineError(Exception):
    """Base class for pipeline errors."""


class StoreUnavailable(MediaPipelineError):
    """The object store (or record store) could not be reached."""


class ObjectNotFound(MediaPipelineError):
    """The requested object key does not exist."""

    def __init__(self, key: str) -> None:
        super().__init__(f"object not found: {key}")
        self.key = key


class TranscodeFailure(MediaPipelineError):
    """Probing or deriving artifacts (segments, frame) failed."""


class UploadError(MediaPipelineError):
    """Client-facing multipart upload error. Not retried server-side."""


class IncompleteUpload(UploadError):
    """Supplied parts do not form a contiguous 1..N sequence."""


class InvalidSession(UploadError):
    """Upload session is unknown, already completed, or aborted."""


class QueueDegraded(MediaPipelineError):
    """Job queue backend is unavailable; work is not being enqueued."""


class VideoNotFound(MediaPipelineError):
    """No video record with the given id."""

    def __init__(self, video_id: str) -> None:
        super().__init__(f"video not found: {video_id}")
        self.video_id = video_id


class UploadTooLarge(UploadError):
    """The assembled object is larger than the configured maximum upload size."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"upload is {size} bytes; the maximum is {limit}")
        self.size = size
        self.limit = limit


class InvalidJob(MediaPipelineError):
    """The job payload can never succeed (missing ids, unknown type). Not retried."""
