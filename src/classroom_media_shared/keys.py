"""
Object key format, builders and parsers.

Single source of truth: the upload coordinator builds the raw key, the video worker
builds derived keys, and delete cascades use the same prefixes.

Raw upload:    videos/{teacher_id}/{uuid}.mp4
HLS manifest:  hls/{video_id}/playlist.m3u8
HLS segments:  hls/{video_id}/segment_NNN.ts (zero-padded, 3 digits)
Thumbnail:     thumbnails/{video_id}.jpg

Parser behaviour: invalid keys return None. Callers must check and handle accordingly.
"""

import re
import uuid

RAW_VIDEO_PREFIX = "videos/"
HLS_PREFIX = "hls/"
THUMBNAIL_PREFIX = "thumbnails/"
ASSIGNMENT_PREFIX = "assignments/"
SUBMISSION_PREFIX = "submissions/"
KEY_NAMESPACES = (RAW_VIDEO_PREFIX, HLS_PREFIX, THUMBNAIL_PREFIX, ASSIGNMENT_PREFIX, SUBMISSION_PREFIX)

HLS_MANIFEST_NAME = "playlist.m3u8"
HLS_SEGMENT_PATTERN = "segment_%03d.ts"

PLAYLIST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_CONTENT_TYPE = "video/mp2t"
JPEG_CONTENT_TYPE = "image/jpeg"
MP4_CONTENT_TYPE = "video/mp4"

_RAW_VIDEO_KEY_RE = re.compile(r"^videos/([^/]+)/([0-9a-fA-F-]{36})\.mp4$")
_HLS_SEGMENT_NAME_RE = re.compile(r"^segment_(\d{3,})\.ts$")


def build_raw_video_key(teacher_id: str, upload_uuid: str | None = None) -> str:
    """Build videos/{teacher_id}/{uuid}.mp4; a fresh uuid4 is used when none is given."""
    if not teacher_id or "/" in teacher_id:
        raise ValueError(f"invalid teacher_id for key: {teacher_id!r}")
    return f"{RAW_VIDEO_PREFIX}{teacher_id}/{upload_uuid or uuid.uuid4()}.mp4"


def parse_raw_video_key(key: str) -> tuple[str, str] | None:
    """Return (teacher_id, uuid) from a raw upload key, or None if the key is invalid."""
    match = _RAW_VIDEO_KEY_RE.match(key)
    if not match:
        return None
    return match.group(1), match.group(2)


def build_hls_prefix(video_id: str) -> str:
    """Prefix under which every HLS file for the video lives (trailing slash)."""
    return f"{HLS_PREFIX}{video_id}/"


def build_hls_key(video_id: str, filename: str) -> str:
    """Key of one HLS file (manifest or segment) for the video."""
    return f"{build_hls_prefix(video_id)}{filename}"


def build_hls_manifest_key(video_id: str) -> str:
    return build_hls_key(video_id, HLS_MANIFEST_NAME)


def build_hls_segment_key(video_id: str, segment_index: int) -> str:
    return build_hls_key(video_id, HLS_SEGMENT_PATTERN % segment_index)


def parse_hls_segment_index(filename: str) -> int | None:
    """Return the index of segment_NNN.ts, or None if filename is not a segment."""
    match = _HLS_SEGMENT_NAME_RE.match(filename)
    return int(match.group(1)) if match else None


def build_thumbnail_key(video_id: str) -> str:
    return f"{THUMBNAIL_PREFIX}{video_id}.jpg"


def content_type_for(filename: str) -> str:
    """Content type of an artifact by extension (playlist, transport stream, jpeg, mp4)."""
    name = filename.lower()
    if name.endswith(".m3u8"):
        return PLAYLIST_CONTENT_TYPE
    if name.endswith(".ts"):
        return SEGMENT_CONTENT_TYPE
    if name.endswith((".jpg", ".jpeg")):
        return JPEG_CONTENT_TYPE
    if name.endswith(".mp4"):
        return MP4_CONTENT_TYPE
    return "application/octet-stream"
