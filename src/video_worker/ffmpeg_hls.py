"""
ffmpeg / ffprobe wrappers: HLS transcode, duration probe, single-frame thumbnail.

Every failure (non-zero exit, timeout, missing binary, unparseable output) is raised as
TranscodeFailure carrying the tail of stderr.
"""

import logging
import math
import subprocess
from pathlib import Path

from classroom_media_shared.errors import TranscodeFailure
from classroom_media_shared.keys import HLS_MANIFEST_NAME, HLS_SEGMENT_PATTERN

logger = logging.getLogger(__name__)

DEFAULT_SEGMENT_DURATION_SEC = 10
DEFAULT_THUMBNAIL_SIZE = (1280, 720)
THUMBNAIL_SEEK_FRACTION = 0.10
STDERR_TAIL = 2000


def _tail(text: str | bytes | None) -> str:
    if not text:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return text[-STDERR_TAIL:]


def _run(cmd: list[str], what: str, timeout_sec: float | None) -> subprocess.CompletedProcess:
    logger.debug("%s: %s", what, " ".join(cmd))
    try:
        return subprocess.run(cmd, check=True, capture_output=True, text=True, timeout=timeout_sec)
    except subprocess.CalledProcessError as e:
        raise TranscodeFailure(f"{what} exited with {e.returncode}: {_tail(e.stderr)}") from e
    except subprocess.TimeoutExpired as e:
        raise TranscodeFailure(f"{what} timed out after {timeout_sec}s") from e
    except OSError as e:
        raise TranscodeFailure(f"{what} could not be started: {e}") from e


def build_hls_command(
    input_path: str | Path,
    output_dir: str | Path,
    *,
    ffmpeg_bin: str = "ffmpeg",
    segment_duration_sec: int = DEFAULT_SEGMENT_DURATION_SEC,
) -> list[str]:
    """H.264/AAC VOD rendition: segment_NNN.ts files plus playlist.m3u8 listing all of them."""
    output_dir = Path(output_dir)
    return [
        ffmpeg_bin,
        "-y",
        "-i",
        str(input_path),
        "-c:v",
        "libx264",
        "-c:a",
        "aac",
        "-hls_time",
        str(segment_duration_sec),
        "-hls_list_size",
        "0",
        "-hls_segment_filename",
        str(output_dir / HLS_SEGMENT_PATTERN),
        "-f",
        "hls",
        str(output_dir / HLS_MANIFEST_NAME),
    ]


def transcode_to_hls(
    input_path: str | Path,
    output_dir: str | Path,
    *,
    ffmpeg_bin: str = "ffmpeg",
    segment_duration_sec: int = DEFAULT_SEGMENT_DURATION_SEC,
    timeout_sec: float | None = None,
) -> Path:
    """Run the HLS transcode into output_dir and return the manifest path."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    cmd = build_hls_command(
        input_path,
        output_dir,
        ffmpeg_bin=ffmpeg_bin,
        segment_duration_sec=segment_duration_sec,
    )
    _run(cmd, "ffmpeg hls", timeout_sec)
    manifest = output_dir / HLS_MANIFEST_NAME
    if not manifest.is_file():
        raise TranscodeFailure(f"ffmpeg hls produced no {HLS_MANIFEST_NAME}")
    return manifest


def probe_duration_seconds(
    input_path: str | Path,
    *,
    ffprobe_bin: str = "ffprobe",
    timeout_sec: float | None = None,
) -> int:
    """Container duration in whole seconds (floored)."""
    cmd = [
        ffprobe_bin,
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(input_path),
    ]
    result = _run(cmd, "ffprobe", timeout_sec)
    raw = (result.stdout or "").strip()
    try:
        seconds = float(raw)
    except ValueError as e:
        raise TranscodeFailure(f"ffprobe returned no usable duration: {raw!r}") from e
    if seconds < 0 or math.isnan(seconds) or math.isinf(seconds):
        raise TranscodeFailure(f"ffprobe returned invalid duration: {raw!r}")
    return int(math.floor(seconds))


def thumbnail_seek_seconds(duration_seconds: float) -> int:
    """10% into the video, floored, and never before 1s."""
    return max(1, math.floor(duration_seconds * THUMBNAIL_SEEK_FRACTION))


def extract_thumbnail(
    input_path: str | Path,
    output_path: str | Path,
    *,
    seek_sec: int,
    width: int = DEFAULT_THUMBNAIL_SIZE[0],
    height: int = DEFAULT_THUMBNAIL_SIZE[1],
    ffmpeg_bin: str = "ffmpeg",
    timeout_sec: float | None = None,
) -> Path:
    """Write one JPEG frame at seek_sec, scaled to width x height."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        ffmpeg_bin,
        "-y",
        "-ss",
        str(seek_sec),
        "-i",
        str(input_path),
        "-frames:v",
        "1",
        "-q:v",
        "2",
        "-s",
        f"{width}x{height}",
        str(output_path),
    ]
    _run(cmd, "ffmpeg thumbnail", timeout_sec)
    if not output_path.is_file():
        raise TranscodeFailure("ffmpeg thumbnail produced no frame")
    return output_path
