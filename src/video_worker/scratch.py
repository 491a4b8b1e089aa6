"""Per-job scratch directories under the shared scratch root."""

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


def scratch_prefix(kind: str, video_id: str) -> str:
    """Directory name prefix for one job, e.g. hls_<video_id>_."""
    return f"{kind}_{video_id}_"


@contextmanager
def scratch_dir(root: str | Path, kind: str, video_id: str) -> Iterator[Path]:
    """
    Create a unique directory <root>/<kind>_<video_id>_XXXX for one job and remove it
    on every exit path, including failures and cancellation.
    """
    Path(root).mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=scratch_prefix(kind, video_id), dir=root))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.warning("video_id=%s scratch dir not fully removed: %s", video_id, path)
