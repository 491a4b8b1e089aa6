"""
Scratch cleanup: reclaim stale entries under the scratch root.

The sweep is the only code that scans the root. A lock file in the root keeps two sweeps
(queued job, timer, another worker process on the same host) from overlapping; a lock
left behind by a crashed sweep is reclaimed once it is older than the stale threshold.
"""

import logging
import os
import shutil
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from classroom_media_shared.errors import QueueDegraded
from classroom_media_shared.interfaces import JobQueue
from classroom_media_shared.models import JobType

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".cleanup.lock"
DEFAULT_MAX_AGE_SEC = 24 * 60 * 60
DEFAULT_STALE_LOCK_SEC = 60 * 60


class CleanupBusy(RuntimeError):
    """Another sweep holds the scratch root lock."""


@dataclass(frozen=True)
class _LockHandle:
    path: Path
    fd: int


def _acquire_lock(root: Path, stale_lock_sec: float) -> _LockHandle:
    path = root / LOCK_FILE_NAME
    payload = f"pid={os.getpid()}\ncreated_at={int(time.time())}\n"
    for _ in range(2):
        try:
            fd = os.open(str(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            try:
                age = time.time() - path.stat().st_mtime
            except FileNotFoundError:
                continue
            if age <= stale_lock_sec:
                break
            logger.warning("reclaiming stale cleanup lock (age %.0fs)", age)
            path.unlink(missing_ok=True)
            continue
        os.write(fd, payload.encode())
        return _LockHandle(path=path, fd=fd)
    raise CleanupBusy(f"cleanup already running in {root}")


def _release_lock(handle: _LockHandle) -> None:
    os.close(handle.fd)
    handle.path.unlink(missing_ok=True)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def cleanup_temp_files(
    root: str | Path,
    *,
    max_age_sec: float = DEFAULT_MAX_AGE_SEC,
    now: float | None = None,
    stale_lock_sec: float = DEFAULT_STALE_LOCK_SEC,
) -> int:
    """
    Remove every entry directly under root whose mtime is older than max_age_sec
    (directories recursively). Returns how many entries were reclaimed; 0 when the
    root does not exist or another sweep holds the lock.
    """
    root = Path(root)
    if not root.is_dir():
        return 0
    try:
        lock = _acquire_lock(root, stale_lock_sec)
    except CleanupBusy as e:
        logger.info("cleanup skipped: %s", e)
        return 0

    now = time.time() if now is None else now
    reclaimed = 0
    try:
        for entry in root.iterdir():
            if entry.name == LOCK_FILE_NAME:
                continue
            try:
                mtime = entry.lstat().st_mtime
            except FileNotFoundError:
                continue
            if now - mtime <= max_age_sec:
                continue
            try:
                _remove(entry)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("cleanup: could not remove %s: %s", entry, e)
                continue
            reclaimed += 1
    finally:
        _release_lock(lock)
    logger.info("cleanup: reclaimed %d entries from %s", reclaimed, root)
    return reclaimed


class CleanupScheduler:
    """
    Enqueue a cleanup_temp_files job every interval_sec (first run one interval after
    start). When the queue is degraded the sweep runs inline in the timer thread.
    """

    def __init__(
        self,
        queue: JobQueue,
        sweep: Callable[[], int],
        *,
        interval_sec: float = DEFAULT_MAX_AGE_SEC,
    ) -> None:
        self._queue = queue
        self._sweep = sweep
        self._interval_sec = interval_sec
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self) -> None:
        try:
            job_id = self._queue.enqueue(JobType.CLEANUP_TEMP_FILES)
            logger.info("job_id=%s scheduled cleanup enqueued", job_id)
        except QueueDegraded as e:
            logger.error("cleanup not enqueued (%s); sweeping inline", e)
            self._sweep()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="cleanup-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        logger.info("cleanup scheduler started (every %.0fs)", self._interval_sec)
        while not self._stop.wait(self._interval_sec):
            try:
                self.tick()
            except Exception as e:
                logger.exception("cleanup scheduler tick failed: %s", e)
