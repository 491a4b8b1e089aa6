"""
In-process JobQueue implementations.

InMemoryJobQueue: single-process queue with the same retry and retention semantics as
the SQS backend (QUEUE_BACKEND=memory, tests).
NoOpJobQueue: explicit degraded mode when no queue is reachable (QUEUE_BACKEND=noop, or
selected by the adapter facade when the configured queue fails its startup check).
"""

import heapq
import logging
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable

from .errors import QueueDegraded
from .interfaces import ClaimedJob
from .models import JobOutcome, JobPayload, JobState, JobType, ProcessingJob
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_COMPLETED_RETENTION = 10
DEFAULT_FAILED_RETENTION = 5


class InMemoryJobQueue:
    """
    JobQueue held in process memory.

    Pending jobs sit in a heap ordered by ready time; a claimed job is moved to the
    active set, so no other claimer can see it until ack or fail. clock is injectable
    so tests can step through retry delays without sleeping.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        completed_retention: int = DEFAULT_COMPLETED_RETENTION,
        failed_retention: int = DEFAULT_FAILED_RETENTION,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._policy = policy or RetryPolicy()
        self._clock = clock
        self._cond = threading.Condition()
        self._ready: list[tuple[float, int, str]] = []
        self._seq = 0
        self._jobs: dict[str, ProcessingJob] = {}
        self._active: dict[str, str] = {}
        self._completed: deque[ProcessingJob] = deque(maxlen=completed_retention)
        self._failed: deque[ProcessingJob] = deque(maxlen=failed_retention)

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def enqueue(self, job_type: JobType, payload: JobPayload | None = None) -> str:
        payload = payload or JobPayload(type=job_type)
        if payload.type != job_type:
            payload = payload.model_copy(update={"type": job_type})
        job = ProcessingJob(
            job_id=str(uuid.uuid4()),
            payload=payload,
            max_attempts=self._policy.max_attempts,
            backoff_base_sec=self._policy.base_delay_sec,
            enqueued_at=time.time(),
        )
        with self._cond:
            self._jobs[job.job_id] = job
            self._push(job.job_id, self._clock())
            self._cond.notify()
        logger.info("job_id=%s type=%s video_id=%s enqueued", job.job_id, job_type.value, payload.video_id)
        return job.job_id

    def claim(self, timeout: float = 0.0) -> ClaimedJob | None:
        deadline = self._clock() + max(0.0, timeout)
        with self._cond:
            while True:
                now = self._clock()
                if self._ready and self._ready[0][0] <= now:
                    _, _, job_id = heapq.heappop(self._ready)
                    job = self._jobs[job_id].model_copy(update={"state": JobState.ACTIVE})
                    self._jobs[job_id] = job
                    handle = uuid.uuid4().hex
                    self._active[handle] = job_id
                    return ClaimedJob(job, handle)
                remaining = deadline - now
                if remaining <= 0:
                    return None
                if self._ready:
                    remaining = min(remaining, self._ready[0][0] - now)
                self._cond.wait(remaining)

    def ack(self, claimed: ClaimedJob) -> None:
        with self._cond:
            job_id = self._take_active(claimed)
            job = self._jobs.pop(job_id).model_copy(
                update={
                    "state": JobState.COMPLETED,
                    "attempts_made": claimed.job.attempts_made + 1,
                    "finished_at": time.time(),
                }
            )
            self._completed.append(job)
        logger.info("job_id=%s type=%s completed", job.job_id, job.type.value)

    def extend_visibility(self, claimed: ClaimedJob, seconds: int) -> None:
        """An in-memory claim is exclusive until ack or fail; only the handle is checked."""
        with self._cond:
            if claimed.handle not in self._active:
                raise ValueError(f"job_id={claimed.job.job_id} is not claimed by this handle")

    def fail(self, claimed: ClaimedJob, error: str, *, retry: bool = True) -> JobOutcome:
        with self._cond:
            job_id = self._take_active(claimed)
            attempts = claimed.job.attempts_made + 1
            if retry and self._policy.should_retry(attempts):
                delay = self._policy.delay_for(attempts)
                self._jobs[job_id] = self._jobs[job_id].model_copy(
                    update={"state": JobState.PENDING, "attempts_made": attempts, "last_error": error}
                )
                self._push(job_id, self._clock() + delay)
                self._cond.notify()
                outcome = JobOutcome.RETRY_SCHEDULED
            else:
                job = self._jobs.pop(job_id).model_copy(
                    update={
                        "state": JobState.FAILED,
                        "attempts_made": attempts,
                        "last_error": error,
                        "finished_at": time.time(),
                    }
                )
                self._failed.append(job)
                outcome = JobOutcome.FAILED_TERMINAL
        if outcome is JobOutcome.RETRY_SCHEDULED:
            logger.warning(
                "job_id=%s attempt %s/%s failed, retry in %.1fs: %s",
                job_id, attempts, self._policy.max_attempts, delay, error,
            )
        else:
            logger.error("job_id=%s failed after %s attempts: %s", job_id, attempts, error)
        return outcome

    def completed_jobs(self) -> list[ProcessingJob]:
        with self._cond:
            return list(self._completed)

    def failed_jobs(self) -> list[ProcessingJob]:
        with self._cond:
            return list(self._failed)

    def pending_count(self) -> int:
        with self._cond:
            return len(self._ready)

    def active_count(self) -> int:
        with self._cond:
            return len(self._active)

    def _push(self, job_id: str, ready_at: float) -> None:
        self._seq += 1
        heapq.heappush(self._ready, (ready_at, self._seq, job_id))

    def _take_active(self, claimed: ClaimedJob) -> str:
        job_id = self._active.pop(claimed.handle, None)
        if job_id is None:
            raise ValueError(f"job_id={claimed.job.job_id} is not claimed by this handle")
        return job_id


class NoOpJobQueue:
    """JobQueue that drops every job: each enqueue is logged at ERROR, counted, and raises QueueDegraded."""

    def __init__(self, reason: str = "no job queue configured") -> None:
        self.reason = reason
        self.dropped_count = 0
        self._lock = threading.Lock()

    def enqueue(self, job_type: JobType, payload: JobPayload | None = None) -> str:
        with self._lock:
            self.dropped_count += 1
        video_id = payload.video_id if payload else None
        logger.error(
            "job queue degraded (%s): dropped type=%s video_id=%s", self.reason, job_type.value, video_id
        )
        raise QueueDegraded(f"job queue degraded: {self.reason}")

    def claim(self, timeout: float = 0.0) -> ClaimedJob | None:
        if timeout > 0:
            time.sleep(timeout)
        return None

    def ack(self, claimed: ClaimedJob) -> None:
        return None

    def extend_visibility(self, claimed: ClaimedJob, seconds: int) -> None:
        return None

    def fail(self, claimed: ClaimedJob, error: str, *, retry: bool = True) -> JobOutcome:
        return JobOutcome.FAILED_TERMINAL

    def completed_jobs(self) -> list[ProcessingJob]:
        return []

    def failed_jobs(self) -> list[ProcessingJob]:
        return []
