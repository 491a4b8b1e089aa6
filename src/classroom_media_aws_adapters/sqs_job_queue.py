"""
SQS implementation of JobQueue.

Message body is the job payload wire shape plus bookkeeping fields:
{"type": ..., "videoId"?: ..., "fileKey"?: ..., "jobId": ..., "attemptsMade": n, "enqueuedAt": t}

Single claimer is enforced by the visibility timeout; a worker running a long job keeps
its message hidden with extend_visibility. A retry is a fresh message sent with
DelaySeconds (SQS caps this at 15 minutes) followed by deleting the claimed one, so the
attempt count travels with the message. A message redelivered because its worker died
counts each extra receive as a spent attempt, and once the ceiling is reached it is
dead-lettered at claim time instead of being handed out again. Terminal failures are
forwarded to the dead-letter queue when one is configured.
"""

import json
import logging
import time
import uuid
from collections import deque

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from classroom_media_shared.errors import QueueDegraded
from classroom_media_shared.interfaces import ClaimedJob
from classroom_media_shared.models import (
    JobOutcome,
    JobPayload,
    JobState,
    JobType,
    ProcessingJob,
)
from classroom_media_shared.queues import DEFAULT_COMPLETED_RETENTION, DEFAULT_FAILED_RETENTION
from classroom_media_shared.retry import RetryPolicy
from pydantic import ValidationError

logger = logging.getLogger(__name__)

SQS_MAX_DELAY_SECONDS = 900
SQS_MAX_WAIT_SECONDS = 20
SQS_MAX_VISIBILITY_SECONDS = 43200


def job_to_body(job: ProcessingJob, *, last_error: str | None = None) -> str:
    """Serialize a job for an SQS message body."""
    body = job.payload.to_wire()
    body["jobId"] = job.job_id
    body["attemptsMade"] = job.attempts_made
    if job.enqueued_at is not None:
        body["enqueuedAt"] = job.enqueued_at
    if last_error is not None:
        body["lastError"] = last_error
    return json.dumps(body)


def body_to_job(body: str, policy: RetryPolicy) -> ProcessingJob | None:
    """Parse an SQS message body. Returns None if the body is not a job."""
    try:
        data = json.loads(body)
        payload = JobPayload.model_validate(data)
        return ProcessingJob(
            job_id=data.get("jobId") or str(uuid.uuid4()),
            payload=payload,
            attempts_made=int(data.get("attemptsMade", 0)),
            max_attempts=policy.max_attempts,
            backoff_base_sec=policy.base_delay_sec,
            state=JobState.ACTIVE,
            last_error=data.get("lastError"),
            enqueued_at=data.get("enqueuedAt"),
        )
    except (ValueError, TypeError, ValidationError):
        return None


class SQSJobQueue:
    """JobQueue implementation using SQS (optionally with a dead-letter queue)."""

    def __init__(
        self,
        queue_url: str,
        *,
        dead_letter_queue_url: str | None = None,
        policy: RetryPolicy | None = None,
        region_name: str | None = None,
        endpoint_url: str | None = None,
        wait_time_seconds: int = 0,
        visibility_timeout_seconds: int | None = None,
        completed_retention: int = DEFAULT_COMPLETED_RETENTION,
        failed_retention: int = DEFAULT_FAILED_RETENTION,
    ) -> None:
        self._queue_url = queue_url
        self._dlq_url = dead_letter_queue_url
        self._policy = policy or RetryPolicy()
        self._wait_time_seconds = wait_time_seconds
        self._visibility_timeout = visibility_timeout_seconds
        self._completed: deque[ProcessingJob] = deque(maxlen=completed_retention)
        self._failed: deque[ProcessingJob] = deque(maxlen=failed_retention)
        self._client = boto3.client(
            "sqs",
            region_name=region_name,
            endpoint_url=endpoint_url,
        )

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def ping(self) -> None:
        """Raise QueueDegraded if the queue cannot be reached."""
        try:
            self._client.get_queue_attributes(
                QueueUrl=self._queue_url, AttributeNames=["QueueArn"]
            )
        except (BotoCoreError, ClientError) as e:
            raise QueueDegraded(f"SQS queue unreachable: {e}") from e

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
        try:
            self._client.send_message(QueueUrl=self._queue_url, MessageBody=job_to_body(job))
        except (BotoCoreError, ClientError) as e:
            raise QueueDegraded(f"enqueue {job_type.value} failed: {e}") from e
        logger.info("job_id=%s type=%s video_id=%s enqueued", job.job_id, job_type.value, payload.video_id)
        return job.job_id

    def claim(self, timeout: float = 0.0) -> ClaimedJob | None:
        """Receive at most one message, long polling up to min(timeout, configured wait, 20s)."""
        wait = min(SQS_MAX_WAIT_SECONDS, self._wait_time_seconds, int(timeout))
        params = {
            "QueueUrl": self._queue_url,
            "MaxNumberOfMessages": 1,
            "WaitTimeSeconds": max(0, wait),
            "AttributeNames": ["ApproximateReceiveCount"],
        }
        if self._visibility_timeout is not None:
            params["VisibilityTimeout"] = self._visibility_timeout
        resp = self._client.receive_message(**params)
        messages = resp.get("Messages") or []
        if not messages:
            return None
        msg = messages[0]
        job = body_to_job(msg["Body"], self._policy)
        if job is None:
            logger.error("dropping unparseable job message: %r", msg["Body"][:200])
            self._delete(msg["ReceiptHandle"])
            return None
        receive_count = int((msg.get("Attributes") or {}).get("ApproximateReceiveCount", 1))
        if receive_count > 1:
            job = job.model_copy(update={"attempts_made": job.attempts_made + receive_count - 1})
        claimed = ClaimedJob(job, msg["ReceiptHandle"])
        if job.attempts_made >= self._policy.max_attempts:
            error = job.last_error or "worker stopped before settling the job"
            self._dead_letter(
                claimed, job.attempts_made, f"abandoned after {job.attempts_made} attempts: {error}"
            )
            return None
        return claimed

    def ack(self, claimed: ClaimedJob) -> None:
        self._delete(claimed.handle)
        job = claimed.job.model_copy(
            update={
                "state": JobState.COMPLETED,
                "attempts_made": claimed.job.attempts_made + 1,
                "finished_at": time.time(),
            }
        )
        self._completed.append(job)
        logger.info("job_id=%s type=%s completed", job.job_id, job.type.value)

    def extend_visibility(self, claimed: ClaimedJob, seconds: int) -> None:
        self._client.change_message_visibility(
            QueueUrl=self._queue_url,
            ReceiptHandle=claimed.handle,
            VisibilityTimeout=max(0, min(SQS_MAX_VISIBILITY_SECONDS, int(seconds))),
        )

    def fail(self, claimed: ClaimedJob, error: str, *, retry: bool = True) -> JobOutcome:
        attempts = claimed.job.attempts_made + 1
        job = claimed.job.model_copy(update={"attempts_made": attempts, "last_error": error})
        if retry and self._policy.should_retry(attempts):
            delay = self._policy.delay_for(attempts)
            self._client.send_message(
                QueueUrl=self._queue_url,
                MessageBody=job_to_body(job, last_error=error),
                DelaySeconds=min(SQS_MAX_DELAY_SECONDS, int(round(delay))),
            )
            self._delete(claimed.handle)
            logger.warning(
                "job_id=%s attempt %s/%s failed, retry in %.1fs: %s",
                job.job_id, attempts, self._policy.max_attempts, delay, error,
            )
            return JobOutcome.RETRY_SCHEDULED

        self._dead_letter(claimed, attempts, error)
        return JobOutcome.FAILED_TERMINAL

    def completed_jobs(self) -> list[ProcessingJob]:
        """Completed jobs seen by this process (bounded)."""
        return list(self._completed)

    def failed_jobs(self) -> list[ProcessingJob]:
        """Terminal failures seen by this process (bounded); the DLQ holds the durable copy."""
        return list(self._failed)

    def _dead_letter(self, claimed: ClaimedJob, attempts: int, error: str) -> None:
        job = claimed.job.model_copy(
            update={
                "state": JobState.FAILED,
                "attempts_made": attempts,
                "last_error": error,
                "finished_at": time.time(),
            }
        )
        if self._dlq_url:
            self._client.send_message(
                QueueUrl=self._dlq_url, MessageBody=job_to_body(job, last_error=error)
            )
        self._delete(claimed.handle)
        self._failed.append(job)
        logger.error("job_id=%s failed after %s attempts: %s", job.job_id, attempts, error)

    def _delete(self, receipt_handle: str) -> None:
        self._client.delete_message(QueueUrl=self._queue_url, ReceiptHandle=receipt_handle)
