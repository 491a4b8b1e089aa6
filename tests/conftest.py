"""Pytest fixtures: moto-backed AWS resources, in-memory backends, fake ffmpeg/ffprobe."""

import os
import subprocess
from pathlib import Path

import pytest
from classroom_media_shared.memory import (
    InMemoryObjectStorage,
    InMemoryUploadSessionStore,
    InMemoryVideoStore,
    InMemoryVideoViewStore,
)
from classroom_media_shared.models import VideoAsset
from classroom_media_shared.queues import InMemoryJobQueue
from classroom_media_shared.retry import RetryPolicy
from moto import mock_aws

REGION = "us-east-1"
MEDIA_BUCKET = "test-media-bucket"
VIDEOS_TABLE = "test-videos"
UPLOAD_SESSIONS_TABLE = "test-upload-sessions"
VIDEO_VIEWS_TABLE = "test-video-views"
CLASS_INDEX = "class_id-index"


@pytest.fixture(scope="function")
def aws_credentials():
    """Set fake AWS credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = REGION


@pytest.fixture
def moto_aws(aws_credentials):
    """Enable moto mock for DynamoDB, SQS, S3."""
    with mock_aws():
        yield


@pytest.fixture
def media_bucket(moto_aws):
    """Create the media bucket and return its name."""
    import boto3

    boto3.client("s3", region_name=REGION).create_bucket(Bucket=MEDIA_BUCKET)
    return MEDIA_BUCKET


@pytest.fixture
def videos_table(moto_aws):
    """Create Videos DynamoDB table keyed by video_id, with the class_id GSI."""
    import boto3

    client = boto3.client("dynamodb", region_name=REGION)
    client.create_table(
        TableName=VIDEOS_TABLE,
        BillingMode="PAY_PER_REQUEST",
        KeySchema=[{"AttributeName": "video_id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "video_id", "AttributeType": "S"},
            {"AttributeName": "class_id", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": CLASS_INDEX,
                "KeySchema": [{"AttributeName": "class_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            }
        ],
    )
    return VIDEOS_TABLE


@pytest.fixture
def video_views_table(moto_aws):
    """Create VideoViews DynamoDB table keyed by (video_id, student_id)."""
    import boto3

    client = boto3.client("dynamodb", region_name=REGION)
    client.create_table(
        TableName=VIDEO_VIEWS_TABLE,
        BillingMode="PAY_PER_REQUEST",
        KeySchema=[
            {"AttributeName": "video_id", "KeyType": "HASH"},
            {"AttributeName": "student_id", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "video_id", "AttributeType": "S"},
            {"AttributeName": "student_id", "AttributeType": "S"},
        ],
    )
    return VIDEO_VIEWS_TABLE


@pytest.fixture
def upload_sessions_table(moto_aws):
    """Create UploadSessions DynamoDB table keyed by session_id."""
    import boto3

    client = boto3.client("dynamodb", region_name=REGION)
    client.create_table(
        TableName=UPLOAD_SESSIONS_TABLE,
        BillingMode="PAY_PER_REQUEST",
        KeySchema=[{"AttributeName": "session_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "session_id", "AttributeType": "S"}],
    )
    return UPLOAD_SESSIONS_TABLE


@pytest.fixture
def sqs_queues(moto_aws):
    """Create the video jobs queue and its dead-letter queue; return (queue_url, dlq_url)."""
    import boto3

    client = boto3.client("sqs", region_name=REGION)
    queue_url = client.create_queue(QueueName="test-video-jobs")["QueueUrl"]
    dlq_url = client.create_queue(QueueName="test-video-jobs-dlq")["QueueUrl"]
    return queue_url, dlq_url


@pytest.fixture
def storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage()


@pytest.fixture
def video_store() -> InMemoryVideoStore:
    return InMemoryVideoStore()


@pytest.fixture
def view_store() -> InMemoryVideoViewStore:
    return InMemoryVideoViewStore()


@pytest.fixture
def session_store() -> InMemoryUploadSessionStore:
    return InMemoryUploadSessionStore()


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def job_queue(clock: FakeClock) -> InMemoryJobQueue:
    """In-memory queue with the default policy (3 attempts, 2s base) on a fake clock."""
    return InMemoryJobQueue(RetryPolicy(), clock=clock)


@pytest.fixture
def make_video(video_store: InMemoryVideoStore):
    """Put a VideoAsset in the in-memory store and return it."""

    def _make(video_id: str = "vid-1", teacher_id: str = "teacher-1") -> VideoAsset:
        video = VideoAsset(
            video_id=video_id,
            title="Lecture 1",
            class_id="class-1",
            teacher_id=teacher_id,
            file_key=f"videos/{teacher_id}/11111111-2222-3333-4444-555555555555.mp4",
            file_size=0,
            created_at=1700000000,
        )
        video_store.put(video)
        return video

    return _make


class FakeFfmpeg:
    """
    Stands in for subprocess.run: ffprobe prints the configured duration; the HLS command
    writes segment files and a playlist; the thumbnail command writes a JPEG.
    Every command is recorded in calls.
    """

    def __init__(self, duration: float = 120.0, segments: int = 3) -> None:
        self.duration = duration
        self.segments = segments
        self.calls: list[list[str]] = []
        self.fail_hls = False

    def __call__(self, cmd, **kwargs):
        cmd = list(cmd)
        self.calls.append(cmd)
        if Path(cmd[0]).name.startswith("ffprobe"):
            return subprocess.CompletedProcess(cmd, 0, stdout=f"{self.duration}\n", stderr="")
        if "hls" in cmd:
            if self.fail_hls:
                raise subprocess.CalledProcessError(1, cmd, output="", stderr="Invalid data found")
            pattern = cmd[cmd.index("-hls_segment_filename") + 1]
            lines = ["#EXTM3U", "#EXT-X-VERSION:3", "#EXT-X-TARGETDURATION:10"]
            for i in range(self.segments):
                Path(pattern % i).write_bytes(b"ts-data-%d" % i)
                lines += ["#EXTINF:10.0,", Path(pattern % i).name]
            lines.append("#EXT-X-ENDLIST")
            Path(cmd[-1]).write_text("\n".join(lines) + "\n")
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")
        Path(cmd[-1]).write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def seek_of_last_thumbnail(self) -> str | None:
        for cmd in reversed(self.calls):
            if "-frames:v" in cmd:
                return cmd[cmd.index("-ss") + 1]
        return None


@pytest.fixture
def fake_ffmpeg(monkeypatch: pytest.MonkeyPatch) -> FakeFfmpeg:
    """Patch subprocess.run in the ffmpeg wrapper module with FakeFfmpeg."""
    fake = FakeFfmpeg()
    monkeypatch.setattr("video_worker.ffmpeg_hls.subprocess.run", fake)
    return fake
