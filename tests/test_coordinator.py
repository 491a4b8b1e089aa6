"""Tests for MultipartUploadCoordinator: part validation, single-use sessions, side effects."""

import threading
from unittest.mock import MagicMock

import pytest
from classroom_media_shared.errors import (
    IncompleteUpload,
    InvalidSession,
    QueueDegraded,
    StoreUnavailable,
    UploadTooLarge,
)
from classroom_media_shared.models import CompletedPart, JobType
from classroom_media_shared.queues import NoOpJobQueue
from upload_coordinator.coordinator import MultipartUploadCoordinator, validate_part_numbers

KEY = "videos/teacher-1/0f8fad5b-d9cb-469f-a165-70867728950e.mp4"


def _parts(*numbers: int) -> list[CompletedPart]:
    return [CompletedPart(part_number=n, etag=f'"etag-{n}"') for n in numbers]


def _upload_parts(storage, session_store, session_id: str, numbers: list[int]) -> list[CompletedPart]:
    upload_id = session_store.get(session_id).upload_id
    return [
        CompletedPart(part_number=n, etag=storage.upload_part(upload_id, n, b"x" * 10 * n))
        for n in numbers
    ]


@pytest.fixture
def coordinator(storage, session_store, video_store, job_queue) -> MultipartUploadCoordinator:
    return MultipartUploadCoordinator(
        storage, session_store, video_store=video_store, job_queue=job_queue
    )


class TestValidatePartNumbers:
    @pytest.mark.parametrize("numbers", [(1,), (1, 2, 3), (3, 1, 2)])
    def test_contiguous_accepted(self, numbers) -> None:
        validate_part_numbers(_parts(*numbers))

    @pytest.mark.parametrize("numbers", [(1, 2, 4), (2, 3), (1, 1, 2), ()])
    def test_gaps_duplicates_or_empty_rejected(self, numbers) -> None:
        with pytest.raises(IncompleteUpload):
            validate_part_numbers(_parts(*numbers))


class TestMultipartUploadCoordinator:
    def test_initiate_creates_open_session(self, coordinator, session_store) -> None:
        session_id = coordinator.initiate(KEY, "video/mp4", video_id="v1")
        session = session_store.get(session_id)
        assert session.key == KEY
        assert session.video_id == "v1"
        assert session.is_open

    def test_initiate_store_unavailable(self, session_store) -> None:
        storage = MagicMock()
        storage.create_multipart_upload.side_effect = StoreUnavailable("s3 down")
        coordinator = MultipartUploadCoordinator(storage, session_store)
        with pytest.raises(StoreUnavailable):
            coordinator.initiate(KEY, "video/mp4")

    def test_sign_part_url(self, coordinator) -> None:
        session_id = coordinator.initiate(KEY, "video/mp4")
        url = coordinator.sign_part_url(session_id, 2)
        assert "partNumber=2" in url and "expires=3600" in url

    def test_sign_part_url_bounds(self, coordinator) -> None:
        session_id = coordinator.initiate(KEY, "video/mp4")
        with pytest.raises(ValueError):
            coordinator.sign_part_url(session_id, 0)
        with pytest.raises(ValueError):
            coordinator.sign_part_url(session_id, 10001)

    def test_sign_part_url_unknown_session(self, coordinator) -> None:
        with pytest.raises(InvalidSession):
            coordinator.sign_part_url("nope", 1)

    def test_complete_with_gap_is_incomplete_and_session_stays_open(
        self, coordinator, storage, session_store
    ) -> None:
        session_id = coordinator.initiate(KEY, "video/mp4")
        parts = _upload_parts(storage, session_store, session_id, [1, 2, 4])
        with pytest.raises(IncompleteUpload):
            coordinator.complete(session_id, parts)
        assert session_store.get(session_id).is_open
        assert not storage.exists(KEY)

    def test_complete_sends_sorted_parts(self, session_store) -> None:
        storage = MagicMock()
        storage.create_multipart_upload.return_value = "upload-1"
        storage.complete_multipart_upload.return_value = "s3://bucket/key"
        coordinator = MultipartUploadCoordinator(storage, session_store)
        session_id = coordinator.initiate(KEY, "video/mp4")
        coordinator.complete(session_id, _parts(3, 1, 2))
        sent = storage.complete_multipart_upload.call_args.args[2]
        assert [p.part_number for p in sent] == [1, 2, 3]

    def test_complete_updates_size_and_enqueues_two_jobs(
        self, coordinator, storage, session_store, video_store, make_video, job_queue
    ) -> None:
        video = make_video("v1")
        session_id = coordinator.initiate(video.file_key, "video/mp4", video_id="v1")
        parts = _upload_parts(storage, session_store, session_id, [1, 2, 3])

        result = coordinator.complete(session_id, parts, client_file_size=1)

        assert result.location == f"memory://{video.file_key}"
        assert result.jobs_enqueued == 2
        assert video_store.get("v1").file_size == 60
        types = []
        while (claimed := job_queue.claim()) is not None:
            types.append(claimed.job.type)
            assert claimed.job.payload.video_id == "v1"
            assert claimed.job.payload.file_key == video.file_key
        assert sorted(t.value for t in types) == [
            JobType.GENERATE_HLS.value,
            JobType.GENERATE_THUMBNAIL.value,
        ]

    def test_client_size_used_when_store_cannot_report(
        self, session_store, video_store, make_video
    ) -> None:
        make_video("v1")
        storage = MagicMock()
        storage.create_multipart_upload.return_value = "upload-1"
        storage.complete_multipart_upload.return_value = "s3://b/k"
        storage.size.return_value = None
        coordinator = MultipartUploadCoordinator(storage, session_store, video_store=video_store)
        session_id = coordinator.initiate(KEY, "video/mp4", video_id="v1")
        coordinator.complete(session_id, _parts(1), client_file_size=4096)
        assert video_store.get("v1").file_size == 4096

    def test_completed_session_cannot_be_reused(self, coordinator, storage, session_store) -> None:
        session_id = coordinator.initiate(KEY, "video/mp4")
        parts = _upload_parts(storage, session_store, session_id, [1])
        coordinator.complete(session_id, parts)
        with pytest.raises(InvalidSession):
            coordinator.complete(session_id, parts)
        with pytest.raises(InvalidSession):
            coordinator.sign_part_url(session_id, 1)
        with pytest.raises(InvalidSession):
            coordinator.abort(session_id)

    def test_concurrent_completions_only_one_wins(self, session_store, video_store, make_video) -> None:
        make_video("v1")
        storage = MagicMock()
        storage.create_multipart_upload.return_value = "upload-1"
        storage.complete_multipart_upload.return_value = "s3://b/k"
        storage.size.return_value = 10
        queue = MagicMock()
        coordinator = MultipartUploadCoordinator(
            storage, session_store, video_store=video_store, job_queue=queue
        )
        session_id = coordinator.initiate(KEY, "video/mp4", video_id="v1")
        barrier = threading.Barrier(2)
        outcomes: list[str] = []

        def complete() -> None:
            barrier.wait()
            try:
                coordinator.complete(session_id, _parts(1))
                outcomes.append("ok")
            except InvalidSession:
                outcomes.append("invalid")

        threads = [threading.Thread(target=complete) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(outcomes) == ["invalid", "ok"]
        assert queue.enqueue.call_count == 2

    def test_degraded_queue_does_not_fail_completion(
        self, storage, session_store, video_store, make_video, caplog: pytest.LogCaptureFixture
    ) -> None:
        make_video("v1")
        coordinator = MultipartUploadCoordinator(
            storage, session_store, video_store=video_store, job_queue=NoOpJobQueue("down")
        )
        session_id = coordinator.initiate(KEY, "video/mp4", video_id="v1")
        parts = _upload_parts(storage, session_store, session_id, [1])
        result = coordinator.complete(session_id, parts)
        assert result.jobs_enqueued == 0
        assert video_store.get("v1").file_size == 10
        assert any(
            r.levelname == "ERROR" and "not enqueued" in r.getMessage() for r in caplog.records
        )

    def test_live_queue_failure_is_absorbed(self, storage, session_store, video_store, make_video) -> None:
        make_video("v1")
        queue = MagicMock()
        queue.enqueue.side_effect = [QueueDegraded("timeout"), "job-2"]
        coordinator = MultipartUploadCoordinator(
            storage, session_store, video_store=video_store, job_queue=queue
        )
        session_id = coordinator.initiate(KEY, "video/mp4", video_id="v1")
        parts = _upload_parts(storage, session_store, session_id, [1])
        assert coordinator.complete(session_id, parts).jobs_enqueued == 1

    def test_abort(self, coordinator, storage, session_store) -> None:
        session_id = coordinator.initiate(KEY, "video/mp4")
        upload_id = session_store.get(session_id).upload_id
        coordinator.abort(session_id)
        assert session_store.get(session_id).aborted_at is not None
        with pytest.raises(InvalidSession):
            storage.upload_part(upload_id, 1, b"late part")
        with pytest.raises(InvalidSession):
            coordinator.complete(session_id, _parts(1))

    def test_oversized_object_is_rejected_even_without_client_size(
        self, storage, session_store, video_store, job_queue, make_video
    ) -> None:
        video = make_video("v1")
        coordinator = MultipartUploadCoordinator(
            storage, session_store, video_store=video_store, job_queue=job_queue, max_object_size_bytes=25
        )
        session_id = coordinator.initiate(video.file_key, "video/mp4", video_id="v1")
        parts = _upload_parts(storage, session_store, session_id, [1, 2])

        with pytest.raises(UploadTooLarge) as exc:
            coordinator.complete(session_id, parts)

        assert exc.value.size == 30
        assert storage.exists(video.file_key) is False
        assert session_store.get(session_id).aborted_at is not None
        assert job_queue.pending_count() == 0
        assert video_store.get("v1").file_size == 0

    def test_stored_size_wins_over_understated_client_size(
        self, storage, session_store, video_store, job_queue, make_video
    ) -> None:
        video = make_video("v1")
        coordinator = MultipartUploadCoordinator(
            storage, session_store, video_store=video_store, job_queue=job_queue, max_object_size_bytes=25
        )
        session_id = coordinator.initiate(video.file_key, "video/mp4", video_id="v1")
        parts = _upload_parts(storage, session_store, session_id, [1, 2])

        with pytest.raises(UploadTooLarge):
            coordinator.complete(session_id, parts, client_file_size=1)

    def test_object_at_cap_is_accepted(self, storage, session_store, video_store, job_queue, make_video) -> None:
        video = make_video("v1")
        coordinator = MultipartUploadCoordinator(
            storage, session_store, video_store=video_store, job_queue=job_queue, max_object_size_bytes=30
        )
        session_id = coordinator.initiate(video.file_key, "video/mp4", video_id="v1")
        parts = _upload_parts(storage, session_store, session_id, [1, 2])

        assert coordinator.complete(session_id, parts).jobs_enqueued == 2
        assert video_store.get("v1").file_size == 30
