"""
End to end on in-memory backends: initiate, upload parts, complete, then the worker
drains the queue and the video detail points at the HLS manifest and thumbnail.
"""

import pytest
from classroom_media_shared.models import CompletedPart
from upload_coordinator import MultipartUploadCoordinator, VideoService
from video_worker.config import VideoWorkerSettings
from video_worker.processor import VideoJobProcessor, process_one_job


@pytest.fixture
def service(storage, session_store, video_store, job_queue) -> VideoService:
    coordinator = MultipartUploadCoordinator(
        storage, session_store, video_store=video_store, job_queue=job_queue
    )
    return VideoService(storage, video_store, coordinator)


def test_upload_then_process(service, storage, session_store, video_store, job_queue, tmp_path, fake_ffmpeg) -> None:
    created = service.initiate_video_upload("teacher-1", "class-1", "Cell division")
    backend_upload_id = session_store.get(created.upload_id).upload_id
    chunks = [b"A" * 1000, b"B" * 1000, b"C" * 500]
    parts = []
    for n, chunk in enumerate(chunks, start=1):
        assert f"partNumber={n}" in service.sign_part_url(created.video_id, created.upload_id, n)
        parts.append(CompletedPart(part_number=n, etag=storage.upload_part(backend_upload_id, n, chunk)))

    done = service.complete_video_upload(created.video_id, created.upload_id, list(reversed(parts)))
    assert done.jobs_enqueued == 2
    assert job_queue.pending_count() == 2
    assert video_store.get(created.video_id).file_size == 2500

    processor = VideoJobProcessor(
        storage, video_store, VideoWorkerSettings(scratch_dir=tmp_path / "scratch")
    )
    while process_one_job(job_queue, processor):
        pass

    assert len(job_queue.completed_jobs()) == 2
    assert job_queue.failed_jobs() == []
    video = video_store.get(created.video_id)
    assert video.hls_key == f"hls/{created.video_id}/playlist.m3u8"
    assert video.thumbnail_key == f"thumbnails/{created.video_id}.jpg"
    assert video.duration_seconds == 120
    assert fake_ffmpeg.seek_of_last_thumbnail() == "12"

    detail = service.get_video_detail(created.video_id)
    assert detail.video_url.startswith(f"memory://hls/{created.video_id}/playlist.m3u8")
    assert detail.thumbnail_url.startswith(f"memory://thumbnails/{created.video_id}.jpg")

    service.delete_video(created.video_id)
    assert storage.keys() == []
    assert video_store.get(created.video_id) is None
