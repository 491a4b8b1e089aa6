"""Tests for S3ObjectStorage (moto)."""

from unittest.mock import patch

import boto3
import pytest
from botocore.exceptions import EndpointConnectionError
from classroom_media_aws_adapters import S3ObjectStorage
from classroom_media_shared.errors import (
    IncompleteUpload,
    InvalidSession,
    ObjectNotFound,
    StoreUnavailable,
)
from classroom_media_shared.interfaces import ObjectStorage
from classroom_media_shared.keys import KEY_NAMESPACES
from classroom_media_shared.models import CompletedPart

REGION = "us-east-1"
FIVE_MB = 5 * 1024 * 1024


class TestS3ObjectStorage:
    """Put, stream, sign, delete against a moto bucket."""

    def test_satisfies_protocol(self, media_bucket) -> None:
        assert isinstance(S3ObjectStorage(media_bucket, region_name=REGION), ObjectStorage)

    def test_put_and_open(self, media_bucket) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        storage.put("thumbnails/v1.jpg", b"jpeg bytes", "image/jpeg")
        assert storage.open("thumbnails/v1.jpg").read() == b"jpeg bytes"
        head = boto3.client("s3", region_name=REGION).head_object(
            Bucket=media_bucket, Key="thumbnails/v1.jpg"
        )
        assert head["ContentType"] == "image/jpeg"

    def test_upload_and_download_file(self, media_bucket, tmp_path) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        src = tmp_path / "playlist.m3u8"
        src.write_text("#EXTM3U\n")
        storage.upload_file("hls/v1/playlist.m3u8", str(src), "application/vnd.apple.mpegurl")
        dest = tmp_path / "copy.m3u8"
        storage.download_file("hls/v1/playlist.m3u8", str(dest))
        assert dest.read_text() == "#EXTM3U\n"
        head = boto3.client("s3", region_name=REGION).head_object(
            Bucket=media_bucket, Key="hls/v1/playlist.m3u8"
        )
        assert head["ContentType"] == "application/vnd.apple.mpegurl"

    def test_missing_key_raises_object_not_found(self, media_bucket, tmp_path) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        with pytest.raises(ObjectNotFound):
            storage.open("videos/t/missing.mp4")
        with pytest.raises(ObjectNotFound):
            storage.download_file("videos/t/missing.mp4", str(tmp_path / "x.mp4"))

    def test_exists_and_size(self, media_bucket) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        assert storage.exists("some/key") is False
        assert storage.size("some/key") is None
        storage.put("some/key", b"12345", "application/octet-stream")
        assert storage.exists("some/key") is True
        assert storage.size("some/key") == 5

    def test_delete_absent_key_is_success(self, media_bucket) -> None:
        S3ObjectStorage(media_bucket, region_name=REGION).delete("never/existed")

    def test_delete_prefix(self, media_bucket) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        for name in ("playlist.m3u8", "segment_000.ts", "segment_001.ts"):
            storage.put(f"hls/v1/{name}", b"x", "text/plain")
        storage.put("hls/v2/playlist.m3u8", b"x", "text/plain")
        assert storage.delete_prefix("hls/v1/") == 3
        assert storage.exists("hls/v1/segment_000.ts") is False
        assert storage.exists("hls/v2/playlist.m3u8") is True

    def test_sign_url(self, media_bucket) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        get_url = storage.sign_url("get", "hls/v1/playlist.m3u8", expires_in=60)
        put_url = storage.sign_url("put", "videos/t/a.mp4", expires_in=60)
        assert "hls/v1/playlist.m3u8" in get_url
        assert "videos/t/a.mp4" in put_url
        with pytest.raises(ValueError):
            storage.sign_url("delete", "k")

    @pytest.mark.parametrize("prefix", KEY_NAMESPACES)
    def test_every_namespace(self, media_bucket, prefix: str) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        key = f"{prefix}teacher-1/file with spaces.pdf"
        storage.put(key, b"body", "application/pdf")
        assert storage.exists(key)
        storage.delete(key)
        assert not storage.exists(key)

    def test_connection_failure_is_store_unavailable(self, media_bucket) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        with patch.object(
            storage._client,
            "put_object",
            side_effect=EndpointConnectionError(endpoint_url="https://s3.example"),
        ):
            with pytest.raises(StoreUnavailable):
                storage.put("k", b"x", "text/plain")


class TestS3Multipart:
    """Multipart create / presign part / complete / abort."""

    def _upload_part(self, bucket: str, key: str, upload_id: str, n: int, body: bytes) -> CompletedPart:
        resp = boto3.client("s3", region_name=REGION).upload_part(
            Bucket=bucket, Key=key, UploadId=upload_id, PartNumber=n, Body=body
        )
        return CompletedPart(part_number=n, etag=resp["ETag"])

    def test_complete_assembles_parts_in_order(self, media_bucket) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        key = "videos/t1/0f8fad5b-d9cb-469f-a165-70867728950e.mp4"
        upload_id = storage.create_multipart_upload(key, "video/mp4")
        first = b"a" * FIVE_MB
        p2 = self._upload_part(media_bucket, key, upload_id, 2, b"tail")
        p1 = self._upload_part(media_bucket, key, upload_id, 1, first)

        location = storage.complete_multipart_upload(key, upload_id, [p2, p1])

        assert key in location
        assert storage.size(key) == FIVE_MB + 4
        body = storage.open(key).read()
        assert body.startswith(b"aaaa") and body.endswith(b"tail")

    def test_presign_upload_part_url(self, media_bucket) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        upload_id = storage.create_multipart_upload("videos/t/a.mp4", "video/mp4")
        url = storage.presign_upload_part("videos/t/a.mp4", upload_id, 3, expires_in=60)
        assert "partNumber=3" in url
        assert "uploadId=" in url

    def test_complete_after_abort_is_invalid_session(self, media_bucket) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        key = "videos/t/b.mp4"
        upload_id = storage.create_multipart_upload(key, "video/mp4")
        part = self._upload_part(media_bucket, key, upload_id, 1, b"only part")
        storage.abort_multipart_upload(key, upload_id)
        with pytest.raises(InvalidSession):
            storage.complete_multipart_upload(key, upload_id, [part])

    def test_complete_with_unknown_etag_is_incomplete(self, media_bucket) -> None:
        storage = S3ObjectStorage(media_bucket, region_name=REGION)
        key = "videos/t/c.mp4"
        upload_id = storage.create_multipart_upload(key, "video/mp4")
        self._upload_part(media_bucket, key, upload_id, 1, b"only part")
        with pytest.raises(IncompleteUpload):
            storage.complete_multipart_upload(
                key, upload_id, [CompletedPart(part_number=1, etag='"0000"')]
            )

    def test_abort_unknown_upload_is_ok(self, media_bucket) -> None:
        S3ObjectStorage(media_bucket, region_name=REGION).abort_multipart_upload("k", "no-such-upload")
