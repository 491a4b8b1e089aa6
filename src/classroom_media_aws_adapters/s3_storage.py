"""S3 implementation of ObjectStorage."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import BinaryIO

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError
from classroom_media_shared.errors import (
    IncompleteUpload,
    InvalidSession,
    ObjectNotFound,
    StoreUnavailable,
)
from classroom_media_shared.interfaces import SignOperation
from classroom_media_shared.models import CompletedPart

# Minimum S3 multipart part size (except last) is 5 MB
MULTIPART_CHUNK_SIZE = 8 * 1024 * 1024  # 8 MB
MULTIPART_THRESHOLD = 100 * 1024 * 1024  # 100 MB: use multipart above this
DELETE_BATCH_SIZE = 1000

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")
_UNAVAILABLE_CODES = ("InternalError", "ServiceUnavailable", "SlowDown", "RequestTimeout")


def _is_unavailable(e: ClientError) -> bool:
    status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
    return status >= 500 or e.response["Error"]["Code"] in _UNAVAILABLE_CODES


@contextmanager
def _store_errors(key: str) -> Iterator[None]:
    """Translate botocore failures to ObjectNotFound / StoreUnavailable; other errors propagate."""
    try:
        yield
    except ClientError as e:
        if e.response["Error"]["Code"] in _NOT_FOUND_CODES:
            raise ObjectNotFound(key) from e
        if _is_unavailable(e):
            raise StoreUnavailable(f"object store unavailable ({key}): {e}") from e
        raise
    except BotoCoreError as e:
        raise StoreUnavailable(f"object store unreachable ({key}): {e}") from e


class S3ObjectStorage:
    """ObjectStorage implementation using one S3 bucket (or an S3-compatible endpoint)."""

    def __init__(
        self,
        bucket: str,
        *,
        region_name: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        self._bucket = bucket
        self._client = boto3.client(
            "s3",
            region_name=region_name,
            endpoint_url=endpoint_url,
        )
        self._transfer_config = TransferConfig(
            multipart_threshold=MULTIPART_THRESHOLD,
            multipart_chunksize=MULTIPART_CHUNK_SIZE,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    def put(self, key: str, body: bytes, content_type: str) -> None:
        """Upload bytes to key."""
        with _store_errors(key):
            self._client.put_object(
                Bucket=self._bucket, Key=key, Body=body, ContentType=content_type
            )

    def open(self, key: str) -> BinaryIO:
        """Return the streaming body of the object (read it in chunks, close when done)."""
        with _store_errors(key):
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
        return resp["Body"]

    def download_file(self, key: str, path: str) -> None:
        """Stream the object to path using the managed transfer (ranged GETs for large objects)."""
        with _store_errors(key):
            self._client.download_file(self._bucket, key, path, Config=self._transfer_config)

    def upload_file(self, key: str, path: str, content_type: str) -> None:
        """Upload a local file; uses multipart for files over 100 MB."""
        with _store_errors(key):
            self._client.upload_file(
                path,
                self._bucket,
                key,
                ExtraArgs={"ContentType": content_type},
                Config=self._transfer_config,
            )

    def delete(self, key: str) -> None:
        """Delete key. S3 treats deleting an absent key as success."""
        with _store_errors(key):
            self._client.delete_object(Bucket=self._bucket, Key=key)

    def delete_prefix(self, prefix: str) -> int:
        """Delete every object under prefix, in batches of up to 1000 keys."""
        deleted = 0
        with _store_errors(prefix):
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                keys = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
                for i in range(0, len(keys), DELETE_BATCH_SIZE):
                    batch = keys[i : i + DELETE_BATCH_SIZE]
                    self._client.delete_objects(
                        Bucket=self._bucket,
                        Delete={"Objects": batch, "Quiet": True},
                    )
                    deleted += len(batch)
        return deleted

    def exists(self, key: str) -> bool:
        """Return True if the object exists, False otherwise."""
        return self.size(key) is not None

    def size(self, key: str) -> int | None:
        """Return ContentLength from HEAD, or None if the object does not exist."""
        try:
            with _store_errors(key):
                resp = self._client.head_object(Bucket=self._bucket, Key=key)
        except ObjectNotFound:
            return None
        return int(resp["ContentLength"])

    def sign_url(self, operation: SignOperation, key: str, *, expires_in: int = 3600) -> str:
        """Return a presigned GET or PUT URL for key."""
        if operation == "get":
            client_method = "get_object"
        elif operation == "put":
            client_method = "put_object"
        else:
            raise ValueError(f"unsupported sign operation: {operation!r}")
        return self._client.generate_presigned_url(
            client_method,
            Params={"Bucket": self._bucket, "Key": key},
            ExpiresIn=expires_in,
        )

    def create_multipart_upload(self, key: str, content_type: str) -> str:
        with _store_errors(key):
            resp = self._client.create_multipart_upload(
                Bucket=self._bucket, Key=key, ContentType=content_type
            )
        return resp["UploadId"]

    def presign_upload_part(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        *,
        expires_in: int = 3600,
    ) -> str:
        """Return a presigned PUT URL for one part; the client PUTs the bytes directly to S3."""
        return self._client.generate_presigned_url(
            "upload_part",
            Params={
                "Bucket": self._bucket,
                "Key": key,
                "UploadId": upload_id,
                "PartNumber": part_number,
            },
            ExpiresIn=expires_in,
        )

    def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: list[CompletedPart],
    ) -> str:
        """Assemble parts (sent sorted by part number); return the object location."""
        ordered = sorted(parts, key=lambda p: p.part_number)
        try:
            with _store_errors(key):
                resp = self._client.complete_multipart_upload(
                    Bucket=self._bucket,
                    Key=key,
                    UploadId=upload_id,
                    MultipartUpload={
                        "Parts": [{"PartNumber": p.part_number, "ETag": p.etag} for p in ordered]
                    },
                )
        except ClientError as e:
            code = e.response["Error"]["Code"]
            if code == "NoSuchUpload":
                raise InvalidSession(f"multipart upload {upload_id} no longer exists") from e
            if code in ("InvalidPart", "InvalidPartOrder", "EntityTooSmall"):
                raise IncompleteUpload(f"store rejected parts for {key}: {code}") from e
            raise
        return resp.get("Location") or f"s3://{self._bucket}/{key}"

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        try:
            with _store_errors(key):
                self._client.abort_multipart_upload(
                    Bucket=self._bucket, Key=key, UploadId=upload_id
                )
        except ClientError as e:
            if e.response["Error"]["Code"] != "NoSuchUpload":
                raise
