"""DynamoDB implementations of VideoStore, VideoViewStore and UploadSessionStore."""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError
from classroom_media_shared.errors import StoreUnavailable, VideoNotFound
from classroom_media_shared.models import (
    COMPLETION_THRESHOLD_PERCENT,
    UploadSession,
    VideoAsset,
    VideoView,
)

DEFAULT_CLASS_INDEX_NAME = "class_id-index"

_UNAVAILABLE_CODES = (
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "InternalServerError",
    "ServiceUnavailable",
)


@contextmanager
def _record_errors(table_name: str) -> Iterator[None]:
    """Map unreachable / throttled / 5xx failures to StoreUnavailable; other errors propagate."""
    try:
        yield
    except ClientError as e:
        status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        if status >= 500 or e.response["Error"]["Code"] in _UNAVAILABLE_CODES:
            raise StoreUnavailable(f"record store unavailable ({table_name}): {e}") from e
        raise
    except BotoCoreError as e:
        raise StoreUnavailable(f"record store unreachable ({table_name}): {e}") from e


def _is_conditional_check_failure(e: ClientError) -> bool:
    return e.response["Error"]["Code"] == "ConditionalCheckFailedException"


def _model_to_item(model: VideoAsset | UploadSession) -> dict[str, Any]:
    """Convert a model to a DynamoDB item (native types for resource API), dropping None."""
    d = model.model_dump(mode="json")
    return {k: v for k, v in d.items() if v is not None}


def _number(value: Decimal) -> int | float:
    return int(value) if value == value.to_integral_value() else float(value)


def _plain(item: dict[str, Any]) -> dict[str, Any]:
    """Resource API returns numbers as Decimal; turn them back into int or float."""
    return {k: _number(v) if isinstance(v, Decimal) else v for k, v in item.items()}


def _item_to_video(item: dict[str, Any]) -> VideoAsset:
    return VideoAsset.model_validate(_plain(item))


def _item_to_session(item: dict[str, Any]) -> UploadSession:
    return UploadSession.model_validate(_plain(item))


def _item_to_view(item: dict[str, Any]) -> VideoView:
    return VideoView.model_validate(_plain(item))


def _query_all(table, **kwargs) -> list[dict[str, Any]]:
    """Run a query to exhaustion, following LastEvaluatedKey."""
    items: list[dict[str, Any]] = []
    while True:
        resp = table.query(**kwargs)
        items.extend(resp.get("Items", []))
        last_key = resp.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


class DynamoDBVideoStore:
    """VideoStore: DynamoDB Videos table keyed by video_id, with a class_id GSI for listing."""

    def __init__(
        self,
        table_name: str,
        *,
        class_index_name: str = DEFAULT_CLASS_INDEX_NAME,
        region_name: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        self._table_name = table_name
        self._class_index_name = class_index_name
        self._resource = boto3.resource(
            "dynamodb",
            region_name=region_name,
            endpoint_url=endpoint_url,
        )
        self._table = self._resource.Table(table_name)

    def get(self, video_id: str) -> VideoAsset | None:
        """Return the video if it exists, otherwise None (strongly consistent read)."""
        with _record_errors(self._table_name):
            resp = self._table.get_item(Key={"video_id": video_id}, ConsistentRead=True)
        item = resp.get("Item")
        if not item:
            return None
        return _item_to_video(item)

    def put(self, video: VideoAsset) -> None:
        """Create or overwrite a video record."""
        with _record_errors(self._table_name):
            self._table.put_item(Item=_model_to_item(video))

    def update_metadata(
        self,
        video_id: str,
        *,
        file_size: int | None = None,
        duration_seconds: int | None = None,
        hls_key: str | None = None,
        thumbnail_key: str | None = None,
    ) -> None:
        """
        SET only the supplied attributes (plus updated_at) in one UpdateItem.

        The HLS and thumbnail jobs for a video write disjoint attributes, so their
        updates never overwrite each other whatever the interleaving. The
        attribute_exists condition keeps a job that outlived its video from
        recreating a partial row; that case raises VideoNotFound.
        """
        updates: list[str] = []
        expr_names: dict[str, str] = {}
        expr_values: dict[str, Any] = {}

        if file_size is not None:
            updates.append("#fs = :fs")
            expr_names["#fs"] = "file_size"
            expr_values[":fs"] = file_size
        if duration_seconds is not None:
            updates.append("#ds = :ds")
            expr_names["#ds"] = "duration_seconds"
            expr_values[":ds"] = duration_seconds
        if hls_key is not None:
            updates.append("#hk = :hk")
            expr_names["#hk"] = "hls_key"
            expr_values[":hk"] = hls_key
        if thumbnail_key is not None:
            updates.append("#tk = :tk")
            expr_names["#tk"] = "thumbnail_key"
            expr_values[":tk"] = thumbnail_key

        if not updates:
            if self.get(video_id) is None:
                raise VideoNotFound(video_id)
            return

        updates.append("#ua = :ua")
        expr_names["#ua"] = "updated_at"
        expr_values[":ua"] = int(time.time())

        with _record_errors(self._table_name):
            try:
                self._table.update_item(
                    Key={"video_id": video_id},
                    UpdateExpression="SET " + ", ".join(updates),
                    ConditionExpression="attribute_exists(video_id)",
                    ExpressionAttributeNames=expr_names,
                    ExpressionAttributeValues=expr_values,
                )
            except ClientError as e:
                if _is_conditional_check_failure(e):
                    raise VideoNotFound(video_id) from e
                raise

    def list_by_class(self, class_id: str) -> list[VideoAsset]:
        """Query the class_id GSI (every page), newest first."""
        with _record_errors(self._table_name):
            items = _query_all(
                self._table,
                IndexName=self._class_index_name,
                KeyConditionExpression=Key("class_id").eq(class_id),
            )
        videos = [_item_to_video(item) for item in items]
        return sorted(videos, key=lambda v: v.created_at or 0, reverse=True)

    def delete(self, video_id: str) -> None:
        with _record_errors(self._table_name):
            self._table.delete_item(Key={"video_id": video_id})


class DynamoDBVideoViewStore:
    """VideoViewStore: DynamoDB VideoViews table keyed by video_id (HASH) and student_id (RANGE)."""

    def __init__(
        self,
        table_name: str,
        *,
        region_name: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        self._table_name = table_name
        self._resource = boto3.resource(
            "dynamodb",
            region_name=region_name,
            endpoint_url=endpoint_url,
        )
        self._table = self._resource.Table(table_name)

    def record_view(
        self,
        video_id: str,
        student_id: str,
        *,
        progress: float,
        completion_percentage: float,
    ) -> VideoView:
        """
        Two UpdateItems, each atomic on its own: first ADD progress to watch_duration and
        stamp the timestamps; then raise completion_percentage (and is_completed) under
        a condition that the stored value is lower. Concurrent reports for one student
        therefore never lose a duration delta and never lower the percentage.
        """
        key = {"video_id": video_id, "student_id": student_id}
        now = int(time.time())
        with _record_errors(self._table_name):
            resp = self._table.update_item(
                Key=key,
                UpdateExpression=(
                    "SET #lw = :now, #fw = if_not_exists(#fw, :now), "
                    "#cp = if_not_exists(#cp, :zero), #ic = if_not_exists(#ic, :false) "
                    "ADD #wd :progress"
                ),
                ExpressionAttributeNames={
                    "#lw": "last_watched_at",
                    "#fw": "first_watched_at",
                    "#cp": "completion_percentage",
                    "#ic": "is_completed",
                    "#wd": "watch_duration",
                },
                ExpressionAttributeValues={
                    ":now": now,
                    ":zero": Decimal(0),
                    ":false": False,
                    ":progress": Decimal(str(progress)),
                },
                ReturnValues="ALL_NEW",
            )
            view = _item_to_view(resp["Attributes"])
            if completion_percentage <= view.completion_percentage:
                return view
            try:
                resp = self._table.update_item(
                    Key=key,
                    UpdateExpression="SET #cp = :pct, #ic = :done",
                    ConditionExpression="#cp < :pct",
                    ExpressionAttributeNames={"#cp": "completion_percentage", "#ic": "is_completed"},
                    ExpressionAttributeValues={
                        ":pct": Decimal(str(completion_percentage)),
                        ":done": completion_percentage >= COMPLETION_THRESHOLD_PERCENT,
                    },
                    ReturnValues="ALL_NEW",
                )
            except ClientError as e:
                if not _is_conditional_check_failure(e):
                    raise
                # A concurrent report already stored a higher percentage
                resp = self._table.get_item(Key=key, ConsistentRead=True)
                return _item_to_view(resp["Item"])
        return _item_to_view(resp["Attributes"])

    def list_views(self, video_id: str) -> list[VideoView]:
        with _record_errors(self._table_name):
            items = _query_all(
                self._table,
                KeyConditionExpression=Key("video_id").eq(video_id),
                ConsistentRead=True,
            )
        views = [_item_to_view(item) for item in items]
        return sorted(views, key=lambda v: v.first_watched_at or 0, reverse=True)

    def delete_for_video(self, video_id: str) -> int:
        with _record_errors(self._table_name):
            items = _query_all(
                self._table,
                KeyConditionExpression=Key("video_id").eq(video_id),
                ProjectionExpression="video_id, student_id",
            )
            with self._table.batch_writer() as batch:
                for item in items:
                    batch.delete_item(Key={"video_id": item["video_id"], "student_id": item["student_id"]})
        return len(items)


class DynamoDBUploadSessionStore:
    """UploadSessionStore: DynamoDB UploadSessions table keyed by session_id."""

    def __init__(
        self,
        table_name: str,
        *,
        region_name: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        self._table_name = table_name
        self._resource = boto3.resource(
            "dynamodb",
            region_name=region_name,
            endpoint_url=endpoint_url,
        )
        self._table = self._resource.Table(table_name)

    def put(self, session: UploadSession) -> None:
        with _record_errors(self._table_name):
            self._table.put_item(Item=_model_to_item(session))

    def get(self, session_id: str) -> UploadSession | None:
        with _record_errors(self._table_name):
            resp = self._table.get_item(Key={"session_id": session_id}, ConsistentRead=True)
        item = resp.get("Item")
        if not item:
            return None
        return _item_to_session(item)

    def mark_completed(self, session_id: str) -> bool:
        """
        Conditional update: SET completed_at = now() only if the session exists and
        has neither completed_at nor aborted_at. Returns True if this call won.
        """
        return self._close(session_id, "completed_at")

    def mark_aborted(self, session_id: str) -> bool:
        return self._close(session_id, "aborted_at")

    def _close(self, session_id: str, attribute: str) -> bool:
        with _record_errors(self._table_name):
            try:
                self._table.update_item(
                    Key={"session_id": session_id},
                    UpdateExpression="SET #closed = :now",
                    ConditionExpression=(
                        "attribute_exists(session_id) AND attribute_not_exists(completed_at) "
                        "AND attribute_not_exists(aborted_at)"
                    ),
                    ExpressionAttributeNames={"#closed": attribute},
                    ExpressionAttributeValues={":now": int(time.time())},
                )
                return True
            except ClientError as e:
                if _is_conditional_check_failure(e):
                    return False
                raise
