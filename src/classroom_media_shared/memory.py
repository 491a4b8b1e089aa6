"""
In-process implementations of ObjectStorage, VideoStore, VideoViewStore and UploadSessionStore.

Used for local runs (STORAGE_BACKEND=memory, RECORD_STORE_BACKEND=memory) and tests.
All state lives in dicts guarded by a lock, so the worker pool threads can share them.
"""

import hashlib
import io
import shutil
import threading
import time
import uuid
from typing import BinaryIO

from .errors import IncompleteUpload, InvalidSession, ObjectNotFound, VideoNotFound
from .interfaces import SignOperation
from .models import COMPLETION_THRESHOLD_PERCENT, CompletedPart, UploadSession, VideoAsset, VideoView


class InMemoryObjectStorage:
    """ObjectStorage over a dict of key -> (body, content_type)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._uploads: dict[str, dict] = {}

    def put(self, key: str, body: bytes, content_type: str) -> None:
        with self._lock:
            self._objects[key] = (bytes(body), content_type)

    def get(self, key: str) -> bytes:
        """Return the object body. Raises ObjectNotFound."""
        with self._lock:
            if key not in self._objects:
                raise ObjectNotFound(key)
            return self._objects[key][0]

    def content_type(self, key: str) -> str | None:
        with self._lock:
            entry = self._objects.get(key)
            return entry[1] if entry else None

    def keys(self, prefix: str = "") -> list[str]:
        """Sorted keys under prefix."""
        with self._lock:
            return sorted(k for k in self._objects if k.startswith(prefix))

    def open(self, key: str) -> BinaryIO:
        return io.BytesIO(self.get(key))

    def download_file(self, key: str, path: str) -> None:
        with self.open(key) as src, open(path, "wb") as dst:
            shutil.copyfileobj(src, dst)

    def upload_file(self, key: str, path: str, content_type: str) -> None:
        with open(path, "rb") as f:
            self.put(key, f.read(), content_type)

    def delete(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._objects if k.startswith(prefix)]
            for k in doomed:
                del self._objects[k]
            return len(doomed)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._objects

    def size(self, key: str) -> int | None:
        with self._lock:
            entry = self._objects.get(key)
            return len(entry[0]) if entry else None

    def sign_url(self, operation: SignOperation, key: str, *, expires_in: int = 3600) -> str:
        return f"memory://{key}?op={operation}&expires={expires_in}"

    def create_multipart_upload(self, key: str, content_type: str) -> str:
        upload_id = uuid.uuid4().hex
        with self._lock:
            self._uploads[upload_id] = {"key": key, "content_type": content_type, "parts": {}}
        return upload_id

    def presign_upload_part(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        *,
        expires_in: int = 3600,
    ) -> str:
        return f"memory://{key}?uploadId={upload_id}&partNumber={part_number}&expires={expires_in}"

    def upload_part(self, upload_id: str, part_number: int, body: bytes) -> str:
        """Store one part as a client PUT to the signed part URL would; return its ETag."""
        with self._lock:
            upload = self._uploads.get(upload_id)
            if upload is None:
                raise InvalidSession(f"unknown multipart upload: {upload_id}")
            upload["parts"][part_number] = bytes(body)
        return f'"{hashlib.md5(body).hexdigest()}"'

    def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: list[CompletedPart],
    ) -> str:
        with self._lock:
            upload = self._uploads.get(upload_id)
            if upload is None or upload["key"] != key:
                raise InvalidSession(f"unknown multipart upload: {upload_id}")
            stored = upload["parts"]
            missing = [p.part_number for p in parts if p.part_number not in stored]
            if missing:
                raise IncompleteUpload(f"parts never uploaded: {missing}")
            body = b"".join(stored[p.part_number] for p in parts)
            self._objects[key] = (body, upload["content_type"])
            del self._uploads[upload_id]
        return f"memory://{key}"

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        with self._lock:
            self._uploads.pop(upload_id, None)


class InMemoryVideoStore:
    """VideoStore backed by a dict; update_metadata is atomic under the store lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._videos: dict[str, VideoAsset] = {}

    def get(self, video_id: str) -> VideoAsset | None:
        with self._lock:
            return self._videos.get(video_id)

    def put(self, video: VideoAsset) -> None:
        with self._lock:
            self._videos[video.video_id] = video

    def update_metadata(
        self,
        video_id: str,
        *,
        file_size: int | None = None,
        duration_seconds: int | None = None,
        hls_key: str | None = None,
        thumbnail_key: str | None = None,
    ) -> None:
        updates = {
            name: value
            for name, value in (
                ("file_size", file_size),
                ("duration_seconds", duration_seconds),
                ("hls_key", hls_key),
                ("thumbnail_key", thumbnail_key),
            )
            if value is not None
        }
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                raise VideoNotFound(video_id)
            if not updates:
                return
            updates["updated_at"] = int(time.time())
            self._videos[video_id] = video.model_copy(update=updates)

    def list_by_class(self, class_id: str) -> list[VideoAsset]:
        with self._lock:
            videos = [v for v in self._videos.values() if v.class_id == class_id]
        return sorted(videos, key=lambda v: v.created_at or 0, reverse=True)

    def delete(self, video_id: str) -> None:
        with self._lock:
            self._videos.pop(video_id, None)


class InMemoryVideoViewStore:
    """VideoViewStore keyed by (video_id, student_id); each upsert runs under the store lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._views: dict[tuple[str, str], VideoView] = {}

    def record_view(
        self,
        video_id: str,
        student_id: str,
        *,
        progress: float,
        completion_percentage: float,
    ) -> VideoView:
        now = int(time.time())
        with self._lock:
            current = self._views.get((video_id, student_id)) or VideoView(
                video_id=video_id, student_id=student_id, first_watched_at=now
            )
            percentage = max(current.completion_percentage, completion_percentage)
            view = current.model_copy(
                update={
                    "watch_duration": current.watch_duration + progress,
                    "completion_percentage": percentage,
                    "is_completed": percentage >= COMPLETION_THRESHOLD_PERCENT,
                    "last_watched_at": now,
                }
            )
            self._views[(video_id, student_id)] = view
            return view

    def list_views(self, video_id: str) -> list[VideoView]:
        with self._lock:
            views = [v for (vid, _), v in self._views.items() if vid == video_id]
        return sorted(views, key=lambda v: v.first_watched_at or 0, reverse=True)

    def delete_for_video(self, video_id: str) -> int:
        with self._lock:
            keys = [k for k in self._views if k[0] == video_id]
            for k in keys:
                del self._views[k]
        return len(keys)


class InMemoryUploadSessionStore:
    """UploadSessionStore backed by a dict; close transitions are check-and-set under a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, UploadSession] = {}

    def put(self, session: UploadSession) -> None:
        with self._lock:
            self._sessions[session.session_id] = session

    def get(self, session_id: str) -> UploadSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def mark_completed(self, session_id: str) -> bool:
        return self._close(session_id, "completed_at")

    def mark_aborted(self, session_id: str) -> bool:
        return self._close(session_id, "aborted_at")

    def _close(self, session_id: str, field: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_open:
                return False
            self._sessions[session_id] = session.model_copy(update={field: int(time.time())})
            return True
