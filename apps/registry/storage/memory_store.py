"""In-process object store.

Used for local development (``STORAGE_BACKEND=memory``) and tests. Unlike
MinIO it supports an atomic create-if-absent, and it signs its own
``memory://`` URLs which ``read_url`` / ``write_url`` honour for scope and
expiry.
"""

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import BinaryIO
from urllib.parse import parse_qs, quote, unquote, urlsplit

from apps.registry.constants import DEFAULT_DOWNLOAD_URL_TTL, DEFAULT_UPLOAD_URL_TTL

from .base import ObjectNotFoundError, ObjectStore, ObjectStoreError
from .schemas import ObjectInfo


@dataclass
class _StoredObject:
    data: bytes
    metadata: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _read_all(data: bytes | BinaryIO, length: int) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    return data.read() if length < 0 else data.read(length)


class InMemoryObjectStore(ObjectStore):
    """Dictionary-backed object store guarded by a lock."""

    def __init__(self, bucket: str = "modules", conditional_create: bool = True) -> None:
        super().__init__(bucket=bucket)
        self.supports_conditional_create = conditional_create
        self._objects: dict[str, _StoredObject] = {}
        self._lock = threading.Lock()

    def _sign(self, key: str, mode: str, ttl: timedelta) -> str:
        expires = int((datetime.now(timezone.utc) + ttl).timestamp())
        return f"memory://{self.bucket}/{quote(key)}?mode={mode}&expires={expires}"

    def _resolve(self, url: str, mode: str) -> str:
        parts = urlsplit(url)
        if parts.scheme != "memory" or parts.netloc != self.bucket:
            raise ObjectStoreError(f"URL does not belong to bucket {self.bucket}")
        query = parse_qs(parts.query)
        if query.get("mode", [""])[0] != mode:
            raise ObjectStoreError(f"URL is not valid for {mode}")
        if int(query.get("expires", ["0"])[0]) < datetime.now(timezone.utc).timestamp():
            raise ObjectStoreError("URL has expired")
        return unquote(parts.path.lstrip("/"))

    def read_url(self, url: str) -> bytes:
        """Fetch the bytes behind a download URL issued by this store."""
        key = self._resolve(url, "read")
        with self._lock:
            stored = self._objects.get(key)
        if stored is None:
            raise ObjectNotFoundError(f"Object {key} not found in bucket {self.bucket}")
        return stored.data

    def write_url(self, url: str, data: bytes) -> None:
        """Store bytes through an upload URL issued by this store."""
        key = self._resolve(url, "write")
        with self._lock:
            self._objects[key] = _StoredObject(data=bytes(data))

    async def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._objects

    async def stat(self, key: str) -> ObjectInfo | None:
        with self._lock:
            stored = self._objects.get(key)
        if stored is None:
            return None
        return ObjectInfo(
            key=key,
            size_bytes=len(stored.data),
            last_modified=stored.created_at,
            metadata=dict(stored.metadata),
        )

    async def get_download_url(self, key: str, ttl: timedelta = DEFAULT_DOWNLOAD_URL_TTL) -> str:
        if not await self.exists(key):
            raise ObjectNotFoundError(f"Object {key} not found in bucket {self.bucket}")
        return self._sign(key, "read", ttl)

    async def get_upload_url(self, key: str, ttl: timedelta = DEFAULT_UPLOAD_URL_TTL) -> str:
        return self._sign(key, "write", ttl)

    async def upload_from_stream(
        self,
        key: str,
        data: bytes | BinaryIO,
        length: int = -1,
        metadata: dict[str, str] | None = None,
    ) -> ObjectInfo:
        content = _read_all(data, length)
        with self._lock:
            self._objects[key] = _StoredObject(data=content, metadata=dict(metadata or {}))
        return ObjectInfo(key=key, size_bytes=len(content), metadata=dict(metadata or {}))

    async def create_if_absent(
        self,
        key: str,
        data: bytes | BinaryIO,
        length: int = -1,
        metadata: dict[str, str] | None = None,
    ) -> bool:
        if not self.supports_conditional_create:
            return await super().create_if_absent(key, data, length, metadata)
        content = _read_all(data, length)
        with self._lock:
            if key in self._objects:
                return False
            self._objects[key] = _StoredObject(data=content, metadata=dict(metadata or {}))
        return True

    async def delete(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)

    def iter_keys(self, prefix: str) -> Iterator[str]:
        with self._lock:
            keys = [key for key in self._objects if key.startswith(prefix)]
        yield from keys

    async def validate_connectivity(self) -> None:
        return None

    async def bucket_exists(self) -> bool:
        return True
