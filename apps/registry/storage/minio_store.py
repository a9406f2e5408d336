"""Object store implementation using MinIO.

MinioObjectStore handles all module archive persistence with:
- Pre-signed download/upload URLs (read-only / write-only)
- User metadata (namespace, name, version, description, source) on each object
- Lazy prefix enumeration

The MinIO SDK is blocking; every call runs in a worker thread bounded by the
store deadline, and the SDK's HTTP pool carries socket timeouts derived from the
same deadline so a stalled call ends in the thread too. The SDK offers no
uniform create-if-absent, so immutability is enforced by the registry service
with a check-then-write (see DESIGN.md).
"""

import io
import logging
import os
from collections.abc import Iterator
from datetime import timedelta
from typing import Any, BinaryIO
from urllib.parse import quote, unquote

import urllib3
from minio import Minio
from minio.error import MinioException, S3Error
from urllib3.exceptions import HTTPError, MaxRetryError
from urllib3.exceptions import TimeoutError as HTTPTimeoutError

from apps.registry.constants import DEFAULT_DOWNLOAD_URL_TTL, DEFAULT_UPLOAD_URL_TTL

from .base import (
    DEFAULT_STORE_TIMEOUT_SECONDS,
    ObjectNotFoundError,
    ObjectStore,
    ObjectStoreConnectivityError,
    ObjectStoreError,
    ObjectStoreTimeoutError,
)
from .schemas import ObjectInfo

logger = logging.getLogger(__name__)

# S3 error codes meaning "the object (or its bucket) is not there"
_MISSING_CODES = frozenset({"NoSuchKey", "NoSuchObject", "NoSuchBucket", "ResourceNotFound"})

_META_PREFIX = "x-amz-meta-"

# Part size used when the stream length is unknown
_UNKNOWN_LENGTH_PART_SIZE = 10 * 1024 * 1024

# Errors the SDK surfaces for store-side and transport failures
_STORE_ERRORS = (MinioException, HTTPError, OSError)


class MinioObjectStore(ObjectStore):
    """MinIO-based object store.

    Key convention: {namespace}/{name}/v{version}/module.tgz
    """

    def __init__(
        self,
        endpoint: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        secure: bool | None = None,
        bucket: str | None = None,
        region: str | None = None,
        timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS,
    ):
        """Initialize MinIO store settings.

        Args:
            endpoint: MinIO endpoint (default: MINIO_ENDPOINT env or localhost:9000)
            access_key: Access key (default: MINIO_ACCESS_KEY env or minioadmin)
            secret_key: Secret key (default: MINIO_SECRET_KEY env or minioadmin)
            secure: Use HTTPS (default: MINIO_USE_SSL env or false)
            bucket: Bucket name (default: MINIO_BUCKET env or modules)
            region: Bucket region (default: MINIO_REGION env, resolved by the server if unset)
            timeout_seconds: Deadline for each store call
        """
        super().__init__(
            bucket=bucket or os.getenv("MINIO_BUCKET") or "modules",
            timeout_seconds=timeout_seconds,
        )
        self.endpoint: str = endpoint or os.getenv("MINIO_ENDPOINT") or "localhost:9000"
        self.access_key: str = access_key or os.getenv("MINIO_ACCESS_KEY") or "minioadmin"
        self.secret_key: str = secret_key or os.getenv("MINIO_SECRET_KEY") or "minioadmin"
        self.secure: bool = secure if secure is not None else (
            os.getenv("MINIO_USE_SSL", "false").lower() == "true"
        )
        self.region: str | None = region or os.getenv("MINIO_REGION") or None

        self._client: Minio | None = None

    @property
    def client(self) -> Minio:
        """Lazy initialization of MinIO client."""
        if self._client is None:
            self._client = Minio(
                endpoint=self.endpoint,
                access_key=self.access_key,
                secret_key=self.secret_key,
                secure=self.secure,
                region=self.region,
                http_client=self._http_client(),
            )
        return self._client

    def _http_client(self) -> urllib3.PoolManager:
        """HTTP pool whose socket timeouts end a stalled call inside its worker thread."""
        return urllib3.PoolManager(
            timeout=urllib3.Timeout(connect=self.timeout_seconds, read=self.timeout_seconds),
            retries=False,
        )

    @staticmethod
    def _is_timeout(error: Exception) -> bool:
        if isinstance(error, MaxRetryError):
            error = error.reason
        return isinstance(error, (HTTPTimeoutError, TimeoutError))

    def _store_error(self, message: str, error: Exception) -> ObjectStoreError:
        """Wrap an SDK failure, keeping socket timeouts distinguishable."""
        if self._is_timeout(error):
            return ObjectStoreTimeoutError(f"{message}: timed out after {self.timeout_seconds}s")
        return ObjectStoreError(f"{message}: {error}")

    def _ensure_bucket(self) -> None:
        """Ensure the bucket exists, create if not."""
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            logger.info(f"Created bucket {self.bucket}")

    @staticmethod
    def _is_missing(error: Exception) -> bool:
        return isinstance(error, S3Error) and error.code in _MISSING_CODES

    @staticmethod
    def _encode_metadata(metadata: dict[str, str] | None) -> dict[str, Any]:
        """Percent-encode values so non-ASCII text survives HTTP headers."""
        if not metadata:
            return {}
        return {key: quote(str(value), safe=" /:.,-_@") for key, value in metadata.items()}

    @staticmethod
    def _decode_metadata(headers: Any) -> dict[str, str]:
        if not headers:
            return {}
        decoded: dict[str, str] = {}
        for key, value in headers.items():
            lowered = key.lower()
            if lowered.startswith(_META_PREFIX):
                decoded[lowered[len(_META_PREFIX):]] = unquote(value)
        return decoded

    # =========================================================================
    # Blocking helpers (run in worker threads)
    # =========================================================================

    def _stat_sync(self, key: str) -> ObjectInfo | None:
        try:
            stat = self.client.stat_object(bucket_name=self.bucket, object_name=key)
        except _STORE_ERRORS as e:
            if self._is_missing(e):
                return None
            raise self._store_error(f"Failed to stat object {key}", e) from e

        return ObjectInfo(
            key=key,
            size_bytes=stat.size or 0,
            last_modified=stat.last_modified,
            metadata=self._decode_metadata(stat.metadata),
        )

    def _presigned_get_sync(self, key: str, ttl: timedelta) -> str:
        if self._stat_sync(key) is None:
            raise ObjectNotFoundError(f"Object {key} not found in bucket {self.bucket}")
        try:
            return self.client.presigned_get_object(
                bucket_name=self.bucket,
                object_name=key,
                expires=ttl,
            )
        except _STORE_ERRORS as e:
            raise self._store_error(f"Failed to sign download URL for {key}", e) from e

    def _presigned_put_sync(self, key: str, ttl: timedelta) -> str:
        try:
            self._ensure_bucket()
            return self.client.presigned_put_object(
                bucket_name=self.bucket,
                object_name=key,
                expires=ttl,
            )
        except _STORE_ERRORS as e:
            raise self._store_error(f"Failed to sign upload URL for {key}", e) from e

    def _put_sync(
        self,
        key: str,
        data: bytes | BinaryIO,
        length: int,
        metadata: dict[str, str] | None,
    ) -> ObjectInfo:
        if isinstance(data, (bytes, bytearray)):
            length = len(data)
            data = io.BytesIO(data)

        try:
            self._ensure_bucket()
            result = self.client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=data,
                length=length,
                part_size=_UNKNOWN_LENGTH_PART_SIZE if length < 0 else 0,
                content_type="application/gzip",
                metadata=self._encode_metadata(metadata),
            )
        except _STORE_ERRORS as e:
            raise self._store_error(f"Failed to upload object {key}", e) from e

        logger.debug(f"Uploaded {key} to bucket {self.bucket} (etag={result.etag})")
        return ObjectInfo(key=key, size_bytes=max(length, 0), metadata=dict(metadata or {}))

    def _remove_sync(self, key: str) -> None:
        try:
            self.client.remove_object(bucket_name=self.bucket, object_name=key)
        except _STORE_ERRORS as e:
            if self._is_missing(e):
                return  # Already deleted
            raise self._store_error(f"Failed to delete object {key}", e) from e

    def _bucket_exists_sync(self) -> bool:
        try:
            return self.client.bucket_exists(self.bucket)
        except _STORE_ERRORS as e:
            raise self._store_error(f"Failed to check bucket {self.bucket}", e) from e

    def _check_connectivity_sync(self) -> None:
        try:
            self._ensure_bucket()
        except _STORE_ERRORS as e:
            raise ObjectStoreConnectivityError(
                f"Object store at {self.endpoint} is unusable: {e}"
            ) from e

    # =========================================================================
    # ObjectStore interface
    # =========================================================================

    async def exists(self, key: str) -> bool:
        return await self.stat(key) is not None

    async def stat(self, key: str) -> ObjectInfo | None:
        return await self._run("stat", self._stat_sync, key)

    async def get_download_url(self, key: str, ttl: timedelta = DEFAULT_DOWNLOAD_URL_TTL) -> str:
        return await self._run("get_download_url", self._presigned_get_sync, key, ttl)

    async def get_upload_url(self, key: str, ttl: timedelta = DEFAULT_UPLOAD_URL_TTL) -> str:
        return await self._run("get_upload_url", self._presigned_put_sync, key, ttl)

    async def upload_from_stream(
        self,
        key: str,
        data: bytes | BinaryIO,
        length: int = -1,
        metadata: dict[str, str] | None = None,
    ) -> ObjectInfo:
        return await self._run(
            "upload_from_stream", self._put_sync, key, data, length, metadata, mutating=True
        )

    async def delete(self, key: str) -> None:
        await self._run("delete", self._remove_sync, key, mutating=True)

    def iter_keys(self, prefix: str) -> Iterator[str]:
        try:
            objects = self.client.list_objects(
                bucket_name=self.bucket,
                prefix=prefix,
                recursive=True,
            )
            for obj in objects:
                if obj.is_dir or obj.object_name is None:
                    continue
                yield obj.object_name
        except _STORE_ERRORS as e:
            if self._is_missing(e):
                return
            raise self._store_error(f"Failed to list objects under {prefix}", e) from e

    async def validate_connectivity(self) -> None:
        await self._run("validate_connectivity", self._check_connectivity_sync)
        logger.info(f"Object store reachable: endpoint={self.endpoint}, bucket={self.bucket}")

    async def bucket_exists(self) -> bool:
        return await self._run("bucket_exists", self._bucket_exists_sync)
