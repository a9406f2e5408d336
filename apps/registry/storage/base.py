"""Object store capability interface.

Every other component reaches physical storage through ``ObjectStore``.
Implementations only raise ``ObjectNotFoundError`` for "key absent" in
``get_download_url``; every other failure is an ``ObjectStoreError`` carrying
the underlying cause. A call that exceeds its deadline raises
``ObjectStoreTimeoutError`` so callers can report "retry later".
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from datetime import timedelta
from typing import Any, BinaryIO, TypeVar

from apps.registry.constants import DEFAULT_DOWNLOAD_URL_TTL, DEFAULT_UPLOAD_URL_TTL

from .schemas import ObjectInfo

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_STORE_TIMEOUT_SECONDS = 30.0


class ObjectStoreError(Exception):
    """Base exception for object store operations."""

    pass


class ObjectNotFoundError(ObjectStoreError):
    """Object does not exist in storage."""

    pass


class ObjectStoreTimeoutError(ObjectStoreError):
    """Store call exceeded its deadline."""

    pass


class ObjectStoreConnectivityError(ObjectStoreError):
    """Credentials or endpoint are unusable."""

    pass


class ObjectStore(ABC):
    """Flat key-value blob store with prefix enumeration.

    Blocking backends run their SDK calls through ``_run`` so that the event
    loop stays free and each call is bounded by ``timeout_seconds``. A worker
    thread cannot be cancelled, so backends also bound the SDK call itself
    (socket timeouts) and ``_run`` is the backstop.
    """

    #: True when ``create_if_absent`` is atomic on this backend
    supports_conditional_create: bool = False

    def __init__(self, bucket: str, timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS) -> None:
        self.bucket = bucket
        self.timeout_seconds = timeout_seconds

    async def _run(
        self,
        operation: str,
        func: Callable[..., T],
        *args: Any,
        mutating: bool = False,
        **kwargs: Any,
    ) -> T:
        """Run a blocking store call in a worker thread under the store deadline.

        Reads past the deadline are abandoned with ``ObjectStoreTimeoutError``.
        Writes (``mutating=True``) may still land after the deadline, so they
        are awaited to completion and their real outcome is reported; a caller
        is never told to retry a write that succeeded.
        """
        call = asyncio.ensure_future(asyncio.to_thread(func, *args, **kwargs))
        try:
            return await asyncio.wait_for(
                asyncio.shield(call) if mutating else call,
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            if not mutating:
                logger.warning(f"Store operation {operation} timed out after {self.timeout_seconds}s")
                raise ObjectStoreTimeoutError(
                    f"Store operation {operation} timed out after {self.timeout_seconds}s"
                ) from e

        logger.warning(
            f"Store write {operation} exceeded {self.timeout_seconds}s, waiting for it to settle"
        )
        return await call

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether an object is stored under ``key``."""

    @abstractmethod
    async def stat(self, key: str) -> ObjectInfo | None:
        """Return size, timestamp and metadata for ``key``, or None if absent."""

    @abstractmethod
    async def get_download_url(self, key: str, ttl: timedelta = DEFAULT_DOWNLOAD_URL_TTL) -> str:
        """Issue a read-only pre-signed URL valid for ``ttl``.

        Raises:
            ObjectNotFoundError: If ``key`` does not exist
        """

    @abstractmethod
    async def get_upload_url(self, key: str, ttl: timedelta = DEFAULT_UPLOAD_URL_TTL) -> str:
        """Issue a write-only pre-signed URL for direct client upload.

        Creates the bucket if absent. Does not check whether ``key`` already
        holds data.
        """

    @abstractmethod
    async def upload_from_stream(
        self,
        key: str,
        data: bytes | BinaryIO,
        length: int = -1,
        metadata: dict[str, str] | None = None,
    ) -> ObjectInfo:
        """Write ``data`` to ``key``, overwriting any existing object."""

    async def create_if_absent(
        self,
        key: str,
        data: bytes | BinaryIO,
        length: int = -1,
        metadata: dict[str, str] | None = None,
    ) -> bool:
        """Atomically write ``data`` unless ``key`` exists.

        Returns:
            False when ``key`` already holds an object
        """
        raise NotImplementedError(f"{type(self).__name__} does not support conditional create")

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete ``key``. Deleting a missing key is not an error."""

    @abstractmethod
    def iter_keys(self, prefix: str) -> Iterator[str]:
        """Lazily enumerate keys under ``prefix`` in the store's native order.

        Calling again restarts the enumeration.
        """

    async def list_keys(self, prefix: str) -> list[str]:
        """Materialise ``iter_keys`` off the event loop."""
        return await self._run("list_keys", lambda: list(self.iter_keys(prefix)))

    @abstractmethod
    async def validate_connectivity(self) -> None:
        """Fail fast if the store is unusable.

        Raises:
            ObjectStoreConnectivityError: If credentials or endpoint are unusable
        """

    @abstractmethod
    async def bucket_exists(self) -> bool:
        """Read-only reachability check; never creates the bucket.

        Raises:
            ObjectStoreError: If the store cannot be reached
        """
