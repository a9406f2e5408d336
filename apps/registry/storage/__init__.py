"""Storage module for module archives.

This module provides:
- ObjectStore: Capability interface every other component depends on
- MinioObjectStore: MinIO/S3-compatible implementation
- InMemoryObjectStore: Process-local implementation with atomic create
- ObjectInfo: Stat result (size, timestamp, metadata)
"""

from .base import (
    ObjectNotFoundError,
    ObjectStore,
    ObjectStoreConnectivityError,
    ObjectStoreError,
    ObjectStoreTimeoutError,
)
from .memory_store import InMemoryObjectStore
from .minio_store import MinioObjectStore
from .schemas import ObjectInfo

__all__ = [
    "ObjectInfo",
    "ObjectStore",
    "MinioObjectStore",
    "InMemoryObjectStore",
    # Exceptions
    "ObjectStoreError",
    "ObjectNotFoundError",
    "ObjectStoreTimeoutError",
    "ObjectStoreConnectivityError",
]
