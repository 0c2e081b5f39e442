"""Object storage abstraction layer.

This module provides a protocol-based abstraction for the bucket backing the
file service, implemented for MinIO and other S3-compatible services.
"""

from .client import (
    ObjectHead,
    StorageBackend,
    StorageError,
    StoredObject,
)

__all__ = [
    "ObjectHead",
    "StorageBackend",
    "StorageError",
    "StoredObject",
]
