"""Storage backend protocol and data types.

This module defines the synchronous interface the file service uses to talk
to an S3-compatible bucket: put, list, delete, bucket probe, object metadata
and presigned downloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


@dataclass(frozen=True, slots=True)
class StoredObject:
    """One entry of a bucket listing."""

    key: str
    size: int
    last_modified: datetime | None


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    content_type: str | None
    content_length: int
    last_modified: datetime | None
    metadata: dict[str, str] = field(default_factory=dict)


class StorageBackend(Protocol):
    """Protocol defining the operations the file service needs.

    Implementations are bound to a single bucket and must be safe to call
    from several worker threads at once.
    """

    @property
    def bucket(self) -> str:
        """Name of the bucket every call targets."""
        ...

    def put_object(
        self,
        *,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Write an object.

        Args:
            key: Object key (path) in the bucket.
            body: Object content.
            content_type: MIME type of the object.
            metadata: Custom metadata to attach to the object.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def list_objects(self, *, prefix: str = "", max_keys: int = 1000) -> list[StoredObject]:
        """List objects under a prefix in the backend's native order.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def delete_object(self, *, key: str) -> None:
        """Delete an object.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def head_bucket(self) -> None:
        """Check that the bucket exists and is accessible.

        Raises:
            StorageError: If the bucket cannot be reached.
        """
        ...

    def head_object(self, *, key: str) -> ObjectHead:
        """Get object metadata without downloading the content.

        Raises:
            StorageError: If the object doesn't exist or operation fails.
        """
        ...

    def presign_download(self, *, key: str, expires_in: int) -> str:
        """Generate a presigned GET URL.

        Raises:
            StorageError: If URL generation fails.
        """
        ...
