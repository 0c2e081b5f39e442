"""File management over a single object storage bucket.

``ObjectStorageClient`` is the façade the API layer (and any other caller)
uses to upload, list, search, delete and link to files. Each backend call runs
in a worker thread so the event loop is never blocked by the synchronous SDK.

Two failure disciplines coexist:

* upload, delete, batch delete, file info and stats never raise; they return a
  result object with ``success`` and, on failure, an ``error`` message;
* listing, search and the connection probe log the error and return an empty
  list / ``False``. Callers cannot tell "no files" from "listing failed".
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, Sequence, TypeVar

from app.common.config import DEFAULT_MAX_IMAGE_BYTES, Settings, StorageConfig
from app.infra.observability.metrics import STORAGE_LATENCY, STORAGE_OPERATIONS
from app.infra.storage.client import StorageBackend
from app.infra.storage.s3_client import S3StorageBackend

logger = logging.getLogger("app.storage")

T = TypeVar("T")

ALLOWED_IMAGE_TYPES: tuple[str, ...] = (
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
)
IMAGE_EXTENSIONS: frozenset[str] = frozenset(
    {"jpg", "jpeg", "png", "gif", "webp", "bmp", "svg"}
)
DEFAULT_IMAGE_FOLDER = "images"
DEFAULT_LIST_LIMIT = 1000
DEFAULT_SIGNED_URL_EXPIRES = 3600

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 6

ProgressCallback = Callable[[int], Any]


class UploadSource(Protocol):
    """Anything that can be uploaded: a name, a MIME type, a size and bytes.

    Starlette's ``UploadFile`` satisfies this protocol.
    """

    filename: str | None
    content_type: str | None
    size: int | None

    async def read(self) -> bytes: ...


@dataclass(slots=True)
class InMemoryUpload:
    """UploadSource backed by a bytes buffer."""

    filename: str
    content: bytes
    content_type: str | None = "application/octet-stream"
    size: int | None = None

    def __post_init__(self) -> None:
        if self.size is None:
            self.size = len(self.content)

    async def read(self) -> bytes:
        return self.content


@dataclass(frozen=True, slots=True)
class UploadResult:
    success: bool
    file_name: str | None = None
    original_name: str | None = None
    size: int | None = None
    content_type: str | None = None
    url: str | None = None
    error: str | None = None
    error_code: str | None = None


@dataclass(frozen=True, slots=True)
class ListedFile:
    name: str
    size: int
    last_modified: datetime | None
    url: str
    extension: str


@dataclass(frozen=True, slots=True)
class DeleteResult:
    success: bool
    key: str
    message: str | None = None
    error: str | None = None
    error_code: str | None = None


@dataclass(frozen=True, slots=True)
class BatchDeleteResult:
    success: bool
    deleted: int
    failed: int
    results: list[DeleteResult] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True, slots=True)
class FileInfoResult:
    success: bool
    content_type: str | None = None
    content_length: int | None = None
    last_modified: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    error_code: str | None = None


@dataclass(frozen=True, slots=True)
class TypeStats:
    count: int
    size: int


@dataclass(frozen=True, slots=True)
class StorageStats:
    success: bool
    total_files: int = 0
    total_size: int = 0
    total_size_mb: str = "0.00"
    by_type: dict[str, TypeStats] = field(default_factory=dict)
    error: str | None = None


def sanitize_filename(filename: str) -> str:
    """Replace every character outside ``[A-Za-z0-9._-]`` with ``_``."""
    return _UNSAFE_KEY_CHARS.sub("_", filename)


def sanitize_folder(folder: str) -> str:
    """Sanitize each path segment; empty, ``.`` and ``..`` segments are dropped."""
    segments = [
        sanitize_filename(segment)
        for segment in folder.split("/")
        if segment not in ("", ".", "..")
    ]
    return "/".join(segments)


def build_object_key(filename: str, folder: str = "") -> str:
    """Return ``[folder/]{timestampMillis}-{suffix}-{sanitized name}``."""
    timestamp = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    name = f"{timestamp}-{suffix}-{sanitize_filename(filename)}"
    folder = sanitize_folder(folder)
    return f"{folder}/{name}" if folder else name


def file_extension(key: str) -> str:
    """Lowercase text after the last dot; the whole key when there is none."""
    return key.rsplit(".", 1)[-1].lower()


def _format_megabytes(size: int | float) -> str:
    return f"{size / 1024 / 1024:g}"


class ObjectStorageClient:
    """Async file-management façade over one bucket."""

    def __init__(
        self,
        config: StorageConfig,
        *,
        backend: StorageBackend | None = None,
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
        list_limit: int = DEFAULT_LIST_LIMIT,
        signed_url_expires: int = DEFAULT_SIGNED_URL_EXPIRES,
        delete_concurrency: int = 0,
    ) -> None:
        self._config = config
        self._backend = backend or S3StorageBackend(config=config)
        self._max_image_bytes = max_image_bytes
        self._list_limit = list_limit
        self._signed_url_expires = signed_url_expires
        self._delete_concurrency = delete_concurrency

    @classmethod
    def from_settings(
        cls, settings: Settings, *, backend: StorageBackend | None = None
    ) -> "ObjectStorageClient":
        return cls(
            settings.storage_config(),
            backend=backend,
            max_image_bytes=settings.STORAGE_MAX_IMAGE_BYTES,
            list_limit=settings.STORAGE_LIST_LIMIT,
            signed_url_expires=settings.STORAGE_PRESIGN_EXPIRES_SECONDS,
            delete_concurrency=settings.STORAGE_DELETE_CONCURRENCY,
        )

    @property
    def config(self) -> StorageConfig:
        return self._config

    @property
    def signed_url_expires(self) -> int:
        return self._signed_url_expires

    async def _call(self, operation: str, func: Callable[..., T], /, **kwargs: Any) -> T:
        start = time.perf_counter()
        try:
            result = await asyncio.to_thread(func, **kwargs)
        except Exception:
            STORAGE_OPERATIONS.labels(operation, "error").inc()
            raise
        finally:
            STORAGE_LATENCY.labels(operation).observe(time.perf_counter() - start)
        STORAGE_OPERATIONS.labels(operation, "success").inc()
        return result

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        file: UploadSource,
        *,
        folder: str = "",
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Upload ``file`` under a collision-resistant key.

        Never raises: storage and transport errors are returned as a failed
        ``UploadResult``.
        """
        return await self._upload(file, folder=folder, on_progress=on_progress)

    async def _upload(
        self,
        file: UploadSource,
        *,
        folder: str,
        on_progress: ProgressCallback | None,
        body: bytes | None = None,
    ) -> UploadResult:
        original_name = file.filename or ""
        try:
            key = build_object_key(original_name, folder)
            if body is None:
                body = await file.read()
            size = file.size if file.size is not None else len(body)
            await self._call(
                "put_object",
                self._backend.put_object,
                key=key,
                body=body,
                content_type=file.content_type,
                metadata={
                    "original-name": original_name,
                    "upload-date": datetime.now(timezone.utc).isoformat(),
                },
            )

            # boto3 exposes no incremental progress for a single PUT
            if on_progress is not None:
                on_progress(100)

            logger.info(
                "file_uploaded key=%s size=%s",
                key,
                size,
                extra={"extra": {"key": key, "size": size}},
            )
            return UploadResult(
                success=True,
                file_name=key,
                original_name=original_name,
                size=size,
                content_type=file.content_type,
                url=self.get_public_url(key),
            )
        except Exception as exc:
            logger.exception("upload_failed original_name=%s", original_name)
            return UploadResult(
                success=False,
                error=str(exc) or "Upload failed",
                error_code="storage_error",
            )

    async def upload_image(
        self,
        file: UploadSource,
        *,
        folder: str | None = None,
        max_size: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Validate type and size, then upload into ``images/`` by default.

        A source that does not report its size is read first and measured.
        """
        if file.content_type not in ALLOWED_IMAGE_TYPES:
            return UploadResult(
                success=False,
                error="Invalid file type. Only JPEG, PNG, GIF, and WebP are allowed.",
                error_code="invalid_file_type",
            )

        body: bytes | None = None
        size = file.size
        if size is None:
            try:
                body = await file.read()
            except Exception as exc:
                logger.exception("upload_read_failed original_name=%s", file.filename)
                return UploadResult(
                    success=False,
                    error=str(exc) or "Upload failed",
                    error_code="storage_error",
                )
            size = len(body)

        limit = max_size or self._max_image_bytes
        if size > limit:
            return UploadResult(
                success=False,
                error=f"File too large. Maximum size is {_format_megabytes(limit)}MB",
                error_code="file_too_large",
            )

        return await self._upload(
            file,
            folder=folder or DEFAULT_IMAGE_FOLDER,
            on_progress=on_progress,
            body=body,
        )

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_files(
        self, *, prefix: str = "", limit: int | None = None
    ) -> list[ListedFile]:
        """List files in backend order; returns ``[]`` on error."""
        max_keys = limit or self._list_limit
        logger.debug(
            "listing_files bucket=%s prefix=%r limit=%s",
            self._config.bucket,
            prefix,
            max_keys,
        )
        try:
            objects = await self._call(
                "list_objects",
                self._backend.list_objects,
                prefix=prefix,
                max_keys=max_keys,
            )
        except Exception:
            logger.exception("list_failed prefix=%r", prefix)
            return []

        if not objects:
            logger.debug("no files found prefix=%r", prefix)
            return []

        return [
            ListedFile(
                name=obj.key,
                size=obj.size,
                last_modified=obj.last_modified,
                url=self.get_public_url(obj.key),
                extension=file_extension(obj.key),
            )
            for obj in objects
        ]

    async def list_images(
        self, *, prefix: str = "", limit: int | None = None
    ) -> list[ListedFile]:
        files = await self.list_files(prefix=prefix, limit=limit)
        return [f for f in files if f.extension in IMAGE_EXTENSIONS]

    async def search_files(
        self, term: str, *, prefix: str = "", limit: int | None = None
    ) -> list[ListedFile]:
        """Files whose key contains ``term``, ignoring case."""
        files = await self.list_files(prefix=prefix, limit=limit)
        needle = term.lower()
        return [f for f in files if needle in f.name.lower()]

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_file(self, key: str) -> DeleteResult:
        try:
            await self._call("delete_object", self._backend.delete_object, key=key)
        except Exception as exc:
            logger.exception("delete_failed key=%s", key)
            return DeleteResult(
                success=False,
                key=key,
                error=str(exc) or "Delete failed",
                error_code="storage_error",
            )
        logger.info("file_deleted key=%s", key, extra={"extra": {"key": key}})
        return DeleteResult(success=True, key=key, message="File deleted successfully")

    delete_image = delete_file

    async def delete_multiple_files(self, keys: Sequence[str]) -> BatchDeleteResult:
        """Delete ``keys`` concurrently and aggregate the outcomes.

        Not transactional: a partial failure leaves the other keys deleted.
        Results keep the order of ``keys``.
        """
        try:
            if self._delete_concurrency > 0:
                semaphore = asyncio.Semaphore(self._delete_concurrency)

                async def bounded(key: str) -> DeleteResult:
                    async with semaphore:
                        return await self.delete_file(key)

                results = await asyncio.gather(*(bounded(key) for key in keys))
            else:
                results = await asyncio.gather(*(self.delete_file(key) for key in keys))
        except Exception as exc:
            logger.exception("batch_delete_failed count=%s", len(keys))
            return BatchDeleteResult(
                success=False, deleted=0, failed=0, error=str(exc)
            )

        deleted = sum(1 for r in results if r.success)
        failed = len(results) - deleted
        if failed:
            logger.warning("batch_delete_partial deleted=%s failed=%s", deleted, failed)
        return BatchDeleteResult(
            success=failed == 0,
            deleted=deleted,
            failed=failed,
            results=list(results),
        )

    # ------------------------------------------------------------------
    # Metadata, URLs, stats
    # ------------------------------------------------------------------

    async def check_connection(self) -> bool:
        """Probe the bucket; any error counts as "not accessible"."""
        try:
            await self._call("head_bucket", self._backend.head_bucket)
        except Exception:
            logger.warning(
                "connection_check_failed bucket=%s", self._config.bucket, exc_info=True
            )
            return False
        return True

    async def get_file_info(self, key: str) -> FileInfoResult:
        try:
            head = await self._call("head_object", self._backend.head_object, key=key)
        except Exception as exc:
            logger.exception("file_info_failed key=%s", key)
            return FileInfoResult(
                success=False,
                error=str(exc) or "Get file info failed",
                error_code="storage_error",
            )
        return FileInfoResult(
            success=True,
            content_type=head.content_type,
            content_length=head.content_length,
            last_modified=head.last_modified,
            metadata=dict(head.metadata),
        )

    def get_public_url(self, key: str) -> str:
        return f"{self._config.endpoint}/{self._config.bucket}/{key}"

    async def get_signed_url(self, key: str, expires_in: int | None = None) -> str:
        """Presigned GET URL, or the public URL if signing fails."""
        try:
            return await self._call(
                "presign_download",
                self._backend.presign_download,
                key=key,
                expires_in=expires_in or self._signed_url_expires,
            )
        except Exception:
            logger.warning("signed_url_fallback key=%s", key, exc_info=True)
            return self.get_public_url(key)

    async def get_storage_stats(self) -> StorageStats:
        try:
            files = await self.list_files()
            total_size = sum(f.size for f in files)
            counts: dict[str, list[int]] = {}
            for f in files:
                entry = counts.setdefault(f.extension, [0, 0])
                entry[0] += 1
                entry[1] += f.size
        except Exception as exc:
            logger.exception("stats_failed")
            return StorageStats(success=False, error=str(exc))

        return StorageStats(
            success=True,
            total_files=len(files),
            total_size=total_size,
            total_size_mb=f"{total_size / 1024 / 1024:.2f}",
            by_type={
                ext: TypeStats(count=count, size=size)
                for ext, (count, size) in counts.items()
            },
        )
