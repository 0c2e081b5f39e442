"""Pydantic schemas for file API endpoints.

Response models mirror the result objects returned by ``ObjectStorageClient``
and are built from them with ``model_validate``.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UploadOut(BaseModel):
    """Response model for a successful upload."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    file_name: str
    original_name: str
    size: int | None = None
    content_type: str | None = None
    url: str


class FileOut(BaseModel):
    """One file of a bucket listing."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    size: int
    last_modified: datetime | None = None
    url: str
    extension: str


class DeleteOut(BaseModel):
    """Outcome of deleting one key."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    key: str
    message: str | None = None
    error: str | None = None


class BatchDeleteIn(BaseModel):
    """Request body for deleting several keys."""

    keys: list[str] = Field(default_factory=list)


class BatchDeleteOut(BaseModel):
    """Aggregate outcome of a batch delete."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    deleted: int
    failed: int
    results: list[DeleteOut] = Field(default_factory=list)
    error: str | None = None


class FileInfoOut(BaseModel):
    """Object metadata for one key."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    content_type: str | None = None
    content_length: int | None = None
    last_modified: datetime | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class TypeStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    count: int
    size: int


class StorageStatsOut(BaseModel):
    """Bucket totals and per-extension breakdown."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    total_files: int
    total_size: int
    total_size_mb: str
    by_type: dict[str, TypeStatsOut] = Field(default_factory=dict)


class FileUrlOut(BaseModel):
    url: str
    signed: bool
    expires_in: int | None = None
