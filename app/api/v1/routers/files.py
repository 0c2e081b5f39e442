"""File API router.

REST endpoints over ``ObjectStorageClient``: upload, list, search, stats,
metadata, URL generation and deletion.
"""

from __future__ import annotations

from typing import List

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    UploadFile,
    status,
)

from app.api.v1.deps import get_storage_client
from app.api.v1.schemas.files import (
    BatchDeleteIn,
    BatchDeleteOut,
    DeleteOut,
    FileInfoOut,
    FileOut,
    FileUrlOut,
    StorageStatsOut,
    UploadOut,
)
from app.app.services.object_storage import ObjectStorageClient

router = APIRouter()

# Maximum lifetime of a SigV4 presigned URL
MAX_PRESIGN_SECONDS = 7 * 24 * 3600

STATUS_BY_ERROR_CODE = {
    "invalid_file_type": status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    "file_too_large": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    "storage_error": status.HTTP_502_BAD_GATEWAY,
}


def _raise_for_failure(error: str | None, error_code: str | None) -> None:
    code = error_code or "storage_error"
    raise HTTPException(
        status_code=STATUS_BY_ERROR_CODE.get(code, status.HTTP_502_BAD_GATEWAY),
        detail={"message": error or "Storage operation failed", "error_code": code},
    )


@router.post(
    "/files",
    response_model=UploadOut,
    status_code=status.HTTP_201_CREATED,
    summary="Upload file",
    description="Upload a file under a generated, collision-resistant key.",
)
async def upload_file(
    file: UploadFile = File(...),
    folder: str = Form(default=""),
    storage: ObjectStorageClient = Depends(get_storage_client),
) -> UploadOut:
    result = await storage.upload_file(file, folder=folder.strip("/"))
    if not result.success:
        _raise_for_failure(result.error, result.error_code)
    return UploadOut.model_validate(result)


@router.post(
    "/images",
    response_model=UploadOut,
    status_code=status.HTTP_201_CREATED,
    summary="Upload image",
    description="Upload a JPEG, PNG, GIF or WebP image (default folder: images).",
)
async def upload_image(
    file: UploadFile = File(...),
    folder: str | None = Form(default=None),
    max_size: int | None = Form(default=None, ge=1),
    storage: ObjectStorageClient = Depends(get_storage_client),
) -> UploadOut:
    result = await storage.upload_image(
        file,
        folder=folder.strip("/") if folder else None,
        max_size=max_size,
    )
    if not result.success:
        _raise_for_failure(result.error, result.error_code)
    return UploadOut.model_validate(result)


@router.get(
    "/files",
    response_model=List[FileOut],
    summary="List files",
    description="List files in the bucket. Returns an empty list if listing fails.",
)
async def list_files(
    prefix: str = Query(default=""),
    limit: int | None = Query(default=None, ge=1, le=1000),
    storage: ObjectStorageClient = Depends(get_storage_client),
) -> List[FileOut]:
    files = await storage.list_files(prefix=prefix, limit=limit)
    return [FileOut.model_validate(f) for f in files]


@router.get(
    "/images",
    response_model=List[FileOut],
    summary="List images",
    description="List files with an image extension.",
)
async def list_images(
    prefix: str = Query(default=""),
    limit: int | None = Query(default=None, ge=1, le=1000),
    storage: ObjectStorageClient = Depends(get_storage_client),
) -> List[FileOut]:
    files = await storage.list_images(prefix=prefix, limit=limit)
    return [FileOut.model_validate(f) for f in files]


@router.get(
    "/files/search",
    response_model=List[FileOut],
    summary="Search files",
    description="Files whose key contains the search term (case-insensitive).",
)
async def search_files(
    q: str = Query(..., min_length=1),
    prefix: str = Query(default=""),
    limit: int | None = Query(default=None, ge=1, le=1000),
    storage: ObjectStorageClient = Depends(get_storage_client),
) -> List[FileOut]:
    files = await storage.search_files(q, prefix=prefix, limit=limit)
    return [FileOut.model_validate(f) for f in files]


@router.get(
    "/files/stats",
    response_model=StorageStatsOut,
    summary="Storage statistics",
    description="File count, total size and per-extension breakdown.",
)
async def storage_stats(
    storage: ObjectStorageClient = Depends(get_storage_client),
) -> StorageStatsOut:
    stats = await storage.get_storage_stats()
    if not stats.success:
        _raise_for_failure(stats.error, "storage_error")
    return StorageStatsOut.model_validate(stats)


@router.get(
    "/files/info",
    response_model=FileInfoOut,
    summary="Get file metadata",
    description="Content type, length, last-modified and custom metadata.",
)
async def file_info(
    key: str = Query(..., min_length=1),
    storage: ObjectStorageClient = Depends(get_storage_client),
) -> FileInfoOut:
    info = await storage.get_file_info(key)
    if not info.success:
        _raise_for_failure(info.error, info.error_code)
    return FileInfoOut.model_validate(info)


@router.get(
    "/files/url",
    response_model=FileUrlOut,
    summary="Get file URL",
    description=(
        "Public URL, or a presigned URL when signed=true. Signing failures "
        "fall back to the public URL."
    ),
)
async def file_url(
    key: str = Query(..., min_length=1),
    signed: bool = False,
    expires_in: int | None = Query(default=None, ge=1, le=MAX_PRESIGN_SECONDS),
    storage: ObjectStorageClient = Depends(get_storage_client),
) -> FileUrlOut:
    if not signed:
        return FileUrlOut(url=storage.get_public_url(key), signed=False)
    expires = expires_in or storage.signed_url_expires
    url = await storage.get_signed_url(key, expires)
    return FileUrlOut(url=url, signed=True, expires_in=expires)


@router.delete(
    "/files",
    response_model=DeleteOut,
    summary="Delete file",
    description="Permanently delete one object.",
)
async def delete_file(
    key: str = Query(..., min_length=1),
    storage: ObjectStorageClient = Depends(get_storage_client),
) -> DeleteOut:
    result = await storage.delete_file(key)
    if not result.success:
        _raise_for_failure(result.error, result.error_code)
    return DeleteOut.model_validate(result)


@router.post(
    "/files/batch-delete",
    response_model=BatchDeleteOut,
    summary="Delete files",
    description=(
        "Delete several objects concurrently. Not transactional: the response "
        "lists the outcome of every key."
    ),
)
async def delete_files(
    payload: BatchDeleteIn,
    storage: ObjectStorageClient = Depends(get_storage_client),
) -> BatchDeleteOut:
    result = await storage.delete_multiple_files(payload.keys)
    return BatchDeleteOut.model_validate(result)
