from .object_storage import (
    ALLOWED_IMAGE_TYPES,
    IMAGE_EXTENSIONS,
    BatchDeleteResult,
    DeleteResult,
    FileInfoResult,
    InMemoryUpload,
    ListedFile,
    ObjectStorageClient,
    StorageStats,
    TypeStats,
    UploadResult,
    UploadSource,
    build_object_key,
    file_extension,
    sanitize_filename,
    sanitize_folder,
)

__all__ = [
    "ALLOWED_IMAGE_TYPES",
    "IMAGE_EXTENSIONS",
    "BatchDeleteResult",
    "DeleteResult",
    "FileInfoResult",
    "InMemoryUpload",
    "ListedFile",
    "ObjectStorageClient",
    "StorageStats",
    "TypeStats",
    "UploadResult",
    "UploadSource",
    "build_object_key",
    "file_extension",
    "sanitize_filename",
    "sanitize_folder",
]
