from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Header, HTTPException

from app.app.services.object_storage import ObjectStorageClient
from app.common.config import StorageNotConfiguredError, get_settings

logger = logging.getLogger("http")


@lru_cache(maxsize=1)
def _build_storage_client() -> ObjectStorageClient:
    return ObjectStorageClient.from_settings(get_settings())


def get_storage_client() -> ObjectStorageClient:
    try:
        return _build_storage_client()
    except StorageNotConfiguredError as exc:
        logger.error("storage_not_configured detail=%s", exc)
        raise HTTPException(
            status_code=503,
            detail={"message": str(exc), "error_code": "storage_not_configured"},
        ) from exc


def reset_storage_client() -> None:
    _build_storage_client.cache_clear()


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    settings = get_settings()
    if settings.API_KEY_ENABLED:
        api_key_expected = getattr(settings, "API_KEY", None)
        if not x_api_key or (api_key_expected and x_api_key != api_key_expected):
            preview = f"{x_api_key[:4]}***" if x_api_key else "<missing>"
            logger.warning("api_key_mismatch api_key_preview=%s", preview)
            raise HTTPException(status_code=401, detail="Invalid API key")
