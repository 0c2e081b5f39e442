from __future__ import annotations

import os

import pytest

os.environ.setdefault("S3_BUCKET", "test-bucket")
os.environ.setdefault("S3_ENDPOINT_URL", "http://localhost:9000")
os.environ.setdefault("S3_REGION", "us-east-1")
os.environ.setdefault("S3_ACCESS_KEY_ID", "test-key")
os.environ.setdefault("S3_SECRET_ACCESS_KEY", "test-secret")
os.environ.setdefault("API_KEY_ENABLED", "false")

from app.api.v1.deps import reset_storage_client  # noqa: E402
from app.app.services.object_storage import ObjectStorageClient  # noqa: E402
from app.common.config import StorageConfig, get_settings  # noqa: E402
from tests.services.mock_storage import MockStorageBackend  # noqa: E402


@pytest.fixture(autouse=True)
def clear_caches():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    reset_storage_client()
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]
    reset_storage_client()


@pytest.fixture()
def storage_config() -> StorageConfig:
    return StorageConfig(
        bucket="test-bucket",
        endpoint="http://localhost:9000",
        region="us-east-1",
        access_key="test-key",
        secret_key="test-secret",
    )


@pytest.fixture()
def mock_backend() -> MockStorageBackend:
    return MockStorageBackend()


@pytest.fixture()
def storage(storage_config, mock_backend) -> ObjectStorageClient:
    return ObjectStorageClient(storage_config, backend=mock_backend)
