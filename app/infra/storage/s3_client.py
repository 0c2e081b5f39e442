"""S3-compatible storage backend implementation.

Works with MinIO, AWS S3 and other S3-compatible object storage services.
MinIO requires path-style addressing, which is the default here.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config

from app.common.config import StorageConfig
from app.infra.storage.client import ObjectHead, StorageError, StoredObject


class S3StorageBackend:
    """Storage backend bound to one bucket, using a shared boto3 client.

    boto3 clients are thread-safe, so a single instance serves all
    concurrent requests.
    """

    def __init__(self, *, config: StorageConfig) -> None:
        self._config = config
        self._client = self._build_client(config)

    @property
    def bucket(self) -> str:
        return self._config.bucket

    @staticmethod
    def _build_client(config: StorageConfig) -> Any:
        """Create a boto3 S3 client from the storage configuration."""
        return boto3.client(
            "s3",
            endpoint_url=config.endpoint,
            region_name=config.region,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            use_ssl=bool(config.use_ssl),
            config=Config(s3={"addressing_style": config.addressing_style}),
        )

    def put_object(
        self,
        *,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata

        try:
            self._client.put_object(**params)
        except Exception as exc:
            raise StorageError(f"Failed to upload object: {exc}") from exc

    def list_objects(self, *, prefix: str = "", max_keys: int = 1000) -> list[StoredObject]:
        try:
            response = self._client.list_objects_v2(
                Bucket=self.bucket,
                Prefix=prefix,
                MaxKeys=int(max_keys),
            )
        except Exception as exc:
            raise StorageError(f"Failed to list objects: {exc}") from exc

        return [
            StoredObject(
                key=str(item["Key"]),
                size=int(item.get("Size") or 0),
                last_modified=item.get("LastModified"),
            )
            for item in response.get("Contents") or []
        ]

    def delete_object(self, *, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except Exception as exc:
            raise StorageError(f"Failed to delete object: {exc}") from exc

    def head_bucket(self) -> None:
        try:
            self._client.head_bucket(Bucket=self.bucket)
        except Exception as exc:
            raise StorageError(f"Bucket {self.bucket} is not accessible: {exc}") from exc

    def head_object(self, *, key: str) -> ObjectHead:
        try:
            response = self._client.head_object(Bucket=self.bucket, Key=key)
        except Exception as exc:
            raise StorageError(f"Failed to get object metadata: {exc}") from exc

        size = response.get("ContentLength")
        return ObjectHead(
            content_type=response.get("ContentType"),
            content_length=int(size) if size is not None else 0,
            last_modified=response.get("LastModified"),
            metadata=dict(response.get("Metadata") or {}),
        )

    def presign_download(self, *, key: str, expires_in: int) -> str:
        try:
            url = self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(expires_in),
            )
        except Exception as exc:
            raise StorageError(f"Failed to generate download URL: {exc}") from exc

        if not url:
            raise StorageError("Generated presigned URL is empty")

        return str(url)
