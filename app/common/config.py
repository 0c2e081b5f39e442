from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024

# Variable names used by the Vite frontend build; read when the
# S3_* name is absent.
LEGACY_ENV_ALIASES: dict[str, str] = {
    "S3_BUCKET": "VITE_MINIO_BUCKET",
    "S3_ENDPOINT_URL": "VITE_MINIO_ENDPOINT",
    "S3_REGION": "VITE_MINIO_REGION",
    "S3_ACCESS_KEY_ID": "VITE_MINIO_ACCESS_KEY",
    "S3_SECRET_ACCESS_KEY": "VITE_MINIO_SECRET_KEY",
}


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _env(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name)
    if value is None and name in LEGACY_ENV_ALIASES:
        value = os.environ.get(LEGACY_ENV_ALIASES[name])
    if value is None or value == "":
        return default
    return value


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Connection parameters for the bucket; built once per process."""

    bucket: str
    endpoint: str
    region: str
    access_key: str
    secret_key: str
    addressing_style: str = "path"
    use_ssl: bool = False

    def __post_init__(self) -> None:
        # Public URLs are formatted as "{endpoint}/{bucket}/{key}".
        object.__setattr__(self, "endpoint", self.endpoint.rstrip("/"))

    def describe(self) -> dict[str, str]:
        """Loggable view of the configuration with credentials masked."""
        return {
            "bucket": self.bucket,
            "endpoint": self.endpoint,
            "region": self.region,
            "addressing_style": self.addressing_style,
            "access_key": "***configured***" if self.access_key else "missing",
            "secret_key": "***configured***" if self.secret_key else "missing",
        }


class StorageNotConfiguredError(Exception):
    """Raised when required storage settings are missing."""


@dataclass
class Settings:
    S3_BUCKET: str | None = None
    S3_ENDPOINT_URL: str | None = None
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_ADDRESSING_STYLE: str = "path"
    S3_USE_SSL: bool = False
    STORAGE_MAX_IMAGE_BYTES: int = DEFAULT_MAX_IMAGE_BYTES
    STORAGE_LIST_LIMIT: int = 1000
    STORAGE_PRESIGN_EXPIRES_SECONDS: int = 3600
    STORAGE_DELETE_CONCURRENCY: int = 0
    ENABLE_METRICS: bool = True
    API_KEY_ENABLED: bool = False
    API_KEY: str | None = None
    CORS_ENABLED: bool = False
    CORS_ORIGINS: list[str] = field(default_factory=list)
    TRACE_HTTP: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    def __post_init__(self) -> None:
        if self.STORAGE_MAX_IMAGE_BYTES <= 0:
            raise ValueError("STORAGE_MAX_IMAGE_BYTES must be positive.")
        if self.STORAGE_LIST_LIMIT <= 0:
            raise ValueError("STORAGE_LIST_LIMIT must be positive.")
        if self.STORAGE_DELETE_CONCURRENCY < 0:
            raise ValueError("STORAGE_DELETE_CONCURRENCY must be >= 0 (0 = unbounded).")

    def storage_config(self) -> StorageConfig:
        missing = [
            name
            for name in (
                "S3_BUCKET",
                "S3_ENDPOINT_URL",
                "S3_ACCESS_KEY_ID",
                "S3_SECRET_ACCESS_KEY",
            )
            if not getattr(self, name)
        ]
        if missing:
            raise StorageNotConfiguredError(
                f"Missing storage settings: {', '.join(missing)}"
            )
        return StorageConfig(
            bucket=str(self.S3_BUCKET),
            endpoint=str(self.S3_ENDPOINT_URL),
            region=self.S3_REGION,
            access_key=str(self.S3_ACCESS_KEY_ID),
            secret_key=str(self.S3_SECRET_ACCESS_KEY),
            addressing_style=(self.S3_ADDRESSING_STYLE or "path").strip().lower(),
            use_ssl=self.S3_USE_SSL,
        )

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            S3_BUCKET=_env("S3_BUCKET"),
            S3_ENDPOINT_URL=_env("S3_ENDPOINT_URL"),
            S3_REGION=_env("S3_REGION", cls.S3_REGION) or cls.S3_REGION,
            S3_ACCESS_KEY_ID=_env("S3_ACCESS_KEY_ID"),
            S3_SECRET_ACCESS_KEY=_env("S3_SECRET_ACCESS_KEY"),
            S3_ADDRESSING_STYLE=os.environ.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            S3_USE_SSL=_as_bool(os.environ.get("S3_USE_SSL"), cls.S3_USE_SSL),
            STORAGE_MAX_IMAGE_BYTES=int(
                os.environ.get("STORAGE_MAX_IMAGE_BYTES", cls.STORAGE_MAX_IMAGE_BYTES)
            ),
            STORAGE_LIST_LIMIT=int(
                os.environ.get("STORAGE_LIST_LIMIT", cls.STORAGE_LIST_LIMIT)
            ),
            STORAGE_PRESIGN_EXPIRES_SECONDS=int(
                os.environ.get(
                    "STORAGE_PRESIGN_EXPIRES_SECONDS",
                    cls.STORAGE_PRESIGN_EXPIRES_SECONDS,
                )
            ),
            STORAGE_DELETE_CONCURRENCY=int(
                os.environ.get(
                    "STORAGE_DELETE_CONCURRENCY", cls.STORAGE_DELETE_CONCURRENCY
                )
            ),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            API_KEY_ENABLED=_as_bool(
                os.environ.get("API_KEY_ENABLED"), cls.API_KEY_ENABLED
            ),
            API_KEY=os.environ.get("API_KEY"),
            CORS_ENABLED=_as_bool(os.environ.get("CORS_ENABLED"), cls.CORS_ENABLED),
            CORS_ORIGINS=_as_list(os.environ.get("CORS_ORIGINS")),
            TRACE_HTTP=_as_bool(os.environ.get("TRACE_HTTP"), cls.TRACE_HTTP),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL).upper(),
            LOG_FORMAT=os.environ.get("LOG_FORMAT", cls.LOG_FORMAT).lower(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
