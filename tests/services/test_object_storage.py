"""Tests for ObjectStorageClient."""

from __future__ import annotations

import re
from dataclasses import dataclass

import pytest

from app.app.services.object_storage import (
    InMemoryUpload,
    ObjectStorageClient,
    build_object_key,
    file_extension,
    sanitize_filename,
    sanitize_folder,
)
from app.infra.storage.client import StorageError

MIB = 1024 * 1024


def _png(name="photo.png", size=None, content_type="image/png"):
    content = b"\x89PNG" + b"0" * 60
    return InMemoryUpload(
        filename=name, content=content, content_type=content_type, size=size
    )


@dataclass
class _SizelessUpload:
    """Source that does not report its size, like a raw stream."""

    filename: str
    content: bytes
    content_type: str = "image/png"
    size: int | None = None
    reads: int = 0

    async def read(self) -> bytes:
        self.reads += 1
        return self.content


class TestKeyHelpers:
    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("My Photo!.png", "My_Photo_.png"),
            ("report-2024_v1.pdf", "report-2024_v1.pdf"),
            ("test (1) [backup].mp4", "test__1___backup_.mp4"),
            ("café.jpg", "caf_.jpg"),
            ("dir/evil.txt", "dir_evil.txt"),
        ],
    )
    def test_sanitize_filename(self, filename, expected):
        assert sanitize_filename(filename) == expected

    def test_build_object_key_without_folder(self):
        key = build_object_key("a b.txt")
        assert re.fullmatch(r"\d+-[a-z0-9]{6}-a_b\.txt", key)

    def test_build_object_key_with_folder(self):
        key = build_object_key("a.txt", "images/avatars")
        assert re.fullmatch(r"images/avatars/\d+-[a-z0-9]{6}-a\.txt", key)

    @pytest.mark.parametrize(
        "folder,expected",
        [
            ("images/avatars", "images/avatars"),
            ("my folder!/../x", "my_folder_/x"),
            ("/./a//b/", "a/b"),
            ("../..", ""),
        ],
    )
    def test_sanitize_folder(self, folder, expected):
        assert sanitize_folder(folder) == expected

    def test_build_object_key_sanitizes_folder(self):
        key = build_object_key("a.png", "my folder!/../x")
        assert re.fullmatch(r"my_folder_/x/\d+-[a-z0-9]{6}-a\.png", key)

    def test_build_object_key_drops_traversal_only_folder(self):
        key = build_object_key("a.png", "../")
        assert re.fullmatch(r"\d+-[a-z0-9]{6}-a\.png", key)

    def test_build_object_key_is_unique(self):
        keys = {build_object_key("same.txt") for _ in range(200)}
        assert len(keys) == 200

    @pytest.mark.parametrize(
        "key,expected",
        [
            ("a.PNG", "png"),
            ("folder/archive.tar.gz", "gz"),
            ("README", "readme"),
        ],
    )
    def test_file_extension(self, key, expected):
        assert file_extension(key) == expected


class TestPublicUrl:
    @pytest.mark.parametrize(
        "key", ["a.png", "images/1-abc123-x.png", "with space.txt", "ünïcode"]
    )
    def test_public_url_is_plain_concatenation(self, storage, key):
        assert storage.get_public_url(key) == f"http://localhost:9000/test-bucket/{key}"

    def test_trailing_slash_on_endpoint_is_dropped(self, storage_config, mock_backend):
        from dataclasses import replace

        config = replace(storage_config, endpoint="http://minio:9000/")
        client = ObjectStorageClient(config, backend=mock_backend)
        assert client.get_public_url("k") == "http://minio:9000/test-bucket/k"


class TestUploadFile:
    @pytest.mark.asyncio
    async def test_uploads_with_sanitized_key(self, storage, mock_backend):
        upload = InMemoryUpload(
            filename="My Photo!.png", content=b"data", content_type="image/png"
        )

        result = await storage.upload_file(upload)

        assert result.success is True
        assert re.fullmatch(r"(\d+)-([a-z0-9]{6})-My_Photo_\.png", result.file_name)
        assert result.original_name == "My Photo!.png"
        assert result.size == 4
        assert result.content_type == "image/png"
        assert result.url == storage.get_public_url(result.file_name)
        assert mock_backend.objects[result.file_name]["body"] == b"data"

    @pytest.mark.asyncio
    async def test_writes_content_type_and_metadata(self, storage, mock_backend):
        upload = InMemoryUpload(filename="notes.txt", content=b"hi", content_type="text/plain")

        result = await storage.upload_file(upload, folder="docs")

        assert result.file_name.startswith("docs/")
        stored = mock_backend.objects[result.file_name]
        assert stored["content_type"] == "text/plain"
        assert stored["metadata"]["original-name"] == "notes.txt"
        assert "upload-date" in stored["metadata"]

    @pytest.mark.asyncio
    async def test_folder_cannot_inject_unsafe_segments(self, storage, mock_backend):
        result = await storage.upload_file(
            InMemoryUpload(filename="a.png", content=b"x"), folder="my folder!/../x"
        )

        assert result.success is True
        assert re.fullmatch(r"[A-Za-z0-9._/-]+", result.file_name)
        assert result.file_name.startswith("my_folder_/x/")
        assert ".." not in result.file_name.split("/")
        assert result.file_name in mock_backend.objects

    @pytest.mark.asyncio
    async def test_reports_progress_after_upload(self, storage):
        progress: list[int] = []

        result = await storage.upload_file(_png(), on_progress=progress.append)

        assert result.success is True
        assert progress == [100]

    @pytest.mark.asyncio
    async def test_returns_failure_instead_of_raising(self, storage, mock_backend):
        mock_backend.fail_on["put_object"] = True
        progress: list[int] = []

        result = await storage.upload_file(_png(), on_progress=progress.append)

        assert result.success is False
        assert "put_object failed" in result.error
        assert result.error_code == "storage_error"
        assert result.file_name is None
        assert progress == []


class TestUploadImage:
    @pytest.mark.asyncio
    async def test_defaults_to_images_folder(self, storage):
        result = await storage.upload_image(_png())

        assert result.success is True
        assert result.file_name.startswith("images/")

    @pytest.mark.asyncio
    async def test_respects_explicit_folder(self, storage):
        result = await storage.upload_image(_png(), folder="avatars")

        assert result.file_name.startswith("avatars/")

    @pytest.mark.asyncio
    async def test_rejects_disallowed_type_without_network_call(
        self, storage, mock_backend
    ):
        upload = InMemoryUpload(
            filename="doc.pdf", content=b"%PDF", content_type="application/pdf"
        )

        result = await storage.upload_image(upload)

        assert result.success is False
        assert result.error_code == "invalid_file_type"
        assert "JPEG, PNG, GIF, and WebP" in result.error
        assert mock_backend.calls == []

    @pytest.mark.asyncio
    async def test_rejects_oversized_file_without_network_call(
        self, storage, mock_backend
    ):
        result = await storage.upload_image(_png(size=11 * MIB))

        assert result.success is False
        assert result.error_code == "file_too_large"
        assert result.error == "File too large. Maximum size is 10MB"
        assert mock_backend.calls == []

    @pytest.mark.asyncio
    async def test_custom_ceiling(self, storage, mock_backend):
        result = await storage.upload_image(_png(size=2 * MIB), max_size=MIB)

        assert result.success is False
        assert result.error == "File too large. Maximum size is 1MB"
        assert mock_backend.calls == []

    @pytest.mark.asyncio
    async def test_measures_source_without_size(self, storage, mock_backend):
        upload = _SizelessUpload(filename="big.png", content=b"0" * (11 * MIB))

        result = await storage.upload_image(upload)

        assert result.success is False
        assert result.error_code == "file_too_large"
        assert mock_backend.calls == []

    @pytest.mark.asyncio
    async def test_source_without_size_is_read_once(self, storage, mock_backend):
        upload = _SizelessUpload(filename="small.png", content=b"png-bytes")

        result = await storage.upload_image(upload)

        assert result.success is True
        assert result.size == len(b"png-bytes")
        assert upload.reads == 1
        assert mock_backend.objects[result.file_name]["body"] == b"png-bytes"

    @pytest.mark.asyncio
    async def test_accepts_file_at_ceiling(self, storage):
        result = await storage.upload_image(_png(size=10 * MIB))

        assert result.success is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content_type",
        ["image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"],
    )
    async def test_accepts_allowed_types(self, storage, content_type):
        result = await storage.upload_image(_png(content_type=content_type))

        assert result.success is True


class TestListing:
    @pytest.mark.asyncio
    async def test_lists_files_in_backend_order(self, storage, mock_backend):
        mock_backend.add_object("b.TXT", 3)
        mock_backend.add_object("a.png", 5)

        files = await storage.list_files()

        assert [f.name for f in files] == ["b.TXT", "a.png"]
        assert files[0].extension == "txt"
        assert files[1].size == 5
        assert files[1].url == "http://localhost:9000/test-bucket/a.png"

    @pytest.mark.asyncio
    async def test_passes_prefix_and_limit(self, storage, mock_backend):
        await storage.list_files(prefix="images/", limit=5)

        assert mock_backend.calls == [
            ("list_objects", {"prefix": "images/", "max_keys": 5})
        ]

    @pytest.mark.asyncio
    async def test_default_limit(self, storage, mock_backend):
        await storage.list_files()

        assert mock_backend.calls[0][1]["max_keys"] == 1000

    @pytest.mark.asyncio
    async def test_empty_bucket(self, storage):
        assert await storage.list_files() == []

    @pytest.mark.asyncio
    async def test_errors_become_empty_list(self, storage, mock_backend):
        mock_backend.add_object("a.png", 1)
        mock_backend.fail_on["list_objects"] = True

        assert await storage.list_files() == []

    @pytest.mark.asyncio
    async def test_list_images_filters_by_extension(self, storage, mock_backend):
        for key in ("a.png", "b.txt", "c.SVG"):
            mock_backend.add_object(key, 1)

        images = await storage.list_images()

        assert [f.name for f in images] == ["a.png", "c.SVG"]

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, storage, mock_backend):
        for key in ("Holiday.JPG", "work/holiday-notes.txt", "other.png"):
            mock_backend.add_object(key, 1)

        found = await storage.search_files("HOLIDAY")

        assert [f.name for f in found] == ["Holiday.JPG", "work/holiday-notes.txt"]

    @pytest.mark.asyncio
    async def test_search_respects_prefix(self, storage, mock_backend):
        for key in ("a/x1.txt", "b/x2.txt"):
            mock_backend.add_object(key, 1)

        found = await storage.search_files("x", prefix="b/")

        assert [f.name for f in found] == ["b/x2.txt"]

    @pytest.mark.asyncio
    async def test_search_returns_empty_on_error(self, storage, mock_backend):
        mock_backend.add_object("x.txt", 1)
        mock_backend.fail_on["list_objects"] = True

        assert await storage.search_files("x") == []


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_file(self, storage, mock_backend):
        mock_backend.add_object("a.png", 1)

        result = await storage.delete_file("a.png")

        assert result.success is True
        assert result.message == "File deleted successfully"
        assert "a.png" not in mock_backend.objects

    @pytest.mark.asyncio
    async def test_delete_failure_is_reported(self, storage, mock_backend):
        mock_backend.fail_on["delete_object"] = {"a.png"}

        result = await storage.delete_file("a.png")

        assert result.success is False
        assert result.key == "a.png"
        assert "delete_object failed" in result.error

    @pytest.mark.asyncio
    async def test_delete_image_alias(self, storage, mock_backend):
        mock_backend.add_object("images/a.png", 1)

        result = await storage.delete_image("images/a.png")

        assert result.success is True
        assert mock_backend.objects == {}

    @pytest.mark.asyncio
    async def test_batch_delete_partial_failure(self, storage, mock_backend):
        for key in ("a", "b", "c"):
            mock_backend.add_object(key, 1)
        mock_backend.fail_on["delete_object"] = {"b"}

        result = await storage.delete_multiple_files(["a", "b", "c"])

        assert result.success is False
        assert result.deleted == 2
        assert result.failed == 1
        assert [r.key for r in result.results] == ["a", "b", "c"]
        assert [r.success for r in result.results] == [True, False, True]
        assert list(mock_backend.objects) == ["b"]

    @pytest.mark.asyncio
    async def test_batch_delete_all_succeed(self, storage, mock_backend):
        result = await storage.delete_multiple_files(["x", "y"])

        assert result.success is True
        assert (result.deleted, result.failed) == (2, 0)

    @pytest.mark.asyncio
    async def test_batch_delete_empty(self, storage, mock_backend):
        result = await storage.delete_multiple_files([])

        assert result.success is True
        assert (result.deleted, result.failed, result.results) == (0, 0, [])
        assert mock_backend.calls == []

    @pytest.mark.asyncio
    async def test_batch_delete_with_concurrency_bound(
        self, storage_config, mock_backend
    ):
        client = ObjectStorageClient(
            storage_config, backend=mock_backend, delete_concurrency=2
        )
        keys = [f"k{i}" for i in range(7)]
        mock_backend.fail_on["delete_object"] = {"k3"}

        result = await client.delete_multiple_files(keys)

        assert (result.deleted, result.failed) == (6, 1)
        assert [r.key for r in result.results] == keys


class TestConnectionAndInfo:
    @pytest.mark.asyncio
    async def test_check_connection_ok(self, storage):
        assert await storage.check_connection() is True

    @pytest.mark.asyncio
    async def test_check_connection_swallows_errors(self, storage, mock_backend):
        mock_backend.fail_on["head_bucket"] = True

        assert await storage.check_connection() is False

    @pytest.mark.asyncio
    async def test_get_file_info(self, storage):
        uploaded = await storage.upload_file(
            InMemoryUpload(filename="a.txt", content=b"abc", content_type="text/plain")
        )

        info = await storage.get_file_info(uploaded.file_name)

        assert info.success is True
        assert info.content_type == "text/plain"
        assert info.content_length == 3
        assert info.metadata["original-name"] == "a.txt"
        assert info.last_modified is not None

    @pytest.mark.asyncio
    async def test_get_file_info_missing_key(self, storage):
        info = await storage.get_file_info("missing.txt")

        assert info.success is False
        assert "missing.txt" in info.error

    @pytest.mark.asyncio
    async def test_get_file_info_empty_error_message(self, storage, mock_backend):
        def head_object(*, key):
            raise StorageError("")

        mock_backend.head_object = head_object

        info = await storage.get_file_info("a.txt")

        assert info.success is False
        assert info.error == "Get file info failed"
        assert info.error_code == "storage_error"


class TestSignedUrl:
    @pytest.mark.asyncio
    async def test_returns_presigned_url(self, storage, mock_backend):
        url = await storage.get_signed_url("a.png", 60)

        assert url == "https://mock-s3/test-bucket/a.png?X-Amz-Expires=60"

    @pytest.mark.asyncio
    async def test_default_expiry(self, storage, mock_backend):
        await storage.get_signed_url("a.png")

        assert mock_backend.calls == [
            ("presign_download", {"key": "a.png", "expires_in": 3600})
        ]

    @pytest.mark.asyncio
    async def test_falls_back_to_public_url(self, storage, mock_backend):
        mock_backend.fail_on["presign_download"] = True

        url = await storage.get_signed_url("images/a.png")

        assert url == storage.get_public_url("images/a.png")


class TestStorageStats:
    @pytest.mark.asyncio
    async def test_empty_bucket(self, storage):
        stats = await storage.get_storage_stats()

        assert stats.success is True
        assert stats.total_files == 0
        assert stats.total_size == 0
        assert stats.total_size_mb == "0.00"
        assert stats.by_type == {}

    @pytest.mark.asyncio
    async def test_groups_by_extension(self, storage, mock_backend):
        mock_backend.add_object("a.png", MIB)
        mock_backend.add_object("b.PNG", MIB // 2)
        mock_backend.add_object("c.txt", 10)

        stats = await storage.get_storage_stats()

        assert stats.total_files == 3
        assert stats.total_size == MIB + MIB // 2 + 10
        assert stats.total_size_mb == "1.50"
        assert stats.by_type["png"].count == 2
        assert stats.by_type["png"].size == MIB + MIB // 2
        assert stats.by_type["txt"].count == 1


class TestFromSettings:
    def test_builds_client_from_settings(self, mock_backend):
        from app.common.config import Settings

        settings = Settings(
            S3_BUCKET="files",
            S3_ENDPOINT_URL="http://minio:9000",
            S3_ACCESS_KEY_ID="ak",
            S3_SECRET_ACCESS_KEY="sk",
            STORAGE_PRESIGN_EXPIRES_SECONDS=120,
        )

        client = ObjectStorageClient.from_settings(settings, backend=mock_backend)

        assert client.config.bucket == "files"
        assert client.signed_url_expires == 120
        assert client.get_public_url("k") == "http://minio:9000/files/k"
