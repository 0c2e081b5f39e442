#!/usr/bin/env python3
"""Check that the configured credentials can reach the bucket.

Usage:
  .venv/bin/python scripts/check_storage_access.py
  .venv/bin/python scripts/check_storage_access.py --limit 3 --skip-http

Lists a few objects, then tries to fetch the first one through its public
URL. If the public URL is blocked, a presigned URL is generated and tried
instead, which tells whether the bucket needs a public-read policy.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import requests  # noqa: E402

from app.app.services.object_storage import ObjectStorageClient  # noqa: E402
from app.common.config import StorageNotConfiguredError, get_settings  # noqa: E402


def _head_ok(url: str, timeout: float) -> tuple[bool, str]:
    try:
        response = requests.head(url, timeout=timeout)
    except requests.RequestException as exc:
        return False, f"request failed: {exc}"
    return response.ok, str(response.status_code)


async def check_access(
    storage: ObjectStorageClient,
    *,
    limit: int = 10,
    check_http: bool = True,
    timeout: float = 10.0,
) -> int:
    """Print a report and return a process exit code."""
    bucket = storage.config.bucket
    print(f"Checking bucket '{bucket}' at {storage.config.endpoint}")

    if not await storage.check_connection():
        print(f"ERROR: bucket '{bucket}' is not accessible with these credentials")
        return 2

    files = await storage.list_files(limit=limit)
    if not files:
        print(f"WARNING: no objects found in '{bucket}' (or the bucket is empty)")
        return 0

    print(f"OK: found {len(files)} objects")
    for index, item in enumerate(files[:3], start=1):
        print(f"  {index}. {item.name} ({item.size / 1024:.1f} KB)")

    if not check_http:
        return 0

    first = files[0]
    public_ok, detail = _head_ok(first.url, timeout)
    print(f"Public URL: {first.url} -> {detail}")
    if public_ok:
        print("OK: bucket allows public reads")
        return 0

    print("WARNING: public URL blocked, the bucket needs a public-read policy")
    signed_url = await storage.get_signed_url(first.name)
    signed_ok, detail = _head_ok(signed_url, timeout)
    print(f"Signed URL -> {detail}")
    if signed_ok:
        print("OK: objects are reachable through presigned URLs")
        return 0
    print("ERROR: presigned URLs are blocked as well")
    return 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Check access to the file bucket")
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of objects to list (default: 10)",
    )
    parser.add_argument(
        "--skip-http",
        action="store_true",
        help="Only use the S3 API; do not fetch object URLs",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Timeout in seconds for URL checks (default: 10)",
    )
    args = parser.parse_args()

    try:
        storage = ObjectStorageClient.from_settings(get_settings())
    except StorageNotConfiguredError as exc:
        print(f"ERROR: {exc}")
        sys.exit(2)

    code = asyncio.run(
        check_access(
            storage,
            limit=args.limit,
            check_http=not args.skip_http,
            timeout=args.timeout,
        )
    )
    sys.exit(code)


if __name__ == "__main__":
    main()
