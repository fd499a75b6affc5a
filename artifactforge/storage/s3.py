"""S3-compatible storage backend (AWS S3, Cloudflare R2, MinIO).

boto3 is synchronous, so every call is moved to a worker thread with
``asyncio.to_thread``. The client is created once and shared.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from artifactforge.storage.base import StorageError

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_missing(exc: ClientError) -> bool:
    return str(exc.response.get("Error", {}).get("Code", "")) in _MISSING_CODES


class S3StorageBackend:
    """Stores objects in one bucket and serves them from a public base URL.

    Parameters
    ----------
    bucket:
        Target bucket.
    public_base_url:
        URL prefix under which objects are publicly readable (a CDN domain
        or the provider's public bucket URL).
    client:
        Optional pre-built boto3 S3 client.
    endpoint_url, region, access_key_id, secret_access_key:
        Used to build a client when ``client`` is omitted.
    """

    name = "s3"

    def __init__(
        self,
        bucket: str,
        *,
        public_base_url: str,
        client: Any = None,
        endpoint_url: str | None = None,
        region: str = "auto",
        access_key_id: str = "",
        secret_access_key: str = "",
    ) -> None:
        self._bucket = bucket
        self._public_base_url = public_base_url.rstrip("/")
        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
        )

    async def upload(
        self, key: str, data: bytes, content_type: str, *, cache_control: str | None = None
    ) -> str:
        extra: dict[str, Any] = {"ContentType": content_type}
        if cache_control:
            extra["CacheControl"] = cache_control
        try:
            await asyncio.to_thread(
                self._client.put_object, Bucket=self._bucket, Key=key, Body=data, **extra
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 upload of {key} failed: {exc}") from exc
        return self.public_url(key)

    async def download(self, key: str) -> bytes | None:
        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=self._bucket, Key=key
            )
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as exc:
            if _is_missing(exc):
                return None
            raise StorageError(f"S3 download of {key} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 download of {key} failed: {exc}") from exc

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self._client.head_object, Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                return False
            raise StorageError(f"S3 head of {key} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 head of {key} failed: {exc}") from exc
        return True

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 delete of {key} failed: {exc}") from exc

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}/{key}"
