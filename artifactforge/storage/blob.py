"""Managed blob store backend speaking the Supabase Storage REST API."""

from __future__ import annotations

import logging

import httpx

from artifactforge.storage.base import StorageError

logger = logging.getLogger(__name__)


class BlobStorageBackend:
    """Objects live at ``{base_url}/storage/v1/object/{bucket}/{key}``.

    The bucket is expected to be public; reads go through
    ``/storage/v1/object/public/...`` without credentials.

    Parameters
    ----------
    base_url:
        Project URL of the blob service.
    service_key:
        Service role key, sent as bearer token and ``apikey``.
    bucket:
        Target bucket.
    client:
        Optional shared ``httpx.AsyncClient``.
    """

    name = "blob"

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._bucket = bucket
        self._headers = {"Authorization": f"Bearer {service_key}", "apikey": service_key}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _object_url(self, key: str) -> str:
        return f"{self._base_url}/storage/v1/object/{self._bucket}/{key}"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def upload(
        self, key: str, data: bytes, content_type: str, *, cache_control: str | None = None
    ) -> str:
        headers = {**self._headers, "Content-Type": content_type, "x-upsert": "true"}
        if cache_control:
            headers["Cache-Control"] = cache_control
        try:
            response = await self._client.post(self._object_url(key), content=data, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError(f"Blob upload of {key} failed: {exc}") from exc
        return self.public_url(key)

    async def download(self, key: str) -> bytes | None:
        try:
            response = await self._client.get(self._object_url(key), headers=self._headers)
        except httpx.HTTPError as exc:
            raise StorageError(f"Blob download of {key} failed: {exc}") from exc
        # The storage API reports missing objects as 400 or 404
        if response.status_code in (400, 404):
            return None
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StorageError(f"Blob download of {key} failed: {exc}") from exc
        return response.content

    async def exists(self, key: str) -> bool:
        try:
            response = await self._client.head(self._object_url(key), headers=self._headers)
        except httpx.HTTPError as exc:
            raise StorageError(f"Blob head of {key} failed: {exc}") from exc
        if response.status_code in (400, 404):
            return False
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StorageError(f"Blob head of {key} failed: {exc}") from exc
        return True

    async def delete(self, key: str) -> None:
        url = f"{self._base_url}/storage/v1/object/{self._bucket}"
        try:
            response = await self._client.request(
                "DELETE", url, json={"prefixes": [key]}, headers=self._headers
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError(f"Blob delete of {key} failed: {exc}") from exc

    def public_url(self, key: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{self._bucket}/{key}"
