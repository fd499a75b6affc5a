"""In-process storage backend for development and tests."""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass


@dataclass(frozen=True)
class StoredObject:
    data: bytes
    content_type: str
    cache_control: str | None


class InMemoryStorageBackend:
    """Dictionary-backed store with the same overwrite semantics as S3.

    ``upload_counts`` records how many times each key was written, which
    lets callers confirm that a resumed publish skipped finished uploads.
    """

    name = "memory"

    def __init__(self, base_url: str = "memory://artifacts") -> None:
        self._base_url = base_url.rstrip("/")
        self._objects: dict[str, StoredObject] = {}
        self._lock = asyncio.Lock()
        self.upload_counts: Counter[str] = Counter()

    async def upload(
        self, key: str, data: bytes, content_type: str, *, cache_control: str | None = None
    ) -> str:
        async with self._lock:
            self._objects[key] = StoredObject(bytes(data), content_type, cache_control)
            self.upload_counts[key] += 1
        return self.public_url(key)

    async def download(self, key: str) -> bytes | None:
        stored = self._objects.get(key)
        return stored.data if stored is not None else None

    async def exists(self, key: str) -> bool:
        return key in self._objects

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._objects.pop(key, None)

    def public_url(self, key: str) -> str:
        return f"{self._base_url}/{key}"

    def keys(self) -> list[str]:
        return sorted(self._objects)

    def stored(self, key: str) -> StoredObject | None:
        return self._objects.get(key)
