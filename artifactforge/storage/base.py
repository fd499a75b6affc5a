"""Storage backend capability shared by every object store."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


class StorageError(RuntimeError):
    """A single storage operation failed. Retried by the publisher."""


@runtime_checkable
class StorageBackend(Protocol):
    """Key/value object store with public URLs.

    Keys are deterministic per token and artifact kind, and ``upload``
    overwrites in place, so publishing the same token twice leaves exactly
    one object per key.
    """

    name: str

    async def upload(
        self, key: str, data: bytes, content_type: str, *, cache_control: str | None = None
    ) -> str:
        """Store ``data`` under ``key`` and return its public URL."""
        ...

    async def download(self, key: str) -> bytes | None:
        """Return the object body, or ``None`` if it does not exist."""
        ...

    async def exists(self, key: str) -> bool: ...

    async def delete(self, key: str) -> None: ...

    def public_url(self, key: str) -> str: ...
