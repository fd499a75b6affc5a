"""Pluggable object storage for published artifacts."""

from __future__ import annotations

from artifactforge.config import ForgeConfig
from artifactforge.storage.base import StorageBackend, StorageError
from artifactforge.storage.blob import BlobStorageBackend
from artifactforge.storage.memory import InMemoryStorageBackend
from artifactforge.storage.s3 import S3StorageBackend


def build_storage_backend(config: ForgeConfig) -> StorageBackend:
    """Factory selecting the backend named by ``config.storage_backend``."""
    kind = (config.storage_backend or "memory").lower()
    if kind == "memory":
        return InMemoryStorageBackend()

    if kind == "s3":
        if not config.s3_bucket:
            raise ValueError("s3 storage backend requires s3_bucket")
        public_url = config.s3_public_url
        if not public_url:
            if not config.s3_endpoint_url:
                raise ValueError("s3 storage backend requires s3_public_url or s3_endpoint_url")
            public_url = f"{config.s3_endpoint_url.rstrip('/')}/{config.s3_bucket}"
        return S3StorageBackend(
            config.s3_bucket,
            public_base_url=public_url,
            endpoint_url=config.s3_endpoint_url,
            region=config.s3_region,
            access_key_id=config.s3_access_key_id,
            secret_access_key=config.s3_secret_access_key,
        )

    if kind == "blob":
        if not config.blob_url or not config.blob_service_key:
            raise ValueError("blob storage backend requires blob_url and blob_service_key")
        return BlobStorageBackend(config.blob_url, config.blob_service_key, config.blob_bucket)

    raise ValueError(f"Unsupported storage backend: {config.storage_backend}")


__all__ = [
    "StorageBackend",
    "StorageError",
    "InMemoryStorageBackend",
    "S3StorageBackend",
    "BlobStorageBackend",
    "build_storage_backend",
]
