"""Publish a token's three artifacts plus its commit record.

Layout under the backend, all keyed by token id and overwritten on every
regeneration:

    {id}.json.gz       gzip JSON pixel history
    {id}.png           raster snapshot
    {id}.svg           vector trace
    {id}.record.json   PublishedRecord commit marker

The three artifacts upload concurrently and retry independently. The
record is written last and only when all three succeeded. Artifacts are
overwritten in place, so a failed republish can leave newer bytes beside an
older record; readers compare each body against the record digest before
trusting it.
"""

from __future__ import annotations

import asyncio
import gzip
import json
import logging
from collections.abc import Mapping
from datetime import datetime, timezone

from pydantic import ValidationError

from artifactforge.core.errors import UploadError
from artifactforge.core.hasher import canonical_json_bytes, content_digest
from artifactforge.core.retry import Sleep, retry_async
from artifactforge.models.artifacts import (
    ArtifactKind,
    GeneratedArtifact,
    PublishedRecord,
    VectorArtifact,
)
from artifactforge.storage.base import StorageBackend, StorageError

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIXES: dict[ArtifactKind, str] = {
    ArtifactKind.PIXELS: "json.gz",
    ArtifactKind.RASTER: "png",
    ArtifactKind.VECTOR: "svg",
}
CONTENT_TYPES: dict[ArtifactKind, str] = {
    ArtifactKind.PIXELS: "application/gzip",
    ArtifactKind.RASTER: "image/png",
    ArtifactKind.VECTOR: "image/svg+xml",
}
RECORD_SUFFIX = "record.json"

# Objects are overwritten in place, so the origin copy must revalidate.
OBJECT_CACHE_CONTROL = "public, max-age=60, must-revalidate"


def artifact_key(token_id: int, kind: ArtifactKind) -> str:
    return f"{token_id}.{ARTIFACT_SUFFIXES[kind]}"


def record_key(token_id: int) -> str:
    return f"{token_id}.{RECORD_SUFFIX}"


def encode_pixel_history(
    token_id: int,
    artifact: GeneratedArtifact,
    *,
    mutation_count: int,
    generated_at: datetime,
) -> bytes:
    """Serialize frame history in the viewer wire format, gzip-compressed."""
    payload = {
        "tokenId": token_id,
        "width": artifact.width,
        "height": artifact.height,
        "canvasHistory": [list(frame) for frame in artifact.frame_history],
        "generatedAt": generated_at.isoformat(),
        "mutationCount": mutation_count,
    }
    # mtime=0 keeps identical payloads byte-identical
    return gzip.compress(canonical_json_bytes(payload), mtime=0)


class StoragePublisher:
    """Uploads artifacts to a ``StorageBackend`` and commits the record.

    Parameters
    ----------
    backend:
        Target object store.
    upload_attempts:
        Attempts per artifact before it is reported as failed.
    retry_backoff:
        Initial delay between attempts, doubled each time.
    sleep:
        Injectable sleep for tests.
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        upload_attempts: int = 3,
        retry_backoff: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._attempts = upload_attempts
        self._backoff = retry_backoff
        self._sleep = sleep

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    async def publish(
        self,
        token_id: int,
        artifact: GeneratedArtifact,
        vector: VectorArtifact,
        *,
        mutation_count: int,
        completed: Mapping[str, str] | None = None,
        generated_at: datetime | None = None,
    ) -> PublishedRecord:
        """Upload whatever is not in ``completed`` and commit the record.

        Raises
        ------
        UploadError
            At least one artifact failed every attempt. Its ``completed``
            map carries the URLs that did succeed, for a resumed call.
        """
        generated_at = generated_at or datetime.now(timezone.utc)
        bodies = {
            ArtifactKind.PIXELS: encode_pixel_history(
                token_id, artifact, mutation_count=mutation_count, generated_at=generated_at
            ),
            ArtifactKind.RASTER: artifact.raster_bytes,
            ArtifactKind.VECTOR: vector.svg.encode("utf-8"),
        }
        urls: dict[str, str] = dict(completed or {})
        pending = [kind for kind in ArtifactKind if kind.value not in urls]

        results = await asyncio.gather(
            *(self._upload(token_id, kind, bodies[kind]) for kind in pending),
            return_exceptions=True,
        )
        failed: list[str] = []
        for kind, result in zip(pending, results):
            if isinstance(result, StorageError):
                failed.append(kind.value)
                logger.warning("Token %d: %s upload failed: %s", token_id, kind.value, result)
            elif isinstance(result, BaseException):
                raise result
            else:
                urls[kind.value] = result

        if failed:
            raise UploadError(
                f"Token {token_id}: upload failed for {', '.join(failed)}",
                completed=urls,
                failed=failed,
            )

        record = PublishedRecord(
            token_id=token_id,
            pixel_history_url=urls[ArtifactKind.PIXELS.value],
            raster_url=urls[ArtifactKind.RASTER.value],
            vector_url=urls[ArtifactKind.VECTOR.value],
            generated_at_mutation_count=mutation_count,
            generated_at=generated_at,
            width=artifact.width,
            height=artifact.height,
            frame_count=artifact.frame_count,
            digests={kind.value: content_digest(body) for kind, body in bodies.items()},
        )
        await self._commit(record)
        logger.info(
            "Published token %d at mutation count %d (%d frames)",
            token_id, mutation_count, record.frame_count,
        )
        return record

    async def _upload(self, token_id: int, kind: ArtifactKind, body: bytes) -> str:
        key = artifact_key(token_id, kind)
        return await retry_async(
            lambda: self._backend.upload(
                key, body, CONTENT_TYPES[kind], cache_control=OBJECT_CACHE_CONTROL
            ),
            attempts=self._attempts,
            backoff=self._backoff,
            retry_on=StorageError,
            description=f"upload {key}",
            sleep=self._sleep,
        )

    async def _commit(self, record: PublishedRecord) -> None:
        key = record_key(record.token_id)
        body = record.model_dump_json().encode("utf-8")
        try:
            await retry_async(
                lambda: self._backend.upload(
                    key, body, "application/json", cache_control="no-store"
                ),
                attempts=self._attempts,
                backoff=self._backoff,
                retry_on=StorageError,
                description=f"commit {key}",
                sleep=self._sleep,
            )
        except StorageError as exc:
            completed = {kind.value: record.url_for(kind) for kind in ArtifactKind}
            raise UploadError(
                f"Token {record.token_id}: commit record failed: {exc}",
                completed=completed,
                failed=[],
            ) from exc

    async def read_record(self, token_id: int) -> PublishedRecord | None:
        """Return the committed record, or ``None`` if never published."""
        body = await self._backend.download(record_key(token_id))
        if body is None:
            return None
        try:
            return PublishedRecord.model_validate_json(body)
        except ValidationError:
            logger.error("Token %d: unreadable commit record", token_id, exc_info=True)
            return None

    async def read_artifact(self, token_id: int, kind: ArtifactKind) -> bytes | None:
        return await self._backend.download(artifact_key(token_id, kind))


def decode_pixel_history(body: bytes) -> dict:
    """Inverse of ``encode_pixel_history`` for viewers and tools."""
    return json.loads(gzip.decompress(body))
