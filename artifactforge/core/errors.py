"""Error taxonomy for the materialization pipeline.

Each class carries a ``retryable`` flag read by the regeneration
coordinator. Library errors (httpx, botocore, Pillow, eth-abi) are
translated into these at module boundaries and chained with ``from``.
"""

from __future__ import annotations


class MaterializationError(RuntimeError):
    """Base class for every pipeline failure."""

    retryable: bool = False


class TransientFetchError(MaterializationError):
    """A chain read failed (network error, timeout, RPC rate limit)."""

    retryable = True


class AssemblyError(MaterializationError):
    """Shards or token data are structurally unusable. Indicates corrupted
    or misconfigured on-chain data; retrying will not help.
    """


class RenderTimeoutError(MaterializationError):
    """The generative script did not signal completion before the deadline.

    Fatal for the session; the job may be re-run with a fresh session.
    """

    retryable = True


class SandboxError(MaterializationError):
    """The sandbox crashed or could not load the harness document."""

    retryable = True


class ExtractionValidationError(MaterializationError):
    """Render output failed structural validation. Indicates a generative
    script bug; never retried.
    """


class VectorTraceError(MaterializationError):
    """Tracing a raster failed. Retried locally without re-rendering."""

    retryable = True


class UploadError(MaterializationError):
    """One or more artifact uploads failed after per-artifact retries.

    Parameters
    ----------
    completed:
        Artifact kind value -> public URL for every upload that succeeded.
        Passed back into ``StoragePublisher.publish`` to resume.
    failed:
        Artifact kind values that still need uploading.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        *,
        completed: dict[str, str] | None = None,
        failed: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.completed = dict(completed or {})
        self.failed = list(failed or [])


class PollExhausted(MaterializationError):
    """The freshness poll budget ran out. Not a system failure: the
    artifact is still processing and the caller should say so.
    """
