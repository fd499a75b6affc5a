"""Regeneration coordinator: accepts triggers and serializes jobs per token.

``trigger`` only enqueues. At most one job per token runs at a time; a
trigger for a token whose job is already running is coalesced into exactly
one follow-up run, started after the current one finishes. The follow-up
re-reads chain state, so the last publish always reflects the latest
mutation regardless of which trigger arrived first.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Protocol

from artifactforge.core.errors import MaterializationError
from artifactforge.models.artifacts import PublishedRecord
from artifactforge.models.jobs import (
    Disposition,
    GenerationStatus,
    JobOutcome,
    JobReport,
    TriggerAck,
    TriggerRequest,
)

logger = logging.getLogger(__name__)


class Materializer(Protocol):
    async def materialize(self, token_id: int) -> PublishedRecord: ...

    async def read_record(self, token_id: int) -> PublishedRecord | None: ...


class RegenerationCoordinator:
    """Runs materialization jobs in the background.

    Parameters
    ----------
    pipeline:
        Anything with ``materialize`` and ``read_record``.
    history_size:
        Number of finished job reports retained for inspection.
    """

    def __init__(self, pipeline: Materializer, *, history_size: int = 100) -> None:
        self._pipeline = pipeline
        self._running: dict[int, asyncio.Task[None]] = {}
        self._rerun: set[int] = set()
        self._reports: deque[JobReport] = deque(maxlen=history_size)
        self._accepting = True

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def trigger(self, request: TriggerRequest) -> TriggerAck:
        """Accept a regeneration request and return without waiting."""
        if not self._accepting:
            raise RuntimeError("Coordinator is shutting down")
        token_id = request.token_id
        if token_id in self._running:
            self._rerun.add(token_id)
            disposition = Disposition.COALESCED
        else:
            self._running[token_id] = asyncio.create_task(
                self._run_token(token_id), name=f"materialize-{token_id}"
            )
            disposition = Disposition.QUEUED
        logger.info("Trigger %s for token %d: %s", request.event.value, token_id, disposition.value)
        return TriggerAck(token_id=token_id, event=request.event, disposition=disposition)

    async def _run_token(self, token_id: int) -> None:
        try:
            while True:
                self._rerun.discard(token_id)
                await self._run_once(token_id)
                if token_id not in self._rerun:
                    return
                logger.info("Token %d: running coalesced follow-up job", token_id)
        finally:
            self._running.pop(token_id, None)

    async def _run_once(self, token_id: int) -> None:
        started = time.monotonic()
        try:
            record = await self._pipeline.materialize(token_id)
        except MaterializationError as exc:
            if exc.retryable:
                logger.error("Token %d: job failed after retries: %s", token_id, exc)
            else:
                logger.exception("Token %d: job failed permanently", token_id)
            self._report(token_id, JobOutcome.FAILED, started, error=str(exc))
        except asyncio.CancelledError:
            self._report(token_id, JobOutcome.FAILED, started, error="cancelled")
            raise
        except Exception as exc:
            logger.exception("Token %d: unexpected job failure", token_id)
            self._report(token_id, JobOutcome.FAILED, started, error=repr(exc))
        else:
            self._report(
                token_id,
                JobOutcome.SUCCEEDED,
                started,
                mutation_count=record.generated_at_mutation_count,
            )

    def _report(
        self,
        token_id: int,
        outcome: JobOutcome,
        started: float,
        *,
        mutation_count: int | None = None,
        error: str | None = None,
    ) -> None:
        self._reports.append(
            JobReport(
                token_id=token_id,
                outcome=outcome,
                duration_seconds=round(time.monotonic() - started, 3),
                mutation_count=mutation_count,
                error=error,
                finished_at=datetime.now(timezone.utc),
            )
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def status(self, token_id: int) -> GenerationStatus:
        """Published state of ``token_id``, read from its commit record."""
        record = await self._pipeline.read_record(token_id)
        if record is None:
            return GenerationStatus(token_id=token_id, exists=False)
        return GenerationStatus(
            token_id=token_id,
            exists=True,
            generated_at_mutation_count=record.generated_at_mutation_count,
            last_modified=record.generated_at,
        )

    def is_running(self, token_id: int) -> bool:
        return token_id in self._running

    @property
    def reports(self) -> list[JobReport]:
        return list(self._reports)

    def snapshot(self) -> dict[str, Any]:
        """Job counters for health reporting."""
        failed = sum(1 for r in self._reports if r.outcome is JobOutcome.FAILED)
        return {
            "running": sorted(self._running),
            "pendingReruns": sorted(self._rerun),
            "finished": len(self._reports),
            "failed": failed,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_for(self, token_id: int) -> None:
        """Wait until no job (including follow-ups) runs for ``token_id``."""
        task = self._running.get(token_id)
        if task is not None:
            await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for every running job, including coalesced follow-ups."""
        while self._running:
            await asyncio.gather(*list(self._running.values()), return_exceptions=True)

    async def stop(self, *, cancel: bool = True) -> None:
        """Stop accepting triggers; cancel or drain in-flight jobs."""
        self._accepting = False
        if cancel:
            for task in list(self._running.values()):
                task.cancel()
        await self.drain()
