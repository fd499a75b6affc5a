"""Consumer side of the regeneration protocol.

After sending a mutation transaction a consumer knows the mutation count it
observed beforehand. The artifact is fresh only once the published record
reports at least that count plus one. ``exists`` and timestamps are never
enough: a record regenerated for an unrelated reason can be newer without
reflecting the new mutation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

import httpx

from artifactforge.core.errors import PollExhausted, TransientFetchError
from artifactforge.core.retry import Sleep
from artifactforge.models.jobs import GenerationStatus, TriggerAck, TriggerEvent, TriggerRequest

logger = logging.getLogger(__name__)

StatusSource = Callable[[int], Awaitable[GenerationStatus]]


def expected_mutation_count(observed_before: int) -> int:
    """Mutation count a fresh artifact must reach after one mutation."""
    return observed_before + 1


def is_fresh(status: GenerationStatus, expected: int) -> bool:
    return (
        status.exists
        and status.generated_at_mutation_count is not None
        and status.generated_at_mutation_count >= expected
    )


class FreshnessOutcome(str, Enum):
    FRESH = "fresh"
    STILL_PROCESSING = "still_processing"


@dataclass(frozen=True)
class PollResult:
    outcome: FreshnessOutcome
    attempts: int
    status: GenerationStatus | None


class FreshnessPoller:
    """Polls a status source on a fixed interval with a bounded budget.

    Parameters
    ----------
    fetch_status:
        Coroutine function returning the current ``GenerationStatus``.
    interval:
        Seconds between polls.
    max_attempts:
        Poll budget; when spent the outcome is ``STILL_PROCESSING``.
    """

    def __init__(
        self,
        fetch_status: StatusSource,
        *,
        interval: float = 5.0,
        max_attempts: int = 24,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._fetch_status = fetch_status
        self._interval = interval
        self._max_attempts = max_attempts
        self._sleep = sleep

    async def poll(self, token_id: int, expected: int) -> PollResult:
        last: GenerationStatus | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                last = await self._fetch_status(token_id)
            except TransientFetchError as exc:
                logger.warning("Status poll %d for token %d failed: %s", attempt, token_id, exc)
            else:
                if is_fresh(last, expected):
                    return PollResult(FreshnessOutcome.FRESH, attempt, last)
            if attempt < self._max_attempts:
                await self._sleep(self._interval)
        return PollResult(FreshnessOutcome.STILL_PROCESSING, self._max_attempts, last)

    async def require_fresh(self, token_id: int, expected: int) -> GenerationStatus:
        """Like ``poll`` but raises ``PollExhausted`` instead of returning."""
        result = await self.poll(token_id, expected)
        if result.outcome is not FreshnessOutcome.FRESH or result.status is None:
            raise PollExhausted(
                f"Token {token_id} still processing after {result.attempts} polls "
                f"(expected mutation count {expected})"
            )
        return result.status


class StatusClient:
    """HTTP client for a remote coordinator's trigger and status endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_status(self, token_id: int) -> GenerationStatus:
        try:
            response = await self._client.get(f"{self._base_url}/status/{token_id}")
            response.raise_for_status()
            return GenerationStatus.model_validate(response.json())
        except httpx.HTTPError as exc:
            raise TransientFetchError(f"Status request for token {token_id} failed: {exc}") from exc

    async def trigger(self, token_id: int, event: TriggerEvent) -> TriggerAck:
        request = TriggerRequest(token_id=token_id, event=event)
        try:
            response = await self._client.post(
                f"{self._base_url}/trigger", json=request.model_dump(mode="json", by_alias=True)
            )
            response.raise_for_status()
            return TriggerAck.model_validate(response.json())
        except httpx.HTTPError as exc:
            raise TransientFetchError(f"Trigger for token {token_id} failed: {exc}") from exc
