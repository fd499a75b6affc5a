"""Tests for per-token job serialization and trigger coalescing."""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timezone

import pytest

from artifactforge.core.coordinator import RegenerationCoordinator
from artifactforge.core.errors import AssemblyError
from artifactforge.models.artifacts import PublishedRecord
from artifactforge.models.jobs import Disposition, JobOutcome, TriggerEvent, TriggerRequest

from conftest import seed_bytes


def minted(token_id: int) -> TriggerRequest:
    return TriggerRequest(token_id=token_id, event=TriggerEvent.MINTED)


def mutated(token_id: int) -> TriggerRequest:
    return TriggerRequest(token_id=token_id, event=TriggerEvent.MUTATED)


async def until(predicate, *, steps: int = 1000) -> None:
    for _ in range(steps):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def record_for(token_id: int, count: int) -> PublishedRecord:
    return PublishedRecord(
        token_id=token_id,
        pixel_history_url=f"memory://{token_id}.json.gz",
        raster_url=f"memory://{token_id}.png",
        vector_url=f"memory://{token_id}.svg",
        generated_at_mutation_count=count,
        generated_at=datetime.now(timezone.utc),
        width=1,
        height=1,
        frame_count=1,
    )


class GatedMaterializer:
    """Materializer that blocks every job until ``gate`` is set."""

    def __init__(self, error: Exception | None = None) -> None:
        self.gate = asyncio.Event()
        self.calls: Counter[int] = Counter()
        self.active: Counter[int] = Counter()
        self.max_active: Counter[int] = Counter()
        self.records: dict[int, PublishedRecord] = {}
        self.error = error

    async def materialize(self, token_id: int) -> PublishedRecord:
        self.calls[token_id] += 1
        self.active[token_id] += 1
        self.max_active[token_id] = max(self.max_active[token_id], self.active[token_id])
        try:
            await self.gate.wait()
            if self.error is not None:
                raise self.error
            record = record_for(token_id, self.calls[token_id])
            self.records[token_id] = record
            return record
        finally:
            self.active[token_id] -= 1

    async def read_record(self, token_id: int) -> PublishedRecord | None:
        return self.records.get(token_id)


class TestTrigger:
    @pytest.mark.asyncio
    async def test_trigger_returns_before_job_finishes(self):
        materializer = GatedMaterializer()
        coordinator = RegenerationCoordinator(materializer)
        ack = await coordinator.trigger(minted(3))
        assert ack.accepted is True
        assert ack.disposition == Disposition.QUEUED
        assert coordinator.is_running(3)
        materializer.gate.set()
        await coordinator.wait_for(3)
        assert not coordinator.is_running(3)
        assert coordinator.reports[0].outcome == JobOutcome.SUCCEEDED

    @pytest.mark.asyncio
    async def test_triggers_during_run_coalesce_into_one_follow_up(self):
        materializer = GatedMaterializer()
        coordinator = RegenerationCoordinator(materializer)
        first = await coordinator.trigger(minted(3))
        await until(lambda: materializer.calls[3] == 1)
        later = [await coordinator.trigger(mutated(3)) for _ in range(3)]
        assert first.disposition == Disposition.QUEUED
        assert all(ack.disposition == Disposition.COALESCED for ack in later)
        assert coordinator.snapshot()["pendingReruns"] == [3]
        materializer.gate.set()
        await coordinator.drain()
        assert materializer.calls[3] == 2
        assert materializer.max_active[3] == 1

    @pytest.mark.asyncio
    async def test_distinct_tokens_run_concurrently(self):
        materializer = GatedMaterializer()
        coordinator = RegenerationCoordinator(materializer)
        await coordinator.trigger(minted(1))
        await coordinator.trigger(minted(2))
        await until(lambda: materializer.calls[1] == 1 and materializer.calls[2] == 1)
        assert coordinator.snapshot()["running"] == [1, 2]
        materializer.gate.set()
        await coordinator.drain()
        assert coordinator.snapshot()["finished"] == 2


class TestLatestStateWins:
    @pytest.mark.asyncio
    async def test_mutation_during_render_republishes_latest(self, pipeline, chain, sandbox):
        sandbox.gate = asyncio.Event()
        coordinator = RegenerationCoordinator(pipeline)
        await coordinator.trigger(minted(1))
        await until(lambda: len(sandbox.contexts) == 1)

        chain.mutate(1, seed_bytes("0000000000000abc"), "paletteChangeOne")
        ack = await coordinator.trigger(mutated(1))
        assert ack.disposition == Disposition.COALESCED

        sandbox.gate.set()
        await coordinator.drain()
        status = await coordinator.status(1)
        assert status.exists is True
        assert status.generated_at_mutation_count == 1
        assert [report.mutation_count for report in coordinator.reports] == [0, 1]


class TestFailures:
    @pytest.mark.asyncio
    async def test_failed_job_reported(self):
        materializer = GatedMaterializer(error=AssemblyError("bad shard"))
        materializer.gate.set()
        coordinator = RegenerationCoordinator(materializer)
        await coordinator.trigger(minted(4))
        await coordinator.drain()
        report = coordinator.reports[0]
        assert report.outcome == JobOutcome.FAILED
        assert report.error == "bad shard"
        assert coordinator.snapshot()["failed"] == 1
        assert (await coordinator.status(4)).exists is False

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_kill_coordinator(self):
        materializer = GatedMaterializer(error=ValueError("boom"))
        materializer.gate.set()
        coordinator = RegenerationCoordinator(materializer)
        await coordinator.trigger(minted(4))
        await coordinator.drain()
        materializer.error = None
        await coordinator.trigger(minted(4))
        await coordinator.drain()
        assert [r.outcome for r in coordinator.reports] == [JobOutcome.FAILED, JobOutcome.SUCCEEDED]

    @pytest.mark.asyncio
    async def test_report_history_bounded(self):
        materializer = GatedMaterializer()
        materializer.gate.set()
        coordinator = RegenerationCoordinator(materializer, history_size=2)
        for token_id in (1, 2, 3):
            await coordinator.trigger(minted(token_id))
            await coordinator.drain()
        assert [r.token_id for r in coordinator.reports] == [2, 3]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stop_cancels_and_rejects(self):
        materializer = GatedMaterializer()
        coordinator = RegenerationCoordinator(materializer)
        await coordinator.trigger(minted(5))
        await until(lambda: materializer.calls[5] == 1)
        await coordinator.stop()
        assert not coordinator.is_running(5)
        assert coordinator.reports[0].error == "cancelled"
        with pytest.raises(RuntimeError):
            await coordinator.trigger(minted(5))

    @pytest.mark.asyncio
    async def test_stop_without_cancel_drains(self):
        materializer = GatedMaterializer()
        coordinator = RegenerationCoordinator(materializer)
        await coordinator.trigger(minted(5))
        materializer.gate.set()
        await coordinator.stop(cancel=False)
        assert coordinator.reports[0].outcome == JobOutcome.SUCCEEDED

    @pytest.mark.asyncio
    async def test_status_reflects_record(self):
        materializer = GatedMaterializer()
        materializer.gate.set()
        coordinator = RegenerationCoordinator(materializer)
        await coordinator.trigger(minted(6))
        await coordinator.wait_for(6)
        status = await coordinator.status(6)
        assert status.generated_at_mutation_count == 1
        assert status.last_modified is not None
