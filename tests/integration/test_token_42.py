"""End-to-end integration test: one minted and mutated token through the
HTTP trigger, the coordinator, the render engine and storage.

Token 42 is stored in three shards, has one ``paletteChangeOne`` mutation,
and a seed hash whose 16-digit prefix is 1763114204158.
"""

from __future__ import annotations

import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from artifactforge.api import create_app
from artifactforge.config import ForgeConfig
from artifactforge.core.publisher import decode_pixel_history

from conftest import SEED_HASH_HEX, SEED_INT, FakeChain, seed_bytes

SHARDS = [
    b"function generate(seed, mutations, palette) {",
    b" canvasHistory = [[seed % 256, mutations.length, 0, 255]];",
    b" }",
]


@pytest.fixture
def token_chain() -> FakeChain:
    chain = FakeChain()
    chain.add_shards(SHARDS)
    for token_id in range(1, 43):
        chain.add_token(token_id, seed_bytes(SEED_HASH_HEX[2:]))
    chain.mutate(42, seed_bytes("00000000000000ff"), "paletteChangeOne")
    return chain


class TestToken42:
    """Trigger, poll, and fetch the published artifacts of token 42."""

    @pytest.fixture
    def setup(self, token_chain, sandbox, storage, make_pipeline):
        sandbox.gate = asyncio.Event()
        pipeline = make_pipeline(chain=token_chain)
        app = create_app(ForgeConfig(), pipeline=pipeline)
        with TestClient(app) as client:
            yield client, sandbox, storage, pipeline

    def test_end_to_end(self, setup):
        client, sandbox, storage, pipeline = setup

        ack = client.post("/trigger", json={"tokenId": 42, "event": "mutated"})
        assert ack.status_code == 202

        before = client.get("/status/42").json()
        assert before["exists"] is False or before["generatedAtMutationCount"] < 1
        assert client.get("/artifacts/42/raster").status_code == 202

        client.portal.call(sandbox.gate.set)
        for _ in range(500):
            after = client.get("/status/42").json()
            if after["exists"]:
                break
            time.sleep(0.01)
        assert after["generatedAtMutationCount"] == 1

        html = sandbox.contexts[0].html
        assert b"".join(SHARDS).decode("utf-8") in html
        assert f"var MINT_SEED = {SEED_INT};" in html
        assert "paletteChangeOne" in html

        history = decode_pixel_history(storage.stored("42.json.gz").data)
        assert history["tokenId"] == 42
        assert history["mutationCount"] == 1
        assert len(history["canvasHistory"]) >= 1

        fresh = client.get("/artifacts/42/vector", params={"m": 1})
        assert fresh.status_code == 200
        assert fresh.text.startswith("<svg")
        assert set(storage.keys()) >= {"42.json.gz", "42.png", "42.svg", "42.record.json"}
