"""FastAPI application for the regeneration and serving endpoints.

Routes
------
POST /trigger                   enqueue a regeneration job (202)
GET  /status/{token_id}         published mutation count, never cached
GET  /artifacts/{token_id}/{kind}
                                artifact bytes with request-shape caching
GET  /health                    service, backend and job counters
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from artifactforge import __version__
from artifactforge.config import ForgeConfig
from artifactforge.config import config as default_config
from artifactforge.core.cache_policy import (
    NO_STORE,
    REFRESH_PARAM,
    STATE_PARAM,
    select_cache_control,
)
from artifactforge.core.coordinator import RegenerationCoordinator
from artifactforge.core.hasher import content_digest
from artifactforge.core.pipeline import MaterializationPipeline
from artifactforge.core.production_guard import enforce_production_constraints
from artifactforge.core.publisher import CONTENT_TYPES
from artifactforge.models.artifacts import ArtifactKind
from artifactforge.models.jobs import GenerationStatus, TriggerAck, TriggerRequest

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 60


def _not_ready(token_id: int, kind: ArtifactKind) -> JSONResponse:
    return JSONResponse(
        status_code=202,
        content={"status": "not_ready", "tokenId": token_id, "kind": kind.value},
        headers={"Retry-After": str(RETRY_AFTER_SECONDS), "Cache-Control": NO_STORE},
    )


def _requested_state(request: Request) -> int | None:
    raw = request.query_params.get(STATE_PARAM)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"'{STATE_PARAM}' must be an integer") from exc
    if value < 0:
        raise HTTPException(status_code=422, detail=f"'{STATE_PARAM}' must not be negative")
    return value


def create_app(
    config: ForgeConfig | None = None,
    *,
    pipeline: MaterializationPipeline | None = None,
    coordinator: RegenerationCoordinator | None = None,
) -> FastAPI:
    """Build the service app. Collaborators not passed in are built from config."""
    cfg = config or default_config
    enforce_production_constraints(cfg)
    owns_pipeline = pipeline is None
    pipeline_obj = pipeline or MaterializationPipeline.from_config(cfg)
    coordinator_obj = coordinator or RegenerationCoordinator(pipeline_obj)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("artifactforge %s serving network %s", __version__, cfg.network)
        try:
            yield
        finally:
            await coordinator_obj.stop()
            if owns_pipeline:
                await pipeline_obj.aclose()

    app = FastAPI(title="artifactforge", version=__version__, lifespan=lifespan)
    app.state.config = cfg
    app.state.pipeline = pipeline_obj
    app.state.coordinator = coordinator_obj

    @app.post("/trigger", status_code=202, response_model=TriggerAck)
    async def trigger(request: TriggerRequest) -> TriggerAck:
        try:
            return await coordinator_obj.trigger(request)
        except RuntimeError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc

    @app.get("/status/{token_id}", response_model=GenerationStatus)
    async def status(token_id: int, response: Response) -> GenerationStatus:
        response.headers["Cache-Control"] = NO_STORE
        return await coordinator_obj.status(token_id)

    @app.get("/artifacts/{token_id}/{kind}")
    async def artifact(token_id: int, kind: ArtifactKind, request: Request) -> Response:
        requested = _requested_state(request)
        record = await pipeline_obj.read_record(token_id)
        if record is None:
            return _not_ready(token_id, kind)
        current = record.generated_at_mutation_count
        if requested is not None and requested > current:
            return _not_ready(token_id, kind)
        if requested is not None and requested < current and REFRESH_PARAM not in request.query_params:
            return JSONResponse(
                status_code=410,
                content={"status": "superseded", "tokenId": token_id, "mutationCount": current},
                headers={"Cache-Control": NO_STORE},
            )

        body = await pipeline_obj.publisher.read_artifact(token_id, kind)
        if body is None:
            logger.error("Token %d: record present but %s object missing", token_id, kind.value)
            return _not_ready(token_id, kind)
        # Objects are overwritten before the record; a failed republish can leave
        # newer bytes under an older record, which must never be served as that state.
        if content_digest(body) != record.digests.get(kind.value):
            logger.warning(
                "Token %d: stored %s does not match record at mutation %d",
                token_id, kind.value, current,
            )
            return _not_ready(token_id, kind)
        headers = {
            "Cache-Control": select_cache_control(
                request.query_params,
                max_age=cfg.short_cache_max_age,
                stale_while_revalidate=cfg.stale_while_revalidate,
            ),
            "X-Mutation-Count": str(current),
        }
        return Response(content=body, media_type=CONTENT_TYPES[kind], headers=headers)

    @app.get("/health")
    async def health() -> dict:
        pool = getattr(pipeline_obj.engine, "pool", None)
        return {
            "status": "ok",
            "service": "artifactforge",
            "version": __version__,
            "network": cfg.network,
            "storage": getattr(pipeline_obj.publisher.backend, "name", "unknown"),
            "renderPool": (
                {"size": pool.size, "occupied": pool.occupied} if pool is not None else None
            ),
            "jobs": coordinator_obj.snapshot(),
        }

    return app
