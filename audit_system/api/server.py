"""
FastAPI trigger surface for the audit pipeline.

Endpoints:
- POST /api/audit/stage{1..4}   run one stage for a product
- POST /api/audit/runs          queue a background run
- GET  /api/audit/runs/{id}     run status
- POST /api/audit/worker        one claim-and-advance worker step
- GET  /api/cron/refresh        scheduled refresh sweep (platform header or Bearer secret)
- POST /api/audit/integrity     read-only freshness check
- GET  /api/health

Usage:
    uvicorn audit_system.api.server:build_default_app --factory --port 8000
"""

import secrets
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from audit_system import __version__
from audit_system.config.logging import configure_logging
from audit_system.config.settings import settings as default_settings
from audit_system.data_management.schemas import AuditRun, StageId
from audit_system.errors import AuditError, ErrorCode, PersistenceError, http_status_for
from audit_system.services import AuditServices
from audit_system.utils.logging import (
    bind_invocation_context,
    clear_invocation_context,
    configure_structured_logging,
    get_structured_logger,
)

PLATFORM_CRON_HEADERS = ("x-vercel-cron", "x-cron-trigger")

logger = get_structured_logger("api")


class StageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="productId", min_length=1)
    force_redo: bool = Field(default=False, alias="forceRedo")


class IntegrityRequest(BaseModel):
    slug: str = Field(..., min_length=1)


def run_to_response(run: AuditRun) -> dict[str, Any]:
    return {
        "runId": run.run_id,
        "productId": run.product_id,
        "status": run.status.value,
        "cursor": run.cursor.value if run.cursor else None,
        "stageStates": {k: v.value for k, v in run.stage_states.items()},
        "progress": run.progress,
        "forceRedo": run.force_redo,
        "attemptCount": run.attempt_count,
        "error": run.error,
        "createdAt": run.created_at.isoformat(),
        "updatedAt": run.updated_at.isoformat(),
        "finishedAt": run.finished_at.isoformat() if run.finished_at else None,
    }


def error_response(code: ErrorCode, detail: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=http_status_for(code),
        content={"ok": False, "error": code.value, "detail": detail},
    )


def is_cron_authorized(request: Request, cron_secret: Optional[str]) -> bool:
    """Platform cron header, or a Bearer token matching the shared secret."""
    for header in PLATFORM_CRON_HEADERS:
        if request.headers.get(header) == "1":
            return True

    if not cron_secret:
        return False
    auth = request.headers.get("authorization", "")
    scheme, _, token = auth.partition(" ")
    return scheme.lower() == "bearer" and secrets.compare_digest(token, cron_secret)


def create_app(services: Optional[AuditServices] = None) -> FastAPI:
    """Build the app; production wiring comes from the default Settings."""
    services = services or AuditServices.from_settings(default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.close()

    app = FastAPI(
        title="Audit System API",
        description="Staged product-claim audit pipeline",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    @app.middleware("http")
    async def correlation_middleware(request: Request, call_next):
        correlation_id = bind_invocation_context(
            request.headers.get("x-correlation-id"),
            path=request.url.path,
        )
        try:
            response = await call_next(request)
        finally:
            clear_invocation_context("path")
        response.headers["x-correlation-id"] = correlation_id
        return response

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error("persistence_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "INFRASTRUCTURE", "detail": str(exc)},
        )

    @app.exception_handler(AuditError)
    async def audit_error_handler(request: Request, exc: AuditError):
        return error_response(exc.code, str(exc))

    async def run_stage(stage: StageId, req: StageRequest) -> JSONResponse:
        outcome = await services.orchestrator.run_stage(
            req.product_id, stage, force_redo=req.force_redo
        )
        return JSONResponse(status_code=outcome.http_status, content=outcome.to_response())

    @app.post("/api/audit/stage1")
    async def stage1(req: StageRequest) -> JSONResponse:
        return await run_stage(StageId.CLAIM_PROFILE, req)

    @app.post("/api/audit/stage2")
    async def stage2(req: StageRequest) -> JSONResponse:
        return await run_stage(StageId.EVIDENCE, req)

    @app.post("/api/audit/stage3")
    async def stage3(req: StageRequest) -> JSONResponse:
        return await run_stage(StageId.DISCREPANCIES, req)

    @app.post("/api/audit/stage4")
    async def stage4(req: StageRequest) -> JSONResponse:
        return await run_stage(StageId.ASSESSMENT, req)

    @app.post("/api/audit/runs")
    async def enqueue_run(req: StageRequest) -> dict[str, Any]:
        run = await services.worker.enqueue(req.product_id, force_redo=req.force_redo)
        return {"ok": True, "run": run_to_response(run)}

    @app.get("/api/audit/runs/{run_id}")
    async def get_run(run_id: str):
        run = await services.worker.get_run(run_id)
        if run is None:
            return error_response(ErrorCode.NOT_FOUND, f"run {run_id} not found")
        return {"ok": True, "run": run_to_response(run)}

    @app.post("/api/audit/runs/{run_id}/retry")
    async def retry_run(run_id: str) -> dict[str, Any]:
        run = await services.worker.retry(run_id)
        return {"ok": True, "run": run_to_response(run)}

    @app.post("/api/audit/worker")
    async def worker_step():
        await services.worker.release_stale_claims()
        result = await services.worker.process_next()
        if result.idle:
            return {"ok": True, "idle": True}

        body: dict[str, Any] = {
            "ok": result.ok,
            "idle": False,
            "stage": result.stage.value if result.stage else None,
            "run": run_to_response(result.run) if result.run else None,
        }
        if result.outcome is not None:
            body["cached"] = result.outcome.cached
        if result.claim_lost:
            body["claimLost"] = True
        if not result.ok:
            body["error"] = result.error.value
            body["detail"] = result.outcome.detail if result.outcome else None
            return JSONResponse(status_code=http_status_for(result.error), content=body)
        return body

    @app.get("/api/cron/refresh")
    async def cron_refresh(
        request: Request,
        batch_size: Optional[int] = Query(default=None, alias="batchSize", ge=1),
        stale_days: Optional[int] = Query(default=None, alias="staleDays", ge=0),
    ):
        if not is_cron_authorized(request, services.settings.cron_secret):
            logger.warning("cron_unauthorized", path=request.url.path)
            return JSONResponse(status_code=401, content={"ok": False, "error": "UNAUTHORIZED"})

        report = await services.scheduler.sweep(batch_size=batch_size, stale_days=stale_days)
        return {
            "ok": True,
            "processed": report.processed,
            "failed": report.failed,
            "results": [
                {"productId": r.product_id, "ok": r.ok, "status": r.status}
                for r in report.results
            ],
        }

    @app.post("/api/audit/integrity")
    async def integrity(req: IntegrityRequest) -> dict[str, Any]:
        report = await services.freshness.check(req.slug)
        return report.to_response()

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {
            "ok": True,
            "version": __version__,
            "products": await services.products.count(),
        }

    return app


def build_default_app() -> FastAPI:
    configure_structured_logging()
    configure_logging()
    return create_app()

