"""FastAPI application factory"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from sandbox_bank.api.dependencies import get_request_id
from sandbox_bank.api.middleware import MetricsMiddleware, RequestIDMiddleware
from sandbox_bank.api.v1 import accesses, jobs, repeated_transactions, transactions, transfers
from sandbox_bank.config import settings
from sandbox_bank.fixtures import new_with_defaults
from sandbox_bank.infrastructure.observability.logging import setup_logging
from sandbox_bank.infrastructure.store.snapshot import load_snapshot, save_snapshot
from sandbox_bank.sandbox import Sandbox

# Setup structured logging
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)


def error_body(code: str) -> dict:
    return {"errors": [{"code": code}]}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected request parameters", extra={"path": request.url.path, "errors": str(exc.errors())})
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_body("validation_bad_parameters"))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error",
        extra={"path": request.url.path, "request_id": get_request_id(request), "error": str(exc)},
        exc_info=exc,
    )
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error_body("general"))


def default_sandbox() -> Sandbox:
    """Sandbox built from settings: seeded with the default fixtures unless disabled"""
    if settings.seed_defaults:
        return new_with_defaults(confirm_similar=settings.confirm_similar_transfers)
    return Sandbox(confirm_similar=settings.confirm_similar_transfers)


def create_app(sandbox: Sandbox | None = None) -> FastAPI:
    """Create and configure FastAPI application"""
    sandbox = sandbox or default_sandbox()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.snapshot_path and load_snapshot(sandbox.store, settings.snapshot_path):
            logger.info("Loaded snapshot", extra={"path": settings.snapshot_path})
        yield
        if settings.snapshot_path:
            save_snapshot(sandbox.store, settings.snapshot_path)
            logger.info("Saved snapshot", extra={"path": settings.snapshot_path})

    app = FastAPI(
        title="Sandbox Bank",
        description="Emulated banking platform for access linking and transfer authorization",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.sandbox = sandbox

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Every error answers {"errors": [{"code": ...}]}
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(accesses.router, prefix="/v1", tags=["accesses"])
    app.include_router(jobs.router, prefix="/v1", tags=["jobs"])
    app.include_router(transfers.router, prefix="/v1", tags=["transfers"])
    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])
    app.include_router(repeated_transactions.router, prefix="/v1", tags=["repeated transactions"])

    return app


app = create_app()
