"""FastAPI application entry point."""

from __future__ import annotations

import logging
import math
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from locsync.api.health import router as health_router
from locsync.api.sync import router as sync_router
from locsync.config import Settings
from locsync.database import create_engine
from locsync.exceptions import (
    ApplyError,
    ProjectNotFoundError,
    RemoteAuthorizationError,
    RemoteError,
    RemoteNotFoundError,
    StaleEntryError,
    TransientRemoteError,
)
from locsync.models.base import Base
from locsync.remote.github import GitHubClient

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    settings.validate_runtime_security()
    _configure_logging(settings.debug)
    logger.info("Starting locsync (debug=%s)", settings.debug)

    db_url = settings.database_url
    if db_url.startswith("sqlite"):
        db_path = db_url.split("///", 1)[-1] if "///" in db_url else None
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        engine, session_factory = create_engine(settings)
        app.state.engine = engine
        app.state.session_factory = session_factory
    except Exception as exc:
        logger.critical(
            "Failed to initialize database: %s. Check database path and permissions.", exc
        )
        raise

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as exc:
        logger.critical("Failed to create database schema: %s.", exc)
        raise

    if getattr(app.state, "remote_client", None) is None:
        app.state.remote_client = GitHubClient(settings)
    remote_client = app.state.remote_client

    yield

    if isinstance(remote_client, GitHubClient):
        try:
            await remote_client.aclose()
        except Exception as exc:
            logger.error("Error during GitHub client shutdown: %s", exc, exc_info=True)

    try:
        await engine.dispose()
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("locsync stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    docs_enabled = settings.debug or settings.expose_docs

    app = FastAPI(
        title="locsync",
        description="Translation sync between GitHub repositories and a translation database",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings
    app.state.remote_client = None

    app.include_router(health_router)
    app.include_router(sync_router)

    # Global exception handlers: sync taxonomy first, generic safety net after

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(ProjectNotFoundError)
    async def project_not_found_handler(
        request: Request, exc: ProjectNotFoundError
    ) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(TransientRemoteError)
    async def transient_remote_handler(
        request: Request, exc: TransientRemoteError
    ) -> JSONResponse:
        logger.warning(
            "TransientRemoteError in %s %s: %s", request.method, request.url.path, exc
        )
        headers = {}
        if exc.retry_after is not None:
            headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
        return JSONResponse(
            status_code=503,
            content={"detail": "GitHub is temporarily unavailable, retry later"},
            headers=headers,
        )

    @app.exception_handler(RemoteAuthorizationError)
    async def remote_authorization_handler(
        request: Request, exc: RemoteAuthorizationError
    ) -> JSONResponse:
        logger.warning(
            "RemoteAuthorizationError in %s %s: %s", request.method, request.url.path, exc
        )
        return JSONResponse(
            status_code=403,
            content={"detail": "GitHub credentials are missing or lack access"},
        )

    @app.exception_handler(RemoteNotFoundError)
    async def remote_not_found_handler(
        request: Request, exc: RemoteNotFoundError
    ) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(RemoteError)
    async def remote_error_handler(request: Request, exc: RemoteError) -> JSONResponse:
        logger.error("RemoteError in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": "GitHub request failed"})

    @app.exception_handler(StaleEntryError)
    async def stale_entry_handler(request: Request, exc: StaleEntryError) -> JSONResponse:
        logger.warning("StaleEntryError in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ApplyError)
    async def apply_error_handler(request: Request, exc: ApplyError) -> JSONResponse:
        logger.error(
            "ApplyError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Failed to apply changes; nothing was written"},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.error("ValueError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        message = str(exc) or "Invalid value"
        return JSONResponse(
            status_code=422,
            content={"detail": message},
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(
            "OperationalError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database temporarily unavailable"},
        )

    return app


app = create_app()
