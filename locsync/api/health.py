"""Health check endpoint."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from locsync.api.deps import get_session, get_settings
from locsync.config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    github: str


def _github_status(request: Request, settings: Settings) -> str:
    """``unavailable`` without a client, else whether requests carry a token."""
    if getattr(request.app.state, "remote_client", None) is None:
        return "unavailable"
    return "token" if settings.github_token else "anonymous"


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> HealthResponse:
    """Report whether pulls can run: database reachable, GitHub client ready."""
    db_status = "ok"
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check database query failed", exc_info=True)
        db_status = "error"

    github_status = _github_status(request, settings)
    ready = db_status == "ok" and github_status != "unavailable"
    return HealthResponse(
        status="ok" if ready else "degraded",
        version="0.1.0",
        database=db_status,
        github=github_status,
    )
