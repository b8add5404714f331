"""GitHub pull and conflict resolution endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from locsync.api.deps import get_remote_client, get_session, get_settings
from locsync.config import Settings
from locsync.remote.github import RemoteRepositoryClient
from locsync.schemas.sync import (
    ApplyResult,
    ConflictSummary,
    PullRequest,
    PullResult,
    ResolveConflictsRequest,
    SyncStatus,
)
from locsync.services.conflict_service import get_pending_conflicts, resolve_conflicts
from locsync.services.pull_service import preview_pull, pull
from locsync.services.sync_state_service import get_sync_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects/{project_id}/github", tags=["github-sync"])


@router.post("/pull/preview", response_model=PullResult)
async def pull_preview_endpoint(
    project_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    client: Annotated[RemoteRepositoryClient, Depends(get_remote_client)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> PullResult:
    """Classify what a pull would do without writing anything."""
    return await preview_pull(session, project_id, client, settings)


@router.post("/pull", response_model=PullResult)
async def pull_endpoint(
    project_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    client: Annotated[RemoteRepositoryClient, Depends(get_remote_client)],
    settings: Annotated[Settings, Depends(get_settings)],
    body: Annotated[PullRequest | None, Body()] = None,
) -> PullResult:
    """Pull translations from GitHub and apply them in one transaction.

    Conflicts left by the ``prompt`` strategy are stored for resolution and
    returned in the result.
    """
    request = body if body is not None else PullRequest()
    return await pull(session, project_id, client, settings, request.strategy)


@router.get("/conflicts", response_model=ConflictSummary)
async def conflicts_endpoint(
    project_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ConflictSummary:
    """List the conflicts left by the latest pull."""
    return await get_pending_conflicts(session, project_id)


@router.post("/conflicts/resolve", response_model=ApplyResult)
async def resolve_conflicts_endpoint(
    project_id: int,
    body: ResolveConflictsRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ApplyResult:
    """Apply resolutions to pending conflicts."""
    result = await resolve_conflicts(session, project_id, body.resolutions)
    if result.stale:
        logger.info("Ignored %d stale resolutions for project %d", len(result.stale), project_id)
    return result


@router.get("/status", response_model=SyncStatus)
async def status_endpoint(
    project_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SyncStatus:
    """Report the GitHub connection, the last pull, and pending conflicts."""
    return await get_sync_status(session, project_id)
