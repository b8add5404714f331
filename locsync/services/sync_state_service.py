"""Sync ancestor state: the remote snapshot last reconciled with the database.

The recorded hash is the merge base.  A pull writes it for the identities it
reconciled and leaves pending identities on their old base; a conflict
resolution writes it for the identities it decides.  Both write it in the
same transaction as the entries it describes, so it never runs ahead of the
database.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select

from locsync.exceptions import ProjectNotConnectedError
from locsync.models.sync import BaseSyncState, PendingConflict
from locsync.schemas.sync import SyncStatus
from locsync.services.datetime_service import as_utc, format_iso, now_utc
from locsync.services.entries import EntryIdentity
from locsync.services.project_service import get_project, repository_ref

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from locsync.services.entries import SyncEntry

logger = logging.getLogger(__name__)


def _identity(state: BaseSyncState) -> EntryIdentity:
    return EntryIdentity(state.key_name, state.language_code, state.plural_form)


async def load_base_states(
    session: AsyncSession, project_id: int
) -> dict[EntryIdentity, BaseSyncState]:
    """Load the recorded sync state rows of a project keyed by identity."""
    stmt = (
        select(BaseSyncState)
        .where(BaseSyncState.project_id == project_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return {_identity(state): state for state in result.scalars().all()}


async def load_base_hashes(session: AsyncSession, project_id: int) -> dict[EntryIdentity, str]:
    """Load the merge base: recorded remote hash per identity."""
    states = await load_base_states(session, project_id)
    return {identity: state.remote_hash for identity, state in states.items()}


async def advance_sync_state(
    session: AsyncSession,
    project_id: int,
    remote: Mapping[EntryIdentity, SyncEntry],
    commit_sha: str | None,
    *,
    retired: Iterable[EntryIdentity] = (),
) -> int:
    """Record ``remote`` as the new ancestor for every identity it contains.

    Unchanged identities are advanced too so the next merge has a correct base
    for them.  ``retired`` identities (gone from the remote and from the
    database) lose their record.  Returns the number of rows written.
    """
    existing = await load_base_states(session, project_id)
    synced_at = now_utc()

    for identity, entry in remote.items():
        state = existing.get(identity)
        if state is None:
            session.add(
                BaseSyncState(
                    project_id=project_id,
                    key_name=identity.key,
                    language_code=identity.language_code,
                    plural_form=identity.plural_form,
                    remote_hash=entry.content_hash,
                    remote_value=entry.value,
                    remote_comment=entry.comment,
                    remote_commit_sha=commit_sha,
                    synced_at=synced_at,
                    version=1,
                )
            )
            continue
        state.remote_hash = entry.content_hash
        state.remote_value = entry.value
        state.remote_comment = entry.comment
        state.remote_commit_sha = commit_sha
        state.synced_at = synced_at
        state.version += 1

    retired_ids = [existing[identity].id for identity in retired if identity in existing]
    if retired_ids:
        await session.execute(delete(BaseSyncState).where(BaseSyncState.id.in_(retired_ids)))

    await session.flush()
    logger.info(
        "Advanced sync state for %d entries of project %d (%d retired)",
        len(remote),
        project_id,
        len(retired_ids),
    )
    return len(remote)


async def _count_rows(
    session: AsyncSession, model: type[BaseSyncState] | type[PendingConflict], project_id: int
) -> int:
    stmt = select(func.count()).select_from(model).where(model.project_id == project_id)
    return (await session.execute(stmt)).scalar_one()


async def get_sync_status(session: AsyncSession, project_id: int) -> SyncStatus:
    """Report a project's GitHub coordinates, last pull, and pending work."""
    project = await get_project(session, project_id)
    try:
        ref = repository_ref(project)
    except ProjectNotConnectedError:
        ref = None

    pending = await _count_rows(session, PendingConflict, project_id)
    tracked = await _count_rows(session, BaseSyncState, project_id)
    last_pull_at = as_utc(project.last_github_pull_at)

    if ref is None:
        status = "not_connected"
    elif last_pull_at is None:
        status = "never_pulled"
    elif pending:
        status = "conflicts"
    else:
        status = "synced"

    return SyncStatus(
        connected=ref is not None,
        repository=f"{ref.owner}/{ref.repo}" if ref is not None else None,
        branch=ref.branch if ref is not None else None,
        base_path=ref.base_path if ref is not None else None,
        format=project.format,
        last_pull_at=format_iso(last_pull_at) if last_pull_at is not None else None,
        last_pull_commit=project.last_github_pull_commit,
        tracked_entries=tracked,
        pending_conflicts=pending,
        status=status,
    )
