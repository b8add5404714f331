"""Pending conflicts: persistence and human resolution.

The pending set of a project is replaced wholesale by every pull, never
appended to.  A resolution therefore only takes effect while the conflict it
names is still pending; once a newer pull has superseded the set, the
resolution is reported as stale and ignored.

A pull leaves the recorded base of a pending identity untouched.  A decision
(``accept_remote``, ``accept_local`` or ``edit``) reconciles the remote side
recorded on the conflict and advances the base to it; ``skip`` defers the
decision, so the next pull raises the conflict again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from locsync.models.sync import PendingConflict
from locsync.schemas.sync import (
    ApplyResult,
    ConflictItem,
    ConflictResolution,
    ConflictSummary,
    Resolution,
)
from locsync.services.apply_service import apply_changes, atomic
from locsync.services.datetime_service import as_utc, format_iso, now_utc
from locsync.services.entries import EntryIdentity, SyncEntry
from locsync.services.hashing import compute_hash, stamp_plural_group
from locsync.services.merge_service import ConflictType
from locsync.services.project_service import get_project
from locsync.services.sync_state_service import advance_sync_state
from locsync.services.translation_service import load_local_entries

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from locsync.services.merge_service import PullConflict

logger = logging.getLogger(__name__)

RESOLVE_AUTHOR = "github:resolve"


def _identity(row: PendingConflict) -> EntryIdentity:
    return EntryIdentity(row.key_name, row.language_code, row.plural_form)


def to_conflict_item(row: PendingConflict) -> ConflictItem:
    modified_at = as_utc(row.local_modified_at)
    return ConflictItem(
        key=row.key_name,
        language_code=row.language_code,
        plural_form=row.plural_form,
        conflict_type=row.conflict_type,
        remote_value=row.remote_value,
        local_value=row.local_value,
        local_modified_at=format_iso(modified_at) if modified_at is not None else None,
        remote_commit_sha=row.remote_commit_sha,
    )


def pull_conflict_item(conflict: PullConflict, commit_sha: str | None) -> ConflictItem:
    modified_at = as_utc(conflict.local_modified_at)
    return ConflictItem(
        key=conflict.identity.key,
        language_code=conflict.identity.language_code,
        plural_form=conflict.identity.plural_form,
        conflict_type=str(conflict.conflict_type),
        remote_value=conflict.remote_value,
        local_value=conflict.local_value,
        local_modified_at=format_iso(modified_at) if modified_at is not None else None,
        remote_commit_sha=commit_sha,
    )


async def replace_pending_conflicts(
    session: AsyncSession,
    project_id: int,
    conflicts: Iterable[PullConflict],
    commit_sha: str | None,
) -> int:
    """Replace the full pending set of a project.  Returns the new count."""
    await session.execute(delete(PendingConflict).where(PendingConflict.project_id == project_id))
    created_at = now_utc()
    count = 0
    for conflict in conflicts:
        session.add(
            PendingConflict(
                project_id=project_id,
                key_name=conflict.identity.key,
                language_code=conflict.identity.language_code,
                plural_form=conflict.identity.plural_form,
                conflict_type=str(conflict.conflict_type),
                remote_value=conflict.remote_value,
                remote_comment=conflict.remote_comment,
                remote_hash=conflict.remote_hash,
                local_value=conflict.local_value,
                local_modified_at=conflict.local_modified_at,
                remote_commit_sha=commit_sha,
                created_at=created_at,
            )
        )
        count += 1
    await session.flush()
    logger.info("Stored %d pending conflicts for project %d", count, project_id)
    return count


async def load_pending_conflicts(session: AsyncSession, project_id: int) -> list[PendingConflict]:
    """Load pending conflicts ordered by key, language, and plural form."""
    stmt = (
        select(PendingConflict)
        .where(PendingConflict.project_id == project_id)
        .order_by(
            PendingConflict.key_name,
            PendingConflict.language_code,
            PendingConflict.plural_form,
        )
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_pending_conflicts(session: AsyncSession, project_id: int) -> ConflictSummary:
    """Summarize the pending conflicts of a project."""
    await get_project(session, project_id)
    items = [to_conflict_item(row) for row in await load_pending_conflicts(session, project_id)]

    def count(conflict_type: ConflictType) -> int:
        return sum(1 for item in items if item.conflict_type == conflict_type)

    return ConflictSummary(
        total_conflicts=len(items),
        both_modified_count=count(ConflictType.BOTH_MODIFIED),
        deleted_in_github_count=count(ConflictType.DELETED_IN_GITHUB),
        deleted_in_cloud_count=count(ConflictType.DELETED_IN_CLOUD),
        needs_review_count=count(ConflictType.NEEDS_REVIEW),
        conflicts=items,
    )


def _remote_entry(identity: EntryIdentity, row: PendingConflict) -> SyncEntry:
    """Rebuild the remote side of a conflict from the snapshot stored with it.

    The stored hash is the one the parser produced (the group hash for plural
    forms); rows without one are hashed from value and comment.
    """
    content_hash = row.remote_hash or compute_hash(row.remote_value, row.remote_comment)
    return SyncEntry(
        key=identity.key,
        language_code=identity.language_code,
        plural_form=identity.plural_form,
        value=row.remote_value,
        comment=row.remote_comment,
        content_hash=content_hash,
        is_plural=identity.is_plural_form,
    )


def _remote_missing(row: PendingConflict) -> bool:
    return row.conflict_type == ConflictType.DELETED_IN_GITHUB or row.remote_value is None


def _edited_entries(
    identity: EntryIdentity,
    edited_value: str,
    local: Mapping[EntryIdentity, SyncEntry],
) -> list[SyncEntry]:
    """Entries to write for an edit.  A plural edit re-stamps the whole group."""
    current = local.get(identity)
    comment = current.comment if current is not None else None
    edited = SyncEntry(
        key=identity.key,
        language_code=identity.language_code,
        plural_form=identity.plural_form,
        value=edited_value,
        comment=comment,
        content_hash=compute_hash(edited_value, comment),
        is_plural=identity.is_plural_form,
        source_plural_text=current.source_plural_text if current is not None else None,
    )
    if not identity.is_plural_form:
        return [edited]
    siblings = [
        entry
        for other, entry in local.items()
        if other.merge_unit == identity.merge_unit and other != identity
    ]
    return stamp_plural_group([*siblings, edited])


async def resolve_conflicts(
    session: AsyncSession,
    project_id: int,
    resolutions: Iterable[ConflictResolution],
) -> ApplyResult:
    """Apply human resolutions to pending conflicts in one transaction.

    ``accept_remote`` writes the remote side (a delete for ``DeletedInGitHub``
    or for plural forms the remote no longer has), ``edit`` writes the edited
    value, ``accept_local`` writes nothing.  These three record the remote
    side as the new base.  ``skip`` only discards the record.  Resolving any
    form of a plural group resolves the whole group.
    """
    await get_project(session, project_id)
    result = ApplyResult()

    async with atomic(session):
        pending = {_identity(row): row for row in await load_pending_conflicts(session, project_id)}
        local = await load_local_entries(session, project_id)

        remote_upserts: list[SyncEntry] = []
        edits: list[SyncEntry] = []
        deletes: list[SyncEntry] = []
        resolved: list[PendingConflict] = []
        reconciled: dict[EntryIdentity, SyncEntry] = {}
        retired: list[EntryIdentity] = []
        handled: set[EntryIdentity] = set()

        for resolution in resolutions:
            identity = EntryIdentity(
                resolution.key, resolution.language_code, resolution.plural_form
            )
            if identity in handled:
                continue
            if identity not in pending:
                result.stale.append(identity.label())
                continue

            group = sorted(
                other for other in pending if other.merge_unit == identity.merge_unit
            )
            handled.update(group)
            resolved.extend(pending[other] for other in group)

            if resolution.resolution is Resolution.SKIP:
                result.skipped += len(group)
                continue

            for other in group:
                row = pending[other]
                if _remote_missing(row):
                    retired.append(other)
                else:
                    reconciled[other] = _remote_entry(other, row)

            if resolution.resolution is Resolution.ACCEPT_REMOTE:
                group_upserts: list[SyncEntry] = []
                for other in group:
                    if other in reconciled:
                        group_upserts.append(reconciled[other])
                    elif other in local:
                        deletes.append(local[other])
                if identity.is_plural_form and group_upserts:
                    group_upserts = stamp_plural_group(group_upserts)
                remote_upserts.extend(group_upserts)
            elif resolution.resolution is Resolution.EDIT:
                if resolution.edited_value is None:
                    raise ValueError(f"No edited value given for {identity.label()}")
                edits.extend(_edited_entries(identity, resolution.edited_value, local))

        if remote_upserts or deletes:
            summary = await apply_changes(
                session,
                project_id,
                upserts=remote_upserts,
                deletes=deletes,
                local=local,
            )
            result.applied += summary.updated + summary.inserted
            result.deleted += summary.deleted
        if edits:
            summary = await apply_changes(
                session,
                project_id,
                upserts=edits,
                deletes=(),
                local=local,
                status="translated",
                translated_by=RESOLVE_AUTHOR,
            )
            result.applied += summary.updated + summary.inserted

        if reconciled or retired:
            # Every row of the pending set was written by the same pull.
            commit_sha = resolved[0].remote_commit_sha
            await advance_sync_state(session, project_id, reconciled, commit_sha, retired=retired)

        if resolved:
            await session.execute(
                delete(PendingConflict).where(PendingConflict.id.in_([row.id for row in resolved]))
            )

    logger.info(
        "Resolved conflicts for project %d: %d applied, %d deleted, %d skipped, %d stale",
        project_id,
        result.applied,
        result.deleted,
        result.skipped,
        len(result.stale),
    )
    return result
