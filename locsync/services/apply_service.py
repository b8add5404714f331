"""Apply merge decisions to the database.

Writes go through the caller's session so a whole pull (entries, sync state,
pending conflicts) lands in one transaction; :func:`atomic` commits it or
rolls all of it back.

Every write is a compare-and-swap on ``TranslationEntry.version``: the row
must still carry the version seen in the local snapshot the merge was computed
from.  A mismatch means someone edited the entry during the pull and raises
:class:`~locsync.exceptions.StaleEntryError`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from locsync.exceptions import ApplyError, StaleEntryError
from locsync.models.translation import TranslationEntry
from locsync.services.datetime_service import now_utc

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable, Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from locsync.services.entries import EntryIdentity, SyncEntry

logger = logging.getLogger(__name__)

PENDING_REVIEW_STATUS = "pending"
PULL_AUTHOR = "github:pull"


@dataclass
class ApplySummary:
    """Counts of rows written by one :func:`apply_changes` call."""

    updated: int = 0
    inserted: int = 0
    deleted: int = 0


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[None]:
    """Commit everything done inside the block, or roll all of it back.

    Storage failures surface as :class:`ApplyError`.
    """
    try:
        yield
        await session.commit()
    except BaseException as exc:
        await session.rollback()
        if isinstance(exc, SQLAlchemyError):
            raise ApplyError(f"Failed to apply changes: {exc}") from exc
        raise


def _identity_clause(project_id: int, identity: EntryIdentity) -> tuple[object, ...]:
    return (
        TranslationEntry.project_id == project_id,
        TranslationEntry.key_name == identity.key,
        TranslationEntry.language_code == identity.language_code,
        TranslationEntry.plural_form == identity.plural_form,
    )


async def _update_entry(
    session: AsyncSession,
    project_id: int,
    entry: SyncEntry,
    expected_version: int,
    *,
    status: str,
    translated_by: str,
) -> None:
    values: dict[str, object] = {
        "value": entry.value,
        "comment": entry.comment,
        "content_hash": entry.content_hash,
        "is_plural": entry.is_plural,
        "status": status,
        "translated_by": translated_by,
        "updated_at": now_utc(),
        "version": expected_version + 1,
    }
    if entry.source_plural_text is not None:
        values["source_plural_text"] = entry.source_plural_text
    stmt = (
        update(TranslationEntry)
        .where(
            *_identity_clause(project_id, entry.identity),
            TranslationEntry.version == expected_version,
        )
        .values(**values)
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:  # type: ignore[attr-defined]
        raise StaleEntryError(entry.key, entry.language_code, entry.plural_form)


async def _delete_entry(session: AsyncSession, project_id: int, entry: SyncEntry) -> None:
    stmt = delete(TranslationEntry).where(
        *_identity_clause(project_id, entry.identity),
        TranslationEntry.version == entry.version,
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:  # type: ignore[attr-defined]
        raise StaleEntryError(entry.key, entry.language_code, entry.plural_form)


async def apply_changes(
    session: AsyncSession,
    project_id: int,
    *,
    upserts: Iterable[SyncEntry],
    deletes: Iterable[SyncEntry],
    local: Mapping[EntryIdentity, SyncEntry],
    status: str = PENDING_REVIEW_STATUS,
    translated_by: str = PULL_AUTHOR,
) -> ApplySummary:
    """Upsert and delete translation rows inside the caller's transaction.

    ``upserts`` carry the new content (remote or edited), ``deletes`` the local
    snapshot of each row to remove.  ``local`` is the snapshot the decisions
    were computed from; it provides the expected version of existing rows.

    A delete removes exactly one (key, language, plural form) row; sibling
    forms of the same key are untouched.
    """
    summary = ApplySummary()

    for entry in upserts:
        current = local.get(entry.identity)
        if current is not None:
            await _update_entry(
                session,
                project_id,
                entry,
                current.version,
                status=status,
                translated_by=translated_by,
            )
            summary.updated += 1
            continue
        row = TranslationEntry(
            project_id=project_id,
            key_name=entry.key,
            language_code=entry.language_code,
            plural_form=entry.plural_form,
            value=entry.value,
            comment=entry.comment,
            content_hash=entry.content_hash,
            is_plural=entry.is_plural,
            source_plural_text=entry.source_plural_text if entry.is_plural else None,
            status=status,
            translated_by=translated_by,
            updated_at=now_utc(),
            version=1,
        )
        session.add(row)
        summary.inserted += 1

    try:
        await session.flush()
    except IntegrityError as exc:
        # Another writer created one of the rows after the snapshot was taken.
        raise ApplyError(f"Translation entry was created concurrently: {exc.orig}") from exc

    for entry in deletes:
        await _delete_entry(session, project_id, entry)
        summary.deleted += 1

    logger.info(
        "Applied %d updates, %d additions, %d deletions for project %d",
        summary.updated,
        summary.inserted,
        summary.deleted,
        project_id,
    )
    return summary
