"""Translation entry queries: snapshot loading for the merge."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select

from locsync.models.translation import TranslationEntry
from locsync.services.entries import EntryIdentity, SyncEntry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def to_sync_entry(row: TranslationEntry) -> SyncEntry:
    """Snapshot a database row."""
    return SyncEntry(
        key=row.key_name,
        language_code=row.language_code,
        plural_form=row.plural_form,
        value=row.value,
        comment=row.comment,
        content_hash=row.content_hash,
        is_plural=row.is_plural,
        source_plural_text=row.source_plural_text,
        updated_at=row.updated_at,
        version=row.version,
    )


async def load_local_entries(
    session: AsyncSession, project_id: int
) -> dict[EntryIdentity, SyncEntry]:
    """Load every translation of a project keyed by identity."""
    stmt = (
        select(TranslationEntry)
        .where(TranslationEntry.project_id == project_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    entries: dict[EntryIdentity, SyncEntry] = {}
    for row in result.scalars().all():
        entry = to_sync_entry(row)
        entries[entry.identity] = entry
    return entries

