"""Pull orchestration: fetch, parse, classify, and apply in one transaction.

Remote failures surface before any local state is read or written.  The
merge only runs once every file of the tree has been fetched, and every write
of a pull (entries, sync state, project bookkeeping, pending conflicts) is
committed together or not at all.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

from locsync.exceptions import RemoteError
from locsync.parsers.registry import get_parser, parse_files
from locsync.schemas.sync import FileParseFailure, PullResult
from locsync.services.apply_service import apply_changes, atomic
from locsync.services.conflict_service import pull_conflict_item, replace_pending_conflicts
from locsync.services.datetime_service import now_utc
from locsync.services.merge_service import ConflictStrategy, apply_strategy, compute_merge
from locsync.services.project_service import get_project, repository_ref
from locsync.services.sync_state_service import advance_sync_state, load_base_hashes
from locsync.services.translation_service import load_local_entries

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from locsync.config import Settings
    from locsync.parsers.base import FormatParser
    from locsync.remote.github import RemoteRepositoryClient
    from locsync.services.entries import EntryIdentity
    from locsync.services.merge_service import PullConflict
    from locsync.services.project_service import RepositoryRef

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _discover_files(
    client: RemoteRepositoryClient, ref: RepositoryRef, parser: FormatParser
) -> list[str]:
    """List translation files under the base path, one directory level at a time."""
    found: list[str] = []
    pending = [ref.base_path]
    while pending:
        listings = await asyncio.gather(*(client.list_directory(ref, path) for path in pending))
        pending = []
        for listing in listings:
            for item in listing:
                if item.is_dir:
                    if parser.descend_into(item.path):
                        pending.append(item.path)
                elif parser.matches(item.path):
                    found.append(item.path)
    return sorted(found)


async def fetch_translation_files(
    client: RemoteRepositoryClient,
    ref: RepositoryRef,
    parser: FormatParser,
    concurrency: int,
) -> dict[str, str]:
    """Fetch the text of every translation file of the tree.

    Files are fetched concurrently, at most ``concurrency`` at a time; the
    first failure cancels the rest and propagates.
    """
    paths = await _discover_files(client, ref, parser)
    if not paths:
        msg = f"No {parser.format} translation files found under {ref.base_path} in {ref}"
        raise ValueError(msg)

    semaphore = asyncio.Semaphore(concurrency)

    async def fetch(path: str) -> tuple[str, str]:
        async with semaphore:
            return path, await client.get_file_content(ref, path)

    results = await asyncio.gather(*(fetch(path) for path in paths))
    logger.info("Fetched %d translation files from %s", len(results), ref)
    return dict(results)


async def _head_commit(client: RemoteRepositoryClient, ref: RepositoryRef) -> str | None:
    try:
        return await client.get_branch_head(ref)
    except RemoteError as exc:
        logger.warning("Could not read head commit of %s: %s", ref, exc)
        return None


def _without_languages(
    entries: Mapping[EntryIdentity, T], languages: set[str]
) -> dict[EntryIdentity, T]:
    return {
        identity: value
        for identity, value in entries.items()
        if identity.language_code not in languages
    }


def _held_units(pending: Iterable[PullConflict]) -> set[tuple[str, str, bool]]:
    """Merge units awaiting a human decision: their recorded base must not move."""
    return {conflict.identity.merge_unit for conflict in pending}


async def pull(
    session: AsyncSession,
    project_id: int,
    client: RemoteRepositoryClient,
    settings: Settings,
    strategy: ConflictStrategy = ConflictStrategy.PROMPT,
    *,
    preview: bool = False,
) -> PullResult:
    """Pull a project's translations from its GitHub repository.

    With ``preview`` the classification is computed and returned but nothing
    is written.  Otherwise the merge is applied in a single transaction.
    Languages with a file that failed to parse are left out of the merge so
    their entries are neither deleted nor advanced.  Identities left pending
    keep their recorded base until a resolution reconciles them, so an
    unresolved conflict is raised again by the next pull.
    """
    project = await get_project(session, project_id)
    ref = repository_ref(project)
    parser = get_parser(project.format)

    files = await fetch_translation_files(client, ref, parser, settings.remote_fetch_concurrency)
    commit_sha = await _head_commit(client, ref)

    parsed = parse_files(project.format, files, project.default_language)
    skipped = parsed.failed_languages
    if skipped:
        logger.warning(
            "Leaving languages %s out of the pull: files failed to parse", sorted(skipped)
        )
    remote = _without_languages(parsed.entries, skipped)
    local = _without_languages(await load_local_entries(session, project_id), skipped)
    base = _without_languages(await load_base_hashes(session, project_id), skipped)

    failed_paths = {failure.file_path for failure in parsed.failures}
    merged = compute_merge(remote, local, base)
    result = apply_strategy(merged, strategy, remote, local)

    if not preview:
        async with atomic(session):
            await apply_changes(
                session,
                project_id,
                upserts=[*result.to_apply, *result.to_add],
                deletes=result.to_delete,
                local=local,
            )
            held = _held_units(result.pending)
            reconciled = {
                identity: entry
                for identity, entry in remote.items()
                if identity.merge_unit not in held
            }
            retired = [
                identity
                for identity in base
                if identity not in remote and identity.merge_unit not in held
            ]
            await advance_sync_state(
                session, project_id, reconciled, commit_sha, retired=retired
            )
            project.last_github_pull_at = now_utc()
            project.last_github_pull_commit = commit_sha
            await replace_pending_conflicts(session, project_id, result.pending, commit_sha)

    logger.info(
        "%s of project %d from %s (%s): %d applied, %d added, %d deleted, %d pending",
        "Preview" if preview else "Pull",
        project_id,
        ref,
        strategy,
        len(result.to_apply),
        len(result.to_add),
        len(result.to_delete),
        len(result.pending),
    )
    return PullResult(
        preview=preview,
        strategy=strategy,
        entries_applied=len(result.to_apply),
        entries_added=len(result.to_add),
        entries_deleted=len(result.to_delete),
        entries_unchanged=result.unchanged,
        entries_needs_review=len(result.needs_review),
        conflicts=[pull_conflict_item(conflict, commit_sha) for conflict in result.pending],
        commit_sha=commit_sha,
        processed_files=sorted(set(files) - failed_paths),
        failed_files=[
            FileParseFailure(file_path=failure.file_path, message=failure.message)
            for failure in parsed.failures
        ],
    )


async def preview_pull(
    session: AsyncSession,
    project_id: int,
    client: RemoteRepositoryClient,
    settings: Settings,
) -> PullResult:
    """Classify a pull without writing anything."""
    return await pull(session, project_id, client, settings, ConflictStrategy.PROMPT, preview=True)
