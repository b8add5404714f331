"""End-to-end tests for the pull pipeline against an in-memory repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from locsync.exceptions import (
    ApplyError,
    RemoteAuthorizationError,
    RemoteNotFoundError,
    StaleEntryError,
)
from locsync.models import TranslationEntry
from locsync.schemas.sync import ConflictResolution
from locsync.services import pull_service
from locsync.services.conflict_service import load_pending_conflicts, resolve_conflicts
from locsync.services.entries import EntryIdentity
from locsync.services.hashing import compute_hash
from locsync.services.merge_service import ConflictStrategy
from locsync.services.project_service import get_project
from locsync.services.pull_service import preview_pull, pull
from locsync.services.sync_state_service import load_base_hashes
from locsync.services.translation_service import load_local_entries
from tests.conftest import FakeRemoteClient, get_translation, json_file, make_row

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from locsync.config import Settings
    from locsync.models import Project
    from locsync.services.entries import SyncEntry

GREETING = EntryIdentity("greeting", "en")
EN_FILE = "locales/strings.json"
FR_FILE = "locales/strings.fr.json"


def _repo(en: dict, fr: dict | None = None, head: str = "c1") -> FakeRemoteClient:
    files = {EN_FILE: json_file(en)}
    if fr is not None:
        files[FR_FILE] = json_file(fr)
    return FakeRemoteClient(files, head=head)


class TestFirstPull:
    async def test_adds_every_remote_entry(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        remote = _repo(
            {"greeting": "Hello", "items": {"_plural": {"one": "{0} item", "other": "{0} items"}}},
            {"greeting": "Bonjour"},
        )

        result = await pull(db_session, project.id, remote, test_settings)

        assert result.entries_added == 4
        assert result.commit_sha == "c1"
        assert result.processed_files == [FR_FILE, EN_FILE]
        local = await load_local_entries(db_session, project.id)
        assert set(local) == {
            GREETING,
            EntryIdentity("greeting", "fr"),
            EntryIdentity("items", "en", "one"),
            EntryIdentity("items", "en", "other"),
        }
        assert all(entry.content_hash for entry in local.values())
        base = await load_base_hashes(db_session, project.id)
        assert base == {identity: entry.content_hash for identity, entry in local.items()}
        assert project.last_github_pull_commit == "c1"
        assert project.last_github_pull_at is not None

    async def test_identical_content_is_unchanged(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        db_session.add(make_row(project.id, "greeting", "Hi"))
        await db_session.commit()

        result = await pull(db_session, project.id, _repo({"greeting": "Hi"}), test_settings)

        assert result.entries_unchanged == 1
        assert (result.entries_applied, result.entries_added, result.entries_deleted) == (0, 0, 0)
        assert result.conflicts == []
        assert await load_base_hashes(db_session, project.id) == {GREETING: compute_hash("Hi")}

    async def test_differing_content_needs_review(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        db_session.add(make_row(project.id, "greeting", "Hello"))
        await db_session.commit()

        result = await pull(
            db_session,
            project.id,
            _repo({"greeting": "Hola"}),
            test_settings,
            ConflictStrategy.ACCEPT_REMOTE,
        )

        assert result.entries_needs_review == 1
        assert [item.conflict_type for item in result.conflicts] == ["NeedsReview"]
        row = await get_translation(db_session, project.id, GREETING)
        assert row is not None
        assert row.value == "Hello"
        pending = await load_pending_conflicts(db_session, project.id)
        assert [row.conflict_type for row in pending] == ["NeedsReview"]
        assert await load_base_hashes(db_session, project.id) == {}


class TestFollowUpPulls:
    async def _synced(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        await pull(db_session, project.id, _repo({"greeting": "Hello"}, head="c0"), test_settings)

    async def test_remote_change_is_applied(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        await self._synced(db_session, project, test_settings)

        result = await pull(
            db_session, project.id, _repo({"greeting": "Hola"}, head="c1"), test_settings
        )

        assert result.entries_applied == 1
        row = await get_translation(db_session, project.id, GREETING)
        assert row is not None
        assert row.value == "Hola"
        assert row.status == "pending"
        base = await load_base_hashes(db_session, project.id)
        assert base[GREETING] == compute_hash("Hola")

    async def test_both_modified_with_prompt_is_persisted(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        await self._synced(db_session, project, test_settings)
        await _edit_locally(db_session, project, "Hello edited")

        result = await pull(
            db_session, project.id, _repo({"greeting": "Hola"}, head="c1"), test_settings
        )

        assert [item.conflict_type for item in result.conflicts] == ["BothModified"]
        assert result.conflicts[0].remote_value == "Hola"
        assert result.conflicts[0].local_value == "Hello edited"
        pending = await load_pending_conflicts(db_session, project.id)
        assert [(row.key_name, row.remote_commit_sha) for row in pending] == [("greeting", "c1")]
        row = await get_translation(db_session, project.id, GREETING)
        assert row is not None
        assert row.value == "Hello edited"
        assert await load_base_hashes(db_session, project.id) == {GREETING: compute_hash("Hello")}

    async def test_both_modified_with_accept_local(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        await self._synced(db_session, project, test_settings)
        await _edit_locally(db_session, project, "Hello edited")

        result = await pull(
            db_session,
            project.id,
            _repo({"greeting": "Hola"}, head="c1"),
            test_settings,
            ConflictStrategy("cloud"),
        )

        assert result.conflicts == []
        assert await load_pending_conflicts(db_session, project.id) == []
        row = await get_translation(db_session, project.id, GREETING)
        assert row is not None
        assert row.value == "Hello edited"

    async def test_both_modified_with_accept_remote(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        await self._synced(db_session, project, test_settings)
        await _edit_locally(db_session, project, "Hello edited")

        result = await pull(
            db_session,
            project.id,
            _repo({"greeting": "Hola"}, head="c1"),
            test_settings,
            ConflictStrategy("github"),
        )

        assert result.entries_applied == 1
        assert await load_pending_conflicts(db_session, project.id) == []
        row = await get_translation(db_session, project.id, GREETING)
        assert row is not None
        assert row.value == "Hola"

    async def test_remote_deletion_removes_entry_and_base(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        await pull(
            db_session,
            project.id,
            _repo({"greeting": "Hello", "farewell": "Bye"}, head="c0"),
            test_settings,
        )

        result = await pull(
            db_session, project.id, _repo({"greeting": "Hello"}, head="c1"), test_settings
        )

        assert result.entries_deleted == 1
        farewell = EntryIdentity("farewell", "en")
        assert farewell not in await load_local_entries(db_session, project.id)
        assert farewell not in await load_base_hashes(db_session, project.id)

    async def test_new_pull_supersedes_pending_conflicts(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        await self._synced(db_session, project, test_settings)
        await _edit_locally(db_session, project, "Hello edited")
        await pull(db_session, project.id, _repo({"greeting": "Hola"}, head="c1"), test_settings)

        await pull(
            db_session, project.id, _repo({"greeting": "Hello edited"}, head="c2"), test_settings
        )

        assert await load_pending_conflicts(db_session, project.id) == []


class TestPreview:
    async def test_preview_writes_nothing(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        result = await preview_pull(
            db_session, project.id, _repo({"greeting": "Hello"}), test_settings
        )

        assert result.preview is True
        assert result.entries_added == 1
        assert await load_local_entries(db_session, project.id) == {}
        assert await load_base_hashes(db_session, project.id) == {}
        assert project.last_github_pull_at is None


class TestFailures:
    async def test_parse_failure_leaves_language_untouched(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        await pull(
            db_session,
            project.id,
            _repo({"greeting": "Hello"}, {"greeting": "Bonjour"}, head="c0"),
            test_settings,
        )
        broken = _repo({"greeting": "Hola"}, head="c1")
        broken.files[FR_FILE] = "{ not json"

        result = await pull(db_session, project.id, broken, test_settings)

        assert [failure.file_path for failure in result.failed_files] == [FR_FILE]
        assert result.processed_files == [EN_FILE]
        assert result.entries_applied == 1
        assert result.entries_deleted == 0
        french = await get_translation(db_session, project.id, EntryIdentity("greeting", "fr"))
        assert french is not None
        assert french.value == "Bonjour"

    async def test_authorization_error_touches_nothing(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        remote = _repo({"greeting": "Hello"})
        remote.list_error = RemoteAuthorizationError("GitHub denied access")

        with pytest.raises(RemoteAuthorizationError):
            await pull(db_session, project.id, remote, test_settings)

        assert await load_local_entries(db_session, project.id) == {}
        assert await load_base_hashes(db_session, project.id) == {}

    async def test_missing_head_commit_is_tolerated(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        remote = _repo({"greeting": "Hello"})
        remote.head_error = RemoteNotFoundError("branch gone")

        result = await pull(db_session, project.id, remote, test_settings)

        assert result.commit_sha is None
        assert result.entries_added == 1

    async def test_empty_tree_is_rejected(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        remote = FakeRemoteClient({"locales/readme.txt": "hi"})

        with pytest.raises(ValueError, match="No json translation files"):
            await pull(db_session, project.id, remote, test_settings)

    async def test_nested_directories_are_discovered(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        remote = _repo({"greeting": "Hello"})
        remote.files["locales/admin/strings.de.json"] = json_file({"greeting": "Hallo"})
        remote.files["locales/.cache/strings.es.json"] = json_file({"greeting": "Hola"})

        result = await pull(db_session, project.id, remote, test_settings)

        assert "locales/admin/strings.de.json" in result.processed_files
        assert "locales/.cache/strings.es.json" not in remote.fetched
        local = await load_local_entries(db_session, project.id)
        assert EntryIdentity("greeting", "de") in local


class TestUnresolvedConflicts:
    """A pending item survives pulls until a human decides it."""

    async def test_needs_review_is_raised_again(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        db_session.add(make_row(project.id, "greeting", "Hello"))
        await db_session.commit()

        first = await pull(db_session, project.id, _repo({"greeting": "Hola"}), test_settings)
        second = await pull(db_session, project.id, _repo({"greeting": "Hola"}), test_settings)

        assert [item.conflict_type for item in first.conflicts] == ["NeedsReview"]
        assert [item.conflict_type for item in second.conflicts] == ["NeedsReview"]
        assert second.entries_unchanged == 0
        pending = await load_pending_conflicts(db_session, project.id)
        assert [row.conflict_type for row in pending] == ["NeedsReview"]
        row = await get_translation(db_session, project.id, GREETING)
        assert row is not None
        assert row.value == "Hello"

    async def test_both_modified_is_raised_again(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        await pull(db_session, project.id, _repo({"greeting": "Hello"}, head="c0"), test_settings)
        await _edit_locally(db_session, project, "Hello edited")

        first = await pull(
            db_session, project.id, _repo({"greeting": "Hola"}, head="c1"), test_settings
        )
        second = await pull(
            db_session, project.id, _repo({"greeting": "Hola"}, head="c2"), test_settings
        )

        assert [item.conflict_type for item in first.conflicts] == ["BothModified"]
        assert [item.conflict_type for item in second.conflicts] == ["BothModified"]
        pending = await load_pending_conflicts(db_session, project.id)
        assert [(row.key_name, row.remote_commit_sha) for row in pending] == [("greeting", "c2")]
        assert await load_base_hashes(db_session, project.id) == {GREETING: compute_hash("Hello")}

    async def test_accept_local_resolution_sticks(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        await pull(db_session, project.id, _repo({"greeting": "Hello"}, head="c0"), test_settings)
        await _edit_locally(db_session, project, "Hello edited")
        await pull(db_session, project.id, _repo({"greeting": "Hola"}, head="c1"), test_settings)

        await resolve_conflicts(
            db_session,
            project.id,
            [ConflictResolution(key="greeting", language_code="en", resolution="accept_local")],
        )
        result = await pull(
            db_session, project.id, _repo({"greeting": "Hola"}, head="c2"), test_settings
        )

        assert result.conflicts == []
        assert result.entries_unchanged == 1
        row = await get_translation(db_session, project.id, GREETING)
        assert row is not None
        assert row.value == "Hello edited"

    async def test_skipped_conflict_comes_back(
        self, db_session: AsyncSession, project: Project, test_settings: Settings
    ) -> None:
        await pull(db_session, project.id, _repo({"greeting": "Hello"}, head="c0"), test_settings)
        await _edit_locally(db_session, project, "Hello edited")
        await pull(db_session, project.id, _repo({"greeting": "Hola"}, head="c1"), test_settings)

        await resolve_conflicts(
            db_session,
            project.id,
            [ConflictResolution(key="greeting", language_code="en", resolution="skip")],
        )
        result = await pull(
            db_session, project.id, _repo({"greeting": "Hola"}, head="c2"), test_settings
        )

        assert [item.conflict_type for item in result.conflicts] == ["BothModified"]


class TestAtomicPull:
    async def test_stale_write_rolls_back_the_whole_pull(
        self,
        db_session: AsyncSession,
        db_engine: AsyncEngine,
        project: Project,
        test_settings: Settings,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        project_id = project.id
        await pull(
            db_session,
            project_id,
            _repo({"greeting": "Hello", "farewell": "Bye"}, head="c0"),
            test_settings,
        )
        await _edit_locally(db_session, project, "Hello edited")
        await pull(
            db_session,
            project_id,
            _repo({"greeting": "Hola", "farewell": "Bye"}, head="c1"),
            test_settings,
        )
        base_before = await load_base_hashes(db_session, project_id)
        pending_before = [
            (row.key_name, row.conflict_type, row.remote_commit_sha)
            for row in await load_pending_conflicts(db_session, project_id)
        ]
        assert pending_before == [("greeting", "BothModified", "c1")]

        async def load_then_edit_elsewhere(
            session: AsyncSession, requested_id: int
        ) -> dict[EntryIdentity, SyncEntry]:
            entries = await load_local_entries(session, requested_id)
            # Another writer edits "farewell" after the snapshot was taken.
            async with AsyncSession(db_engine) as other:
                await other.execute(
                    update(TranslationEntry)
                    .where(TranslationEntry.key_name == "farewell")
                    .values(value="See you", version=TranslationEntry.version + 1)
                )
                await other.commit()
            return entries

        monkeypatch.setattr(pull_service, "load_local_entries", load_then_edit_elsewhere)

        with pytest.raises(ApplyError) as exc_info:
            await pull(
                db_session,
                project_id,
                _repo(
                    {"greeting": "Hi", "farewell": "Goodbye", "welcome": "Welcome"}, head="c2"
                ),
                test_settings,
            )

        assert isinstance(exc_info.value, StaleEntryError)
        assert await load_base_hashes(db_session, project_id) == base_before
        pending_after = [
            (row.key_name, row.conflict_type, row.remote_commit_sha)
            for row in await load_pending_conflicts(db_session, project_id)
        ]
        assert pending_after == pending_before
        assert (await get_project(db_session, project_id)).last_github_pull_commit == "c1"
        local = await load_local_entries(db_session, project_id)
        assert EntryIdentity("welcome", "en") not in local
        assert local[EntryIdentity("farewell", "en")].value == "See you"
        assert local[GREETING].value == "Hello edited"


async def _edit_locally(db_session: AsyncSession, project: Project, value: str) -> None:
    row = await get_translation(db_session, project.id, GREETING)
    assert row is not None
    row.value = value
    row.content_hash = compute_hash(value)
    row.version += 1
    await db_session.commit()
