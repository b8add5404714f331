"""Shared test fixtures for locsync."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from locsync.config import Settings
from locsync.exceptions import RemoteNotFoundError
from locsync.main import create_app
from locsync.models import Base, Project, TranslationEntry
from locsync.remote.github import RemoteItem
from locsync.services.datetime_service import now_utc
from locsync.services.hashing import compute_hash, compute_plural_hash

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from locsync.services.entries import EntryIdentity
    from locsync.services.project_service import RepositoryRef

logger = logging.getLogger(__name__)

TEST_TOKEN = "test-github-token"


def json_file(document: dict[str, Any]) -> str:
    return json.dumps(document, ensure_ascii=False, indent=2)


class FakeRemoteClient:
    """In-memory repository: a flat ``path -> text`` map served as a tree."""

    def __init__(self, files: dict[str, str] | None = None, head: str = "c0ffee") -> None:
        self.files = dict(files or {})
        self.head = head
        self.list_error: Exception | None = None
        self.head_error: Exception | None = None
        self.fetched: list[str] = []

    async def list_directory(self, ref: RepositoryRef, path: str) -> list[RemoteItem]:
        if self.list_error is not None:
            raise self.list_error
        clean = path.strip("/")
        prefix = "" if clean in ("", ".") else clean + "/"
        items: dict[str, RemoteItem] = {}
        for file_path in self.files:
            if not file_path.startswith(prefix):
                continue
            name, sep, _ = file_path[len(prefix) :].partition("/")
            if sep:
                items[name] = RemoteItem(path=prefix + name, name=name, type="dir")
            else:
                items[name] = RemoteItem(path=file_path, name=name, type="file")
        if not items and prefix:
            raise RemoteNotFoundError(f"Not found on GitHub: {ref}:{clean}")
        return [items[name] for name in sorted(items)]

    async def get_file_content(self, ref: RepositoryRef, path: str) -> str:
        self.fetched.append(path)
        if path not in self.files:
            raise RemoteNotFoundError(f"Not found on GitHub: {ref}:{path}")
        return self.files[path]

    async def get_branch_head(self, ref: RepositoryRef) -> str:
        if self.head_error is not None:
            raise self.head_error
        return self.head


def make_row(
    project_id: int,
    key: str,
    value: str,
    *,
    language: str = "en",
    comment: str | None = None,
    version: int = 1,
) -> TranslationEntry:
    """A non-plural database row with a correct content hash."""
    return TranslationEntry(
        project_id=project_id,
        key_name=key,
        language_code=language,
        plural_form="",
        value=value,
        comment=comment,
        content_hash=compute_hash(value, comment),
        is_plural=False,
        status="translated",
        translated_by="human",
        updated_at=now_utc(),
        version=version,
    )


def make_plural_rows(
    project_id: int, key: str, forms: dict[str, str], *, language: str = "en"
) -> list[TranslationEntry]:
    """The rows of one plural group, stamped with the group hash."""
    group_hash = compute_plural_hash(forms)
    return [
        TranslationEntry(
            project_id=project_id,
            key_name=key,
            language_code=language,
            plural_form=category,
            value=text,
            content_hash=group_hash,
            is_plural=True,
            source_plural_text=forms.get("other"),
            status="translated",
            translated_by="human",
            updated_at=now_utc(),
            version=1,
        )
        for category, text in forms.items()
    ]


async def get_translation(
    session: AsyncSession, project_id: int, identity: EntryIdentity
) -> TranslationEntry | None:
    """Read one translation row straight from the database."""
    stmt = (
        select(TranslationEntry)
        .where(
            TranslationEntry.project_id == project_id,
            TranslationEntry.key_name == identity.key,
            TranslationEntry.language_code == identity.language_code,
            TranslationEntry.plural_form == identity.plural_form,
        )
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


@asynccontextmanager
async def create_test_client(
    settings: Settings, remote_client: FakeRemoteClient
) -> AsyncGenerator[tuple[AsyncClient, async_sessionmaker[AsyncSession]]]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan (DB schema,
    remote client) because ASGITransport does not trigger it.
    """
    from locsync.database import create_engine as create_db_engine

    app = create_app(settings)
    settings.validate_runtime_security()

    engine, session_factory = create_db_engine(settings)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.remote_client = remote_client

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac, session_factory

    await engine.dispose()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with a temporary database."""
    db_path = tmp_path / "test.db"
    return Settings(
        _env_file=None,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        github_token=TEST_TOKEN,
        remote_max_retries=2,
        remote_retry_base_delay=0.0,
        remote_fetch_concurrency=4,
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the schema in place."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(
    db_engine: AsyncEngine,
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
async def project(db_session: AsyncSession) -> Project:
    """A JSON project connected to ``acme/app`` with files under ``locales``."""
    proj = Project(
        name="demo",
        github_repo="acme/app",
        github_branch="main",
        github_base_path="locales",
        format="json",
        default_language="en",
    )
    db_session.add(proj)
    await db_session.commit()
    return proj


@pytest.fixture
def remote() -> FakeRemoteClient:
    return FakeRemoteClient()
