"""Shared API dependencies: settings, DB session, remote client."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from locsync.config import Settings
from locsync.remote.github import RemoteRepositoryClient


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_remote_client(request: Request) -> RemoteRepositoryClient:
    """Get the shared GitHub client from app state."""
    client: RemoteRepositoryClient = request.app.state.remote_client
    return client


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session
