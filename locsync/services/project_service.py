"""Project lookups for sync operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from locsync.exceptions import ProjectNotConnectedError, ProjectNotFoundError
from locsync.models.project import Project

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class RepositoryRef:
    """Where a project's translation files live on GitHub."""

    owner: str
    repo: str
    branch: str
    base_path: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}@{self.branch}"


async def get_project(session: AsyncSession, project_id: int) -> Project:
    """Get a project or raise :class:`ProjectNotFoundError`."""
    project = await session.get(Project, project_id)
    if project is None:
        raise ProjectNotFoundError(f"Project {project_id} not found")
    return project


def repository_ref(project: Project) -> RepositoryRef:
    """Parse the project's ``owner/repo`` coordinates."""
    if not project.github_repo:
        raise ProjectNotConnectedError("Project is not connected to a GitHub repository")
    parts = project.github_repo.strip().split("/")
    if len(parts) != 2 or not all(parts):
        raise ProjectNotConnectedError(
            f"Invalid GitHub repository format: {project.github_repo}"
        )
    base_path = (project.github_base_path or ".").strip().strip("/") or "."
    return RepositoryRef(
        owner=parts[0],
        repo=parts[1],
        branch=project.github_branch or "main",
        base_path=base_path,
    )
