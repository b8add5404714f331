"""Project model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from locsync.models.base import Base


class Project(Base):
    """Translation project connected to a GitHub repository."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    github_repo: Mapped[str | None] = mapped_column(String, nullable=True)  # "owner/repo"
    github_branch: Mapped[str] = mapped_column(String, nullable=False, default="main")
    github_base_path: Mapped[str] = mapped_column(Text, nullable=False, default=".")
    format: Mapped[str] = mapped_column(String(32), nullable=False, default="json")
    default_language: Mapped[str] = mapped_column(String(16), nullable=False, default="en")
    last_github_pull_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_github_pull_commit: Mapped[str | None] = mapped_column(String(64), nullable=True)
