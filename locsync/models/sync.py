"""Sync ancestor state and pending conflict models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from locsync.models.base import Base


class BaseSyncState(Base):
    """Last remote snapshot reconciled for one identity (the merge ancestor)."""

    __tablename__ = "github_sync_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    key_name: Mapped[str] = mapped_column(Text, nullable=False)
    language_code: Mapped[str] = mapped_column(String(16), nullable=False)
    plural_form: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    remote_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    remote_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_commit_sha: Mapped[str | None] = mapped_column(String(64), nullable=True)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "key_name",
            "language_code",
            "plural_form",
            name="uq_sync_state_identity",
        ),
    )


class PendingConflict(Base):
    """Unresolved pull classification awaiting a human decision."""

    __tablename__ = "pending_conflicts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    key_name: Mapped[str] = mapped_column(Text, nullable=False)
    language_code: Mapped[str] = mapped_column(String(16), nullable=False)
    plural_form: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    conflict_type: Mapped[str] = mapped_column(String(32), nullable=False)
    remote_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    local_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    local_modified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    remote_commit_sha: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "key_name",
            "language_code",
            "plural_form",
            name="uq_pending_conflict_identity",
        ),
    )
