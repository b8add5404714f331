"""Translation entry model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from locsync.models.base import Base


class TranslationEntry(Base):
    """One translatable unit: (key, language, plural form) within a project.

    ``plural_form`` is the empty string for non-plural entries.  All forms of a
    plural group carry the same ``content_hash`` (the group hash).  ``version``
    is the optimistic-lock counter; writers compare-and-swap on it.
    """

    __tablename__ = "translation_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    key_name: Mapped[str] = mapped_column(Text, nullable=False)
    language_code: Mapped[str] = mapped_column(String(16), nullable=False)
    plural_form: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    is_plural: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    source_plural_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="translated")
    translated_by: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "key_name",
            "language_code",
            "plural_form",
            name="uq_translation_identity",
        ),
        Index("idx_translation_project", "project_id"),
    )
