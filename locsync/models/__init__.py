"""SQLAlchemy ORM models for locsync."""

from locsync.models.base import Base
from locsync.models.project import Project
from locsync.models.sync import BaseSyncState, PendingConflict
from locsync.models.translation import TranslationEntry

__all__ = [
    "Base",
    "BaseSyncState",
    "PendingConflict",
    "Project",
    "TranslationEntry",
]
