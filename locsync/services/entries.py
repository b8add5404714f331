"""In-memory snapshot types shared by the parser, the merge, and the apply steps."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple


class EntryIdentity(NamedTuple):
    """Composite identity of one translatable unit."""

    key: str
    language_code: str
    plural_form: str = ""

    @property
    def is_plural_form(self) -> bool:
        return self.plural_form != ""

    @property
    def merge_unit(self) -> tuple[str, str, bool]:
        """Unit the identity is reconciled in.

        All forms of a plural group share one unit; a non-plural entry is a
        unit of its own.  The boolean keeps a singular entry and a plural group
        with the same key apart.
        """
        return (self.key, self.language_code, self.is_plural_form)

    def label(self) -> str:
        text = f"{self.key} [{self.language_code}]"
        if self.plural_form:
            text += f" ({self.plural_form})"
        return text


@dataclass(frozen=True)
class SyncEntry:
    """Snapshot of one entry on either side of a sync.

    Remote entries come from the parser; local entries from the database, where
    ``version`` and ``updated_at`` are meaningful.
    """

    key: str
    language_code: str
    value: str | None
    content_hash: str
    plural_form: str = ""
    comment: str | None = None
    is_plural: bool = False
    source_plural_text: str | None = None
    updated_at: datetime | None = None
    version: int = 0

    @property
    def identity(self) -> EntryIdentity:
        return EntryIdentity(self.key, self.language_code, self.plural_form)

