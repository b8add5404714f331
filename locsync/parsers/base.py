"""Format parser protocol and language detection helpers."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from locsync.services.entries import SyncEntry


@runtime_checkable
class FormatParser(Protocol):
    """Protocol for per-format translation file parsers.

    ``parse`` returns entries already stamped with their content hash and
    raises :class:`~locsync.exceptions.ParseError` for malformed content.
    """

    format: str

    def matches(self, file_path: str) -> bool:
        """Return True if the file belongs to this format."""
        ...

    def descend_into(self, directory: str) -> bool:
        """Return True if discovery should list this directory."""
        ...

    def language_of(self, file_path: str, default_language: str) -> str:
        """Return the language a file holds."""
        ...

    def parse(self, file_path: str, content: str, default_language: str) -> list[SyncEntry]:
        """Parse one file into entries."""
        ...


def language_from_file_name(file_path: str, default_language: str) -> str:
    """Detect the language from a ``name.<lang>.<ext>`` file name.

    ``strings.json`` is the default language, ``strings.fr.json`` is ``fr``.
    Codes are lower-cased so both sides compare equal.
    """
    parts = PurePosixPath(file_path).name.split(".")
    if len(parts) >= 3 and parts[-2]:
        return parts[-2].lower()
    return default_language.lower()
