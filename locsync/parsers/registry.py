"""Format registry and the multi-file parse entry point."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from locsync.exceptions import ParseError
from locsync.parsers.json_parser import JsonResourceParser

if TYPE_CHECKING:
    from collections.abc import Mapping

    from locsync.parsers.base import FormatParser
    from locsync.services.entries import EntryIdentity, SyncEntry

logger = logging.getLogger(__name__)

FORMATS: dict[str, type[JsonResourceParser]] = {
    "json": JsonResourceParser,
}


class UnsupportedFormatError(ValueError):
    """Raised for a project format without a parser."""


@dataclass
class ParseOutcome:
    """Entries parsed from a set of files plus the files that failed.

    ``failed_languages`` holds the language of every failed file: the entries
    of those languages are unknown, not absent.
    """

    entries: dict[EntryIdentity, SyncEntry] = field(default_factory=dict)
    failures: list[ParseError] = field(default_factory=list)
    failed_languages: set[str] = field(default_factory=set)


def get_parser(format_name: str) -> FormatParser:
    """Return the parser for a format.  Raises UnsupportedFormatError if unknown."""
    parser_cls = FORMATS.get(format_name.strip().lower())
    if parser_cls is None:
        msg = f"Unsupported format: {format_name!r}. Available: {list(FORMATS)}"
        raise UnsupportedFormatError(msg)
    return parser_cls()


def parse_files(
    format_name: str,
    files: Mapping[str, str],
    default_language: str,
) -> ParseOutcome:
    """Parse every file; a file that fails is skipped and reported.

    Files are processed in path order so that duplicate identities resolve
    deterministically (the later path wins).
    """
    parser = get_parser(format_name)
    outcome = ParseOutcome()
    for file_path in sorted(files):
        try:
            entries = parser.parse(file_path, files[file_path], default_language)
        except ParseError as exc:
            logger.warning("Failed to parse file %s, skipping: %s", file_path, exc.message)
            outcome.failures.append(exc)
            outcome.failed_languages.add(parser.language_of(file_path, default_language))
            continue
        for entry in entries:
            outcome.entries[entry.identity] = entry

    logger.info(
        "Parsed %d entries from %d files (%d failed)",
        len(outcome.entries),
        len(files),
        len(outcome.failures),
    )
    return outcome
