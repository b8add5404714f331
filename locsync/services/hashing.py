"""Deterministic content fingerprints for translation entries.

The hash is a cross-boundary contract: the remote parser and the database
layer compute it independently and the merge compares hashes, not values.
Inputs are NFC-normalised so visually identical strings from different
sources hash the same.  A plural group is hashed as one unit over all of its
forms and the comment.
"""

from __future__ import annotations

import hashlib
import unicodedata
from dataclasses import replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from locsync.services.entries import SyncEntry

_VALUE_COMMENT_SEPARATOR = "\0"


def _nfc(text: str | None) -> str:
    if not text:
        return ""
    return unicodedata.normalize("NFC", text)


def _digest(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_hash(value: str | None, comment: str | None = None) -> str:
    """Hash a single (non-plural) value and its optional comment.

    Returns a lowercase 64-character SHA-256 hex digest.
    """
    return _digest(_nfc(value) + _VALUE_COMMENT_SEPARATOR + _nfc(comment))


def compute_plural_hash(forms: Mapping[str, str | None], comment: str | None = None) -> str:
    """Hash every form of a plural group plus the comment as one fingerprint.

    Forms are ordered by category (ordinal comparison) so insertion order does
    not matter.  An empty group hashes like an empty value.
    """
    if not forms:
        return compute_hash("", comment)
    parts = [f"{category}={_nfc(forms[category])}|" for category in sorted(forms)]
    return _digest("".join(parts) + _VALUE_COMMENT_SEPARATOR + _nfc(comment))


def group_comment(entries: Iterable[SyncEntry]) -> str | None:
    """Comment shared by a plural group: the first non-empty one by form."""
    for entry in sorted(entries, key=lambda e: e.plural_form):
        if entry.comment:
            return entry.comment
    return None


def stamp_plural_group(entries: Iterable[SyncEntry]) -> list[SyncEntry]:
    """Return the forms of one plural group re-stamped with the shared group hash."""
    forms = list(entries)
    group_hash = compute_plural_hash(
        {entry.plural_form: entry.value for entry in forms}, group_comment(forms)
    )
    return [replace(entry, content_hash=group_hash, is_plural=True) for entry in forms]
