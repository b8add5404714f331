"""JSON resource parser.

Accepted shapes, flat or nested (nested keys are joined with ``.``)::

    {"greeting": "Hello"}
    {"greeting": {"_value": "Hello", "_comment": "Home page"}}
    {"items": {"_plural": {"one": "{0} item", "other": "{0} items"}, "_comment": "..."}}

Keys starting with ``_`` are metadata and never become entries.  Scalars other
than strings are stored as their JSON text; arrays are stored as JSON text with
the comment ``[array]``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from locsync.exceptions import ParseError
from locsync.parsers.base import language_from_file_name
from locsync.services.entries import SyncEntry
from locsync.services.hashing import compute_hash, stamp_plural_group

logger = logging.getLogger(__name__)


def _scalar_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    return json.dumps(value, ensure_ascii=False)


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    return _scalar_text(value)


class JsonResourceParser:
    """Parser for JSON translation files (``strings.json``, ``strings.fr.json``)."""

    format = "json"

    def matches(self, file_path: str) -> bool:
        return file_path.lower().endswith(".json")

    def descend_into(self, directory: str) -> bool:
        return not directory.rsplit("/", 1)[-1].startswith(".")

    def language_of(self, file_path: str, default_language: str) -> str:
        return language_from_file_name(file_path, default_language)

    def parse(self, file_path: str, content: str, default_language: str) -> list[SyncEntry]:
        language = self.language_of(file_path, default_language)
        try:
            document = json.loads(content.lstrip("\ufeff"))
        except json.JSONDecodeError as exc:
            raise ParseError(file_path, f"invalid JSON at line {exc.lineno}: {exc.msg}") from exc
        if not isinstance(document, dict):
            raise ParseError(file_path, "top-level JSON value must be an object")

        entries: list[SyncEntry] = []
        self._parse_object(document, "", language, file_path, entries)
        logger.debug("Parsed %d entries from %s (language: %s)", len(entries), file_path, language)
        return entries

    def _parse_object(
        self,
        element: dict[str, Any],
        prefix: str,
        language: str,
        file_path: str,
        entries: list[SyncEntry],
    ) -> None:
        for name, value in element.items():
            if name.startswith("_"):
                continue
            key = f"{prefix}.{name}" if prefix else name
            if isinstance(value, dict):
                self._parse_value_object(value, key, language, file_path, entries)
            elif isinstance(value, list):
                text = json.dumps(value, ensure_ascii=False)
                entries.append(self._entry(key, language, text, "[array]"))
            else:
                entries.append(self._entry(key, language, _scalar_text(value), None))

    def _parse_value_object(
        self,
        element: dict[str, Any],
        key: str,
        language: str,
        file_path: str,
        entries: list[SyncEntry],
    ) -> None:
        comment = _optional_text(element.get("_comment"))
        if "_value" in element:
            entries.append(self._entry(key, language, _scalar_text(element["_value"]), comment))
            return
        if "_plural" in element:
            forms = element["_plural"]
            if not isinstance(forms, dict) or not forms:
                raise ParseError(file_path, f"'{key}': _plural must be a non-empty object")
            entries.extend(self._plural_entries(key, language, forms, comment))
            return
        self._parse_object(element, key, language, file_path, entries)

    @staticmethod
    def _entry(key: str, language: str, value: str, comment: str | None) -> SyncEntry:
        return SyncEntry(
            key=key,
            language_code=language,
            value=value,
            comment=comment,
            content_hash=compute_hash(value, comment),
        )

    @staticmethod
    def _plural_entries(
        key: str, language: str, forms: dict[str, Any], comment: str | None
    ) -> list[SyncEntry]:
        values = {category: _scalar_text(text) for category, text in forms.items()}
        anchor = values.get("other") or next(iter(values.values()))
        group = [
            SyncEntry(
                key=key,
                language_code=language,
                plural_form=category,
                value=text,
                comment=comment,
                content_hash="",
                is_plural=True,
                source_plural_text=anchor,
            )
            for category, text in values.items()
        ]
        return stamp_plural_group(group)
