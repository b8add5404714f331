"""Three-way merge: classify every identity across remote, local, and base snapshots.

The merge is a pure function of three in-memory maps:

* ``remote`` (G): entries freshly parsed from the repository,
* ``local`` (D): entries currently stored in the database,
* ``base`` (B): content hashes recorded at the last successful pull.

Every identity in G ∪ D ∪ B receives exactly one outcome.  When no base is
recorded the outcome is always a safe one (add, keep, or needs review): first
contact between two independently maintained stores never destroys data.

Plural groups are merge units.  All forms of a (key, language) group are
compared through the group hash and share one outcome; a subset of forms is
never applied on its own.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from locsync.services.hashing import compute_plural_hash, group_comment

if TYPE_CHECKING:
    from collections.abc import Mapping

    from locsync.services.entries import EntryIdentity, SyncEntry

logger = logging.getLogger(__name__)

# Base value for a plural group whose forms were recorded with different
# hashes.  Never equal to a real digest, so the group cannot look unchanged.
_MIXED_BASE = "<mixed>"


class MergeOutcome(StrEnum):
    """Classification of one identity."""

    UNCHANGED = "unchanged"
    TO_APPLY = "to_apply"
    TO_ADD = "to_add"
    TO_DELETE = "to_delete"
    CONFLICT = "conflict"
    NEEDS_REVIEW = "needs_review"


class ConflictType(StrEnum):
    """Kind of pending item stored for human resolution."""

    BOTH_MODIFIED = "BothModified"
    DELETED_IN_CLOUD = "DeletedInCloud"
    DELETED_IN_GITHUB = "DeletedInGitHub"
    NEEDS_REVIEW = "NeedsReview"


class ConflictStrategy(StrEnum):
    """How a pull treats conflicts before applying."""

    PROMPT = "prompt"
    ACCEPT_REMOTE = "accept-remote"
    ACCEPT_LOCAL = "accept-local"

    @classmethod
    def _missing_(cls, value: object) -> ConflictStrategy | None:
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower().replace("_", "-")
        for member in cls:
            if member.value == normalized:
                return member
        aliases = {"github": cls.ACCEPT_REMOTE, "cloud": cls.ACCEPT_LOCAL}
        return aliases.get(normalized)


@dataclass(frozen=True)
class PullConflict:
    """A conflict or needs-review item for one identity."""

    identity: EntryIdentity
    conflict_type: ConflictType
    remote_value: str | None
    local_value: str | None
    local_modified_at: datetime | None = None
    remote_comment: str | None = None
    remote_hash: str | None = None


@dataclass
class MergeResult:
    """Partition of all identities into merge outcomes."""

    to_apply: list[SyncEntry] = field(default_factory=list)
    to_add: list[SyncEntry] = field(default_factory=list)
    to_delete: list[SyncEntry] = field(default_factory=list)
    conflicts: dict[EntryIdentity, PullConflict] = field(default_factory=dict)
    needs_review: list[PullConflict] = field(default_factory=list)
    outcomes: dict[EntryIdentity, MergeOutcome] = field(default_factory=dict)

    @property
    def unchanged(self) -> int:
        return sum(1 for outcome in self.outcomes.values() if outcome is MergeOutcome.UNCHANGED)

    @property
    def pending(self) -> list[PullConflict]:
        """Conflicts followed by needs-review items, the set persisted after a pull."""
        return [*self.conflicts.values(), *self.needs_review]

    @property
    def has_changes(self) -> bool:
        return bool(self.to_apply or self.to_add or self.to_delete)

    def counts(self) -> Counter[MergeOutcome]:
        return Counter(self.outcomes.values())


def _unit_hash(forms: list[SyncEntry]) -> str:
    """Hash of one side of a merge unit.

    Forms of a plural group normally share the group hash; if they disagree
    (a partially re-stamped group) the group hash is recomputed from values.
    """
    hashes = {entry.content_hash for entry in forms}
    if len(hashes) == 1:
        return hashes.pop()
    return compute_plural_hash(
        {entry.plural_form: entry.value for entry in forms}, group_comment(forms)
    )


def _unit_base(identities: list[EntryIdentity], base: Mapping[EntryIdentity, str]) -> str | None:
    hashes = {base[identity] for identity in identities if identity in base}
    if not hashes:
        return None
    if len(hashes) == 1:
        return hashes.pop()
    return _MIXED_BASE


def _record_pending(
    result: MergeResult,
    identities: list[EntryIdentity],
    conflict_type: ConflictType,
    remote: Mapping[EntryIdentity, SyncEntry],
    local: Mapping[EntryIdentity, SyncEntry],
) -> None:
    outcome = (
        MergeOutcome.NEEDS_REVIEW
        if conflict_type is ConflictType.NEEDS_REVIEW
        else MergeOutcome.CONFLICT
    )
    for identity in identities:
        remote_entry = remote.get(identity)
        local_entry = local.get(identity)
        if remote_entry is None and local_entry is None:
            # Base-only form of the group: already gone on both sides.
            result.outcomes[identity] = MergeOutcome.UNCHANGED
            continue
        conflict = PullConflict(
            identity=identity,
            conflict_type=conflict_type,
            remote_value=remote_entry.value if remote_entry is not None else None,
            local_value=local_entry.value if local_entry is not None else None,
            local_modified_at=local_entry.updated_at if local_entry is not None else None,
            remote_comment=remote_entry.comment if remote_entry is not None else None,
            remote_hash=remote_entry.content_hash if remote_entry is not None else None,
        )
        if outcome is MergeOutcome.NEEDS_REVIEW:
            result.needs_review.append(conflict)
        else:
            result.conflicts[identity] = conflict
        result.outcomes[identity] = outcome


def _classify_unit(
    identities: list[EntryIdentity],
    remote: Mapping[EntryIdentity, SyncEntry],
    local: Mapping[EntryIdentity, SyncEntry],
    base: Mapping[EntryIdentity, str],
    result: MergeResult,
) -> None:
    remote_forms = [remote[identity] for identity in identities if identity in remote]
    local_forms = [local[identity] for identity in identities if identity in local]
    base_hash = _unit_base(identities, base)

    def mark(outcome: MergeOutcome, targets: list[EntryIdentity] | None = None) -> None:
        for identity in identities if targets is None else targets:
            result.outcomes[identity] = outcome

    if remote_forms and local_forms:
        remote_hash = _unit_hash(remote_forms)
        local_hash = _unit_hash(local_forms)
        if remote_hash == local_hash:
            mark(MergeOutcome.UNCHANGED)
        elif base_hash is None:
            _record_pending(result, identities, ConflictType.NEEDS_REVIEW, remote, local)
        elif base_hash == local_hash:
            # Only the remote changed.
            mark(MergeOutcome.UNCHANGED)
            result.to_apply.extend(remote_forms)
            mark(MergeOutcome.TO_APPLY, [entry.identity for entry in remote_forms])
            stale = [entry for entry in local_forms if entry.identity not in remote]
            result.to_delete.extend(stale)
            mark(MergeOutcome.TO_DELETE, [entry.identity for entry in stale])
        elif base_hash == remote_hash:
            # Only the local side changed: it wins without a write.
            mark(MergeOutcome.UNCHANGED)
        else:
            _record_pending(result, identities, ConflictType.BOTH_MODIFIED, remote, local)
    elif remote_forms:
        if base_hash is None:
            mark(MergeOutcome.UNCHANGED)
            result.to_add.extend(remote_forms)
            mark(MergeOutcome.TO_ADD, [entry.identity for entry in remote_forms])
        else:
            _record_pending(result, identities, ConflictType.DELETED_IN_CLOUD, remote, local)
    elif local_forms:
        if base_hash is None:
            mark(MergeOutcome.UNCHANGED)
        elif base_hash == _unit_hash(local_forms):
            mark(MergeOutcome.UNCHANGED)
            result.to_delete.extend(local_forms)
            mark(MergeOutcome.TO_DELETE, [entry.identity for entry in local_forms])
        else:
            _record_pending(result, identities, ConflictType.DELETED_IN_GITHUB, remote, local)
    else:
        # Recorded in base only: reconciled away on both sides.
        mark(MergeOutcome.UNCHANGED)


def compute_merge(
    remote: Mapping[EntryIdentity, SyncEntry],
    local: Mapping[EntryIdentity, SyncEntry],
    base: Mapping[EntryIdentity, str],
) -> MergeResult:
    """Classify every identity in ``remote`` ∪ ``local`` ∪ ``base``.

    Deterministic: identical snapshots always produce identical results, in
    identity order.
    """
    units: dict[tuple[str, str, bool], list[EntryIdentity]] = {}
    for identity in sorted(set(remote) | set(local) | set(base)):
        units.setdefault(identity.merge_unit, []).append(identity)

    result = MergeResult()
    for unit in sorted(units):
        _classify_unit(units[unit], remote, local, base, result)

    logger.info(
        "Merge result: %d to apply, %d to add, %d to delete, %d unchanged, "
        "%d conflicts, %d needs review",
        len(result.to_apply),
        len(result.to_add),
        len(result.to_delete),
        result.unchanged,
        len(result.conflicts),
        len(result.needs_review),
    )
    return result


def apply_strategy(
    result: MergeResult,
    strategy: ConflictStrategy,
    remote: Mapping[EntryIdentity, SyncEntry],
    local: Mapping[EntryIdentity, SyncEntry],
) -> MergeResult:
    """Overlay a conflict strategy on a classification.  Returns a new result.

    ``accept-remote`` turns every conflict into the remote side's write: an
    upsert for ``BothModified``/``DeletedInCloud``, a delete for
    ``DeletedInGitHub``.  ``accept-local`` drops every conflict without
    writing.  ``prompt`` returns the result unchanged.  Needs-review items are
    never resolved by a strategy.
    """
    if strategy is ConflictStrategy.PROMPT or not result.conflicts:
        return result

    overlaid = MergeResult(
        to_apply=list(result.to_apply),
        to_add=list(result.to_add),
        to_delete=list(result.to_delete),
        conflicts={},
        needs_review=list(result.needs_review),
        outcomes=dict(result.outcomes),
    )
    for identity, conflict in result.conflicts.items():
        if strategy is ConflictStrategy.ACCEPT_LOCAL:
            overlaid.outcomes[identity] = MergeOutcome.UNCHANGED
        elif conflict.conflict_type is ConflictType.DELETED_IN_GITHUB or identity not in remote:
            overlaid.to_delete.append(local[identity])
            overlaid.outcomes[identity] = MergeOutcome.TO_DELETE
        else:
            overlaid.to_apply.append(remote[identity])
            overlaid.outcomes[identity] = MergeOutcome.TO_APPLY

    logger.info(
        "Strategy %s resolved %d conflicts automatically", strategy, len(result.conflicts)
    )
    return overlaid
