"""Property-based tests for merge classification invariants."""

from __future__ import annotations

import string

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from locsync.services.entries import EntryIdentity, SyncEntry
from locsync.services.hashing import compute_hash
from locsync.services.merge_service import (
    ConflictStrategy,
    MergeOutcome,
    MergeResult,
    apply_strategy,
    compute_merge,
)

PROPERTY_SETTINGS = settings(
    max_examples=250,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

_KEY = st.text(alphabet=string.ascii_lowercase, min_size=1, max_size=4)
_LANGUAGE = st.sampled_from(["en", "fr"])
_FORM = st.sampled_from(["", "", "one", "other"])
_IDENTITY = st.builds(EntryIdentity, _KEY, _LANGUAGE, _FORM)
_VALUE = st.sampled_from(["a", "b", "c", ""])
_VALUES = st.dictionaries(keys=_IDENTITY, values=_VALUE, max_size=8)


def _entries(values: dict[EntryIdentity, str]) -> dict[EntryIdentity, SyncEntry]:
    return {
        identity: SyncEntry(
            key=identity.key,
            language_code=identity.language_code,
            plural_form=identity.plural_form,
            value=value,
            content_hash=compute_hash(value),
            is_plural=identity.is_plural_form,
            version=1,
        )
        for identity, value in values.items()
    }


def _signature(result: MergeResult) -> tuple:
    return (
        tuple(entry.identity for entry in result.to_apply),
        tuple(entry.identity for entry in result.to_add),
        tuple(entry.identity for entry in result.to_delete),
        tuple(result.conflicts),
        tuple(item.identity for item in result.needs_review),
        tuple(sorted(result.outcomes.items())),
    )


class TestMergeProperties:
    @PROPERTY_SETTINGS
    @given(remote=_VALUES, local=_VALUES, base=_VALUES)
    def test_classification_is_deterministic(
        self,
        remote: dict[EntryIdentity, str],
        local: dict[EntryIdentity, str],
        base: dict[EntryIdentity, str],
    ) -> None:
        base_hashes = {identity: compute_hash(value) for identity, value in base.items()}
        first = compute_merge(_entries(remote), _entries(local), base_hashes)
        second = compute_merge(_entries(remote), _entries(local), base_hashes)
        assert _signature(first) == _signature(second)

    @PROPERTY_SETTINGS
    @given(remote=_VALUES, local=_VALUES, base=_VALUES)
    def test_every_identity_is_classified_once(
        self,
        remote: dict[EntryIdentity, str],
        local: dict[EntryIdentity, str],
        base: dict[EntryIdentity, str],
    ) -> None:
        base_hashes = {identity: compute_hash(value) for identity, value in base.items()}
        result = compute_merge(_entries(remote), _entries(local), base_hashes)
        assert set(result.outcomes) == set(remote) | set(local) | set(base)

        written = [entry.identity for entry in [*result.to_apply, *result.to_add]]
        deleted = [entry.identity for entry in result.to_delete]
        pending = [item.identity for item in result.pending]
        assert len(written + deleted + pending) == len(set(written + deleted + pending))

    @PROPERTY_SETTINGS
    @given(values=_VALUES, base=_VALUES)
    def test_identical_sides_are_unchanged_for_any_base(
        self, values: dict[EntryIdentity, str], base: dict[EntryIdentity, str]
    ) -> None:
        base_hashes = {identity: compute_hash(value) for identity, value in base.items()}
        result = compute_merge(_entries(values), _entries(values), base_hashes)
        assert not result.has_changes
        assert result.pending == []
        assert set(result.outcomes.values()) <= {MergeOutcome.UNCHANGED}

    @PROPERTY_SETTINGS
    @given(remote=_VALUES, local=_VALUES)
    def test_without_base_nothing_is_deleted_or_conflicted(
        self, remote: dict[EntryIdentity, str], local: dict[EntryIdentity, str]
    ) -> None:
        result = compute_merge(_entries(remote), _entries(local), {})
        assert result.to_delete == []
        assert result.to_apply == []
        assert result.conflicts == {}
        added = {entry.identity for entry in result.to_add}
        assert all(identity in remote and identity not in local for identity in added)

    @PROPERTY_SETTINGS
    @given(remote=_VALUES, local=_VALUES, base=_VALUES)
    def test_accept_remote_leaves_no_conflicts(
        self,
        remote: dict[EntryIdentity, str],
        local: dict[EntryIdentity, str],
        base: dict[EntryIdentity, str],
    ) -> None:
        remote_entries = _entries(remote)
        local_entries = _entries(local)
        base_hashes = {identity: compute_hash(value) for identity, value in base.items()}
        result = compute_merge(remote_entries, local_entries, base_hashes)
        overlaid = apply_strategy(
            result, ConflictStrategy.ACCEPT_REMOTE, remote_entries, local_entries
        )
        assert overlaid.conflicts == {}
        resolved = len(overlaid.to_apply) + len(overlaid.to_delete)
        assert resolved == len(result.to_apply) + len(result.to_delete) + len(result.conflicts)
        assert overlaid.needs_review == result.needs_review
