"""Tests for the merge engine."""

import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from cogniflow.application.sync.differ import diff
from cogniflow.application.sync.merge import merge
from cogniflow.domain.errors import ConflictUnresolvedError
from cogniflow.domain.sync.models import EntityKind, ResolutionChoice, UserResolution

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(hours=1)
T2 = T0 + timedelta(hours=2)
T3 = T0 + timedelta(hours=3)
MERGED_AT = T0 + timedelta(days=1)


@pytest.fixture
def base(make_deck, make_series, make_snapshot):
    return make_snapshot(
        [make_deck("A"), make_deck("B")],
        [make_series("S1", levels=[("Level 1", ["A", "B"])])],
    )


def _edit_deck(snapshot, deck_id, at, **fields):
    decks = tuple(
        dataclasses.replace(d, last_modified=at, **fields) if d.id == deck_id else d
        for d in snapshot.decks
    )
    return dataclasses.replace(snapshot, decks=decks, last_modified=at)


def keep(choice, entity_id="A", kind=EntityKind.DECK):
    return UserResolution(kind, entity_id, ResolutionChoice(choice))


def test_merging_identical_snapshots_is_identity(base):
    assert merge(diff(base, base, base), [], MERGED_AT) == base


def test_unconflicted_changes_from_both_sides_are_applied(base, make_deck):
    local = _edit_deck(base, "A", T1, name="Local A")
    remote = _edit_deck(base, "B", T2, name="Remote B")
    remote = dataclasses.replace(remote, decks=remote.decks + (make_deck("C", last_modified=T2),))

    merged = merge(diff(local, remote, base), [], MERGED_AT)

    assert [d.id for d in merged.decks] == ["A", "B", "C"]
    assert merged.deck("A").name == "Local A"
    assert merged.deck("B").name == "Remote B"
    assert merged.last_modified == MERGED_AT


def test_conflict_resolved_per_user_choice(base):
    local = _edit_deck(base, "A", T1, name="Local")
    remote = _edit_deck(base, "A", T2, name="Remote")
    report = diff(local, remote, base)

    assert merge(report, [keep("local")], MERGED_AT).deck("A").name == "Local"
    assert merge(report, [keep("remote")], MERGED_AT).deck("A").name == "Remote"


def test_missing_resolution_raises(base):
    local = _edit_deck(base, "A", T1, name="Local")
    remote = _edit_deck(base, "A", T2, name="Remote")

    with pytest.raises(ConflictUnresolvedError) as exc:
        merge(diff(local, remote, base), [], MERGED_AT)

    assert exc.value.unresolved == [("deck", "A")]


def test_resolution_for_entity_not_in_conflict(base):
    with pytest.raises(ValueError, match="matches no conflict"):
        merge(diff(base, base, base), [keep("local", "B")], MERGED_AT)


class TestTombstones:
    def test_deletion_beats_earlier_rename(self, base):
        local = _edit_deck(base, "A", T1, name="Renamed")
        remote = _edit_deck(base, "A", T2, deleted_at=T2)

        merged = merge(diff(local, remote, base), [keep("local")], MERGED_AT)

        assert merged.deck("A").is_deleted

    def test_rename_after_deletion_survives(self, base):
        local = _edit_deck(base, "A", T3, name="Renamed later")
        remote = _edit_deck(base, "A", T2, deleted_at=T2)

        merged = merge(diff(local, remote, base), [keep("local")], MERGED_AT)

        assert not merged.deck("A").is_deleted
        assert merged.deck("A").name == "Renamed later"

    def test_unconflicted_deletion_propagates(self, base):
        remote = _edit_deck(base, "A", T1, deleted_at=T1)

        merged = merge(diff(base, remote, base), [], MERGED_AT)

        assert merged.deck("A").deleted_at == T1


def test_purged_deck_is_pruned_from_series(base):
    remote = dataclasses.replace(base, decks=(base.deck("A"),), last_modified=T1)

    merged = merge(diff(base, remote, base), [], MERGED_AT)

    assert [d.id for d in merged.decks] == ["A"]
    assert merged.series("S1").deck_ids == ["A"]


def test_reviews_and_progress_are_unioned(base, make_log):
    local = dataclasses.replace(
        base, reviews=(make_log("r1"),), series_progress={"S1": frozenset({"A", "B"})}
    )
    remote = dataclasses.replace(
        base, reviews=(make_log("r1"), make_log("r2")), series_progress={"S1": frozenset({"B", "C"})}
    )

    merged = merge(diff(local, remote, base), [], MERGED_AT)

    assert [r.id for r in merged.reviews] == ["r1", "r2"]
    assert merged.series_progress == {"S1": {"A", "B", "C"}}


def test_merge_is_idempotent_on_its_own_output(base):
    local = _edit_deck(base, "A", T1, name="Local")
    remote = _edit_deck(base, "B", T2, name="Remote")

    merged = merge(diff(local, remote, base), [], MERGED_AT)

    assert merge(diff(merged, merged, merged), [], MERGED_AT + timedelta(days=1)) == merged


def test_version_is_highest_of_both_sides(base):
    remote = dataclasses.replace(base, version=base.version + 1)
    assert merge(diff(base, remote, base), [], MERGED_AT).version == base.version + 1


class TestSections:
    def test_remote_only_section_change_is_taken(self, base):
        shared = dataclasses.replace(base, extra={"folders": ["f1"], "settings": {"a": 1}})
        local = dataclasses.replace(shared, extra={"folders": ["f1"], "settings": {"a": 2}})
        remote = dataclasses.replace(shared, extra={"folders": ["f1", "f2"], "settings": {"a": 1}})

        merged = merge(diff(local, remote, shared), [], MERGED_AT)

        assert merged.extra == {"folders": ["f1", "f2"], "settings": {"a": 2}}

    def test_section_only_on_remote_is_added(self, base):
        remote = dataclasses.replace(base, extra={"folders": ["f1"]})

        merged = merge(diff(base, remote, base), [], MERGED_AT)

        assert merged.extra == {"folders": ["f1"]}
        assert merged.last_modified == MERGED_AT

    def test_section_removed_on_remote_is_dropped(self, base):
        shared = dataclasses.replace(base, extra={"folders": ["f1"]})
        remote = dataclasses.replace(base, extra={})

        merged = merge(diff(shared, remote, shared), [], MERGED_AT)

        assert merged.extra == {}

    def test_conflicting_section_needs_a_resolution(self, base):
        shared = dataclasses.replace(base, extra={"folders": ["f1"]})
        local = dataclasses.replace(shared, extra={"folders": ["f1", "mine"]})
        remote = dataclasses.replace(shared, extra={"folders": ["f1", "theirs"]})
        report = diff(local, remote, shared)

        with pytest.raises(ConflictUnresolvedError):
            merge(report, [], MERGED_AT)

        merged = merge(report, [keep("remote", "folders", EntityKind.SECTION)], MERGED_AT)
        assert merged.extra == {"folders": ["f1", "theirs"]}
