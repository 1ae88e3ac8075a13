import dataclasses
from datetime import timedelta

import pytest

from cogniflow.application.collection_service import (
    delete_deck,
    delete_series,
    mark_deck_completed,
    purge_deck,
    purge_series,
    restore_deck,
    restore_series,
)
from cogniflow.application.sync import diff, merge
from cogniflow.domain.errors import EntityNotFoundError
from cogniflow.domain.sync.models import ChangeKind, Side


@pytest.fixture
def snapshot(make_deck, make_series, make_snapshot):
    return make_snapshot(
        [make_deck("A"), make_deck("B"), make_deck("C", archived=True)],
        [
            make_series("S1", levels=[("Basics", ["A", "C"])]),
            make_series("S2", levels=[("Other", ["B", "A"])]),
        ],
        progress={"S1": {"A"}, "S2": {"A", "B"}},
    )


class TestDecks:
    def test_delete_leaves_tombstone_and_unlinks(self, snapshot, now):
        result = delete_deck(snapshot, "A", now)

        deck = result.deck("A")
        assert deck.is_deleted
        assert deck.deleted_at == now
        assert deck.last_modified == now
        assert result.series("S1").deck_ids == ["C"]
        assert result.series("S2").deck_ids == ["B"]
        assert result.series("S1").last_modified == now

    def test_delete_clears_archived(self, snapshot, now):
        deck = delete_deck(snapshot, "C", now).deck("C")

        assert deck.is_deleted
        assert deck.archived is False

    def test_restore(self, snapshot, now):
        later = now + timedelta(hours=1)
        trashed = delete_deck(snapshot, "A", now)

        result = restore_deck(trashed, "A", later)

        assert not result.deck("A").is_deleted
        assert result.deck("A").last_modified == later

    def test_restore_wins_over_older_tombstone_on_sync(self, snapshot, now):
        later = now + timedelta(hours=1)
        trashed = delete_deck(snapshot, "B", now)
        restored = restore_deck(trashed, "B", later)

        # The other device still holds the tombstone
        merged = merge(diff(restored, trashed, trashed), now=later)

        assert not merged.deck("B").is_deleted

    def test_purge_removes_every_reference(self, snapshot, now, make_log):
        with_log = dataclasses.replace(snapshot, reviews=(make_log("r1"),))

        result = purge_deck(with_log, "A", now)

        assert result.deck("A") is None
        assert result.series("S1").deck_ids == ["C"]
        assert result.series("S2").deck_ids == ["B"]
        assert result.series_progress == {"S1": frozenset(), "S2": frozenset({"B"})}
        assert [log.id for log in result.reviews] == ["r1"]

    def test_purge_propagates_as_removal(self, snapshot, now):
        purged = purge_deck(snapshot, "B", now)

        report = diff(purged, snapshot, snapshot)

        removed = [c for c in report.changes if c.entity_id == "B"]
        assert [(c.change, c.side) for c in removed] == [(ChangeKind.REMOVED, Side.LOCAL)]
        assert merge(report, now=now).deck("B") is None


class TestSeries:
    def test_delete_trashes_its_decks(self, snapshot, now):
        result = delete_series(snapshot, "S1", now)

        assert result.series("S1").is_deleted
        assert result.deck("A").is_deleted
        assert result.deck("C").is_deleted
        assert result.deck("C").archived is False
        assert not result.deck("B").is_deleted
        # Levels keep their deck ids for a later restore
        assert result.series("S1").deck_ids == ["A", "C"]

    def test_restore_brings_back_decks_trashed_with_it(self, snapshot, now):
        earlier = now - timedelta(hours=1)
        later = now + timedelta(hours=1)
        # C was trashed on its own before the series
        trashed = delete_series(delete_deck(snapshot, "C", earlier), "S1", now)

        result = restore_series(trashed, "S1", later)

        assert not result.series("S1").is_deleted
        assert not result.deck("A").is_deleted
        assert result.deck("C").is_deleted

    def test_restore_live_series_is_a_no_op(self, snapshot, now):
        assert restore_series(snapshot, "S1", now) is snapshot

    def test_purge_removes_series_and_decks(self, snapshot, now):
        result = purge_series(snapshot, "S1", now)

        assert result.series("S1") is None
        assert [d.id for d in result.decks] == ["B"]
        assert result.series("S2").deck_ids == ["B"]
        assert result.series_progress == {"S2": frozenset({"B"})}


def test_mark_deck_completed(snapshot, now):
    result = mark_deck_completed(snapshot, "S1", "C", now)

    assert result.series_progress["S1"] == {"A", "C"}
    assert mark_deck_completed(result, "S1", "C", now) is result


@pytest.mark.parametrize(
    "operation",
    [delete_deck, restore_deck, purge_deck, delete_series, restore_series, purge_series],
)
def test_unknown_entities(snapshot, now, operation):
    with pytest.raises(EntityNotFoundError):
        operation(snapshot, "Z", now)


def test_mark_completed_in_unknown_series(snapshot, now):
    with pytest.raises(EntityNotFoundError):
        mark_deck_completed(snapshot, "Z", "A", now)
