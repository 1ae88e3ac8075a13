import dataclasses

import pytest

from cogniflow.domain.models import DeckType, EngineConfig, LeechAction


def test_items_key_per_deck_type():
    assert DeckType.FLASHCARD.items_key == "cards"
    assert DeckType.QUIZ.items_key == "questions"
    assert DeckType.LEARNING.items_key == "questions"


def test_new_item(make_item, now):
    assert make_item().is_new
    assert not make_item(interval=3).is_new
    assert not make_item(last_reviewed=now).is_new


def test_deck_lookup(make_deck, make_item, make_snapshot):
    snapshot = make_snapshot([make_deck("A", items=[make_item("c1")])])

    assert snapshot.deck("A").item("c1").id == "c1"
    assert snapshot.deck("A").item("zz") is None
    assert snapshot.deck("B") is None


def test_series_deck_ids_follow_level_order(make_series):
    series = make_series(levels=(("Basics", ("A", "B")), ("Advanced", ("C",))))

    assert series.deck_ids == ["A", "B", "C"]


def test_tombstone(make_deck, now):
    assert not make_deck().is_deleted
    assert make_deck(deleted_at=now).is_deleted


def test_entities_are_immutable(make_deck):
    with pytest.raises(dataclasses.FrozenInstanceError):
        make_deck().name = "Renamed"


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.leech_threshold >= 1
        assert config.leech_action is LeechAction.SUSPEND
        assert 0.0 <= config.retention <= 1.0

    @pytest.mark.parametrize(
        "fields",
        [
            {"leech_threshold": 0},
            {"retention": 1.2},
            {"retention": -0.1},
            {"new_items_per_day": -1},
        ],
    )
    def test_rejects_out_of_range(self, fields):
        with pytest.raises(ValueError):
            EngineConfig(**fields)
