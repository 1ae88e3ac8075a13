"""Tests for the snapshot export/import codec."""

import json
from datetime import datetime, timezone

import pytest

from cogniflow.domain.errors import ValidationError
from cogniflow.domain.models import DeckType, ReviewRating
from cogniflow.infrastructure.serialization import decode_snapshot, encode_snapshot

LEGACY_EXPORT = {
    "version": 9,
    "decks": [
        {
            "id": "d1",
            "name": "Spanish",
            "type": "flashcard",
            "description": "Basics",
            "folderId": None,
            "lastModified": 1715333400000,
            "cards": [
                {
                    "id": 101,
                    "front": "hola",
                    "back": "hello",
                    "dueDate": "2024-05-10T00:00:00.000Z",
                    "interval": 3,
                    "easeFactor": 2.36,
                    "lapses": 1,
                    "masteryLevel": 0.55,
                    "lastReviewed": "2024-05-07T08:15:00.000Z",
                    "tags": ["greeting"],
                }
            ],
        },
        {
            "id": "d2",
            "name": "Physics",
            "type": "learning",
            "description": "",
            "learningMode": "separate",
            "infoCards": [{"id": "i1", "content": "F = ma", "unlocksQuestionIds": ["q1"]}],
            "questions": [
                {
                    "id": "q1",
                    "questionType": "multipleChoice",
                    "questionText": "What is F?",
                    "options": [{"id": "o1", "text": "ma"}],
                    "correctAnswerId": "o1",
                    "detailedExplanation": "Newton",
                    "dueDate": "2024-05-11T00:00:00.000Z",
                    "interval": 0,
                    "easeFactor": 2.5,
                    "lapses": 0,
                }
            ],
        },
    ],
    "deckSeries": [
        {
            "id": "s1",
            "type": "series",
            "name": "Languages",
            "description": "",
            "levels": [{"title": "Level 1", "deckIds": ["d1"]}],
            "createdAt": "2024-04-01T10:00:00.000Z",
        }
    ],
    "seriesProgress": {"s1": ["d1"]},
    "reviews": [
        {
            "itemId": "101",
            "deckId": "d1",
            "timestamp": "2024-05-07T08:15:00.000Z",
            "rating": 3,
            "newInterval": 3,
            "easeFactor": 2.36,
            "masteryLevel": 0.55,
        },
        {
            "id": "rev_1",
            "itemId": "101",
            "deckId": "d1",
            "timestamp": "2024-05-08T08:15:00.000Z",
            "rating": None,
            "newInterval": 3,
            "easeFactor": 2.36,
            "masteryLevel": 0.55,
        },
    ],
    "folders": [{"id": "f1", "name": "School"}],
    "settings": {"leechThreshold": 6},
}


@pytest.fixture
def legacy():
    return decode_snapshot(json.dumps(LEGACY_EXPORT))


class TestDecode:
    def test_reviewables_are_typed(self, legacy):
        card = legacy.deck("d1").item("101")

        assert card.interval == 3
        assert card.ease_factor == 2.36
        assert card.lapses == 1
        assert card.mastery_level == 0.55
        assert card.due_date == datetime(2024, 5, 10, tzinfo=timezone.utc)
        assert card.tags == {"greeting"}
        assert card.content == {"front": "hola", "back": "hello"}

    def test_legacy_values_are_coerced(self, legacy):
        deck = legacy.deck("d1")

        assert deck.last_modified == datetime.fromtimestamp(1715333400, tz=timezone.utc)
        assert deck.item("101") is not None
        # Log ids are derived deterministically when missing
        assert legacy.reviews[0].id == "101@2024-05-07T08:15:00+00:00"
        assert legacy.reviews[0].rating is ReviewRating.GOOD
        assert legacy.reviews[1].rating is None

    def test_deck_types_and_item_lists(self, legacy):
        learning = legacy.deck("d2")

        assert learning.type is DeckType.LEARNING
        assert [q.id for q in learning.items] == ["q1"]
        assert learning.extra["learningMode"] == "separate"
        assert learning.extra["infoCards"][0]["id"] == "i1"

    def test_series_and_progress(self, legacy):
        series = legacy.series("s1")

        assert series.deck_ids == ["d1"]
        assert series.extra == {"type": "series"}
        assert legacy.series_progress == {"s1": {"d1"}}

    def test_unknown_sections_pass_through(self, legacy):
        assert legacy.extra["folders"] == [{"id": "f1", "name": "School"}]
        assert legacy.extra["settings"] == {"leechThreshold": 6}


class TestEncode:
    def test_round_trip_preserves_snapshot(self, legacy):
        assert decode_snapshot(encode_snapshot(legacy)) == legacy

    def test_output_is_canonical(self, legacy):
        text = encode_snapshot(legacy)

        assert encode_snapshot(decode_snapshot(text)) == text
        assert list(json.loads(text)) == sorted(json.loads(text))

    def test_wire_format_uses_camel_case(self, legacy):
        doc = json.loads(encode_snapshot(legacy))

        card = doc["decks"][0]["cards"][0]
        assert card["dueDate"].startswith("2024-05-10T00:00:00")
        assert card["easeFactor"] == 2.36
        assert card["front"] == "hola"
        assert "questions" not in doc["decks"][0]
        assert doc["decks"][1]["questions"][0]["questionText"] == "What is F?"
        assert doc["deckSeries"][0]["levels"][0]["deckIds"] == ["d1"]
        assert doc["seriesProgress"] == {"s1": ["d1"]}


class TestValidation:
    def _broken(self, mutate):
        doc = json.loads(json.dumps(LEGACY_EXPORT))
        mutate(doc)
        return json.dumps(doc)

    def test_missing_due_date(self):
        raw = self._broken(lambda d: d["decks"][0]["cards"][0].pop("dueDate"))

        with pytest.raises(ValidationError) as exc:
            decode_snapshot(raw)

        assert any("dueDate" in p for p in exc.value.problems)

    @pytest.mark.parametrize(
        "field, value",
        [("easeFactor", 1.1), ("interval", -2), ("masteryLevel", 1.4), ("lapses", -1)],
    )
    def test_out_of_range_values_are_rejected(self, field, value):
        def mutate(doc):
            doc["decks"][0]["cards"][0][field] = value

        with pytest.raises(ValidationError):
            decode_snapshot(self._broken(mutate))

    @pytest.mark.parametrize(
        "field, value", [("easeFactor", float("inf")), ("masteryLevel", float("nan"))]
    )
    def test_non_finite_numbers_are_rejected(self, field, value):
        def mutate(doc):
            doc["decks"][0]["cards"][0][field] = value
            doc["reviews"][0][field] = value

        with pytest.raises(ValidationError) as exc:
            decode_snapshot(self._broken(mutate))

        assert any(p.startswith("decks.0") for p in exc.value.problems)
        assert any(p.startswith("reviews.0") for p in exc.value.problems)

    def test_naive_timestamps_are_rejected(self):
        raw = self._broken(lambda d: d["reviews"][0].update(timestamp="2024-05-07T08:15:00"))
        with pytest.raises(ValidationError):
            decode_snapshot(raw)

    def test_invalid_rating(self):
        raw = self._broken(lambda d: d["reviews"][0].update(rating=9))
        with pytest.raises(ValidationError):
            decode_snapshot(raw)

    def test_duplicate_deck_ids(self):
        raw = self._broken(lambda d: d["decks"].append(dict(d["decks"][0])))
        with pytest.raises(ValidationError, match="failed validation"):
            decode_snapshot(raw)

    def test_every_problem_is_listed(self):
        def mutate(doc):
            doc["decks"][0]["cards"][0]["interval"] = -1
            doc["reviews"][1]["masteryLevel"] = 3

        with pytest.raises(ValidationError) as exc:
            decode_snapshot(self._broken(mutate))

        assert len(exc.value.problems) >= 2

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]"])
    def test_not_a_snapshot_document(self, raw):
        with pytest.raises(ValidationError):
            decode_snapshot(raw)
