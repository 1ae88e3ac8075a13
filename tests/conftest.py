from datetime import datetime, timedelta, timezone

import pytest

from cogniflow.domain.models import (
    Deck,
    DeckSeries,
    Reviewable,
    ReviewLog,
    ReviewRating,
    SeriesLevel,
    Snapshot,
)

NOW = datetime(2024, 5, 10, 9, 30, tzinfo=timezone.utc)
T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(hours=1)
T2 = T0 + timedelta(hours=2)
T3 = T0 + timedelta(hours=3)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_item():
    def _make(item_id="c1", *, due_date=None, **fields) -> Reviewable:
        return Reviewable(id=item_id, due_date=due_date or NOW, **fields)

    return _make


@pytest.fixture
def make_deck():
    def _make(deck_id="A", name=None, *, items=(), last_modified=T0, **fields) -> Deck:
        return Deck(
            id=deck_id,
            name=name or f"Deck {deck_id}",
            items=tuple(items),
            last_modified=last_modified,
            **fields,
        )

    return _make


@pytest.fixture
def make_series():
    def _make(series_id="S1", name=None, *, levels=(), last_modified=T0, **fields) -> DeckSeries:
        return DeckSeries(
            id=series_id,
            name=name or f"Series {series_id}",
            levels=tuple(SeriesLevel(title=title, deck_ids=tuple(ids)) for title, ids in levels),
            created_at=T0,
            last_modified=last_modified,
            **fields,
        )

    return _make


@pytest.fixture
def make_log():
    def _make(log_id, item_id="c1", deck_id="A", *, timestamp=T1, rating=ReviewRating.GOOD):
        return ReviewLog(
            id=log_id,
            item_id=item_id,
            deck_id=deck_id,
            timestamp=timestamp,
            rating=rating,
            new_interval=1,
            ease_factor=2.5,
            mastery_level=0.4,
        )

    return _make


@pytest.fixture
def make_snapshot():
    def _make(decks=(), series=(), *, reviews=(), progress=None, last_modified=T0) -> Snapshot:
        return Snapshot(
            decks=tuple(decks),
            deck_series=tuple(series),
            series_progress={k: frozenset(v) for k, v in (progress or {}).items()},
            reviews=tuple(reviews),
            last_modified=last_modified,
        )

    return _make


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() and the config file location to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config and data
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(
        "cogniflow.application.config.CONFIG_FILE", home / ".config/cogniflow/config.toml"
    )
    for var in ("COGNIFLOW_BACKEND", "COGNIFLOW_DATA_DIR", "COGNIFLOW_LEECH_THRESHOLD"):
        monkeypatch.delenv(var, raising=False)
    return home
