"""
Domain models for the study collection.

These are pure, immutable data structures with no I/O or external dependencies.
Engines return new instances (via ``dataclasses.replace``) instead of mutating.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from .constants import (
    DEFAULT_LEECH_ACTION,
    DEFAULT_LEECH_THRESHOLD,
    DEFAULT_NEW_ITEMS_PER_DAY,
    DEFAULT_RETENTION,
    INITIAL_EASE_FACTOR,
    SNAPSHOT_VERSION,
)


class ReviewRating(IntEnum):
    """User rating after a review (4-point ordinal scale)."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class LeechAction(str, Enum):
    SUSPEND = "suspend"
    TAG = "tag"
    WARN = "warn"


class DeckType(str, Enum):
    FLASHCARD = "flashcard"
    QUIZ = "quiz"
    LEARNING = "learning"

    @property
    def items_key(self) -> str:
        """Snapshot key holding this deck type's reviewables."""
        return "cards" if self is DeckType.FLASHCARD else "questions"


@dataclass(frozen=True)
class Reviewable:
    """
    Any schedulable unit (flashcard or quiz question).

    Attributes:
        id: Identifier, unique within the owning deck.
        due_date: Start of the day the item is next due.
        interval: Current interval in days (>= 0).
        ease_factor: SM-2 ease factor, never below MIN_EASE_FACTOR.
        lapses: Failure count. Only lowered by an explicit progress reset.
        mastery_level: Last computed mastery (0.0-1.0), None before the first review.
        suspended: Excluded from due queries and simulations.
        last_reviewed: Instant of the last review, None if never reviewed.
        tags: Informational tags.
        content: Front/back text, options, media... passed through untouched.
    """

    id: str
    due_date: datetime
    interval: int = 0
    ease_factor: float = INITIAL_EASE_FACTOR
    lapses: int = 0
    mastery_level: float | None = None
    suspended: bool = False
    last_reviewed: datetime | None = None
    tags: frozenset[str] = frozenset()
    content: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_new(self) -> bool:
        return self.interval == 0 and self.last_reviewed is None


@dataclass(frozen=True)
class ReviewLog:
    """
    Append-only record of one rating event.

    A ``rating`` of None marks a suspend event.
    """

    id: str
    item_id: str
    deck_id: str
    timestamp: datetime
    rating: ReviewRating | None
    new_interval: int
    ease_factor: float
    mastery_level: float
    series_id: str | None = None


@dataclass(frozen=True)
class Deck:
    id: str
    name: str
    type: DeckType = DeckType.FLASHCARD
    description: str = ""
    items: tuple[Reviewable, ...] = ()
    archived: bool = False
    deleted_at: datetime | None = None
    last_modified: datetime | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def item(self, item_id: str) -> Reviewable | None:
        for it in self.items:
            if it.id == item_id:
                return it
        return None


@dataclass(frozen=True)
class SeriesLevel:
    title: str
    deck_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeckSeries:
    """An ordered path of levels, each referencing decks by id (not containment)."""

    id: str
    name: str
    description: str = ""
    levels: tuple[SeriesLevel, ...] = ()
    created_at: datetime | None = None
    archived: bool = False
    deleted_at: datetime | None = None
    last_modified: datetime | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def deck_ids(self) -> list[str]:
        return [deck_id for level in self.levels for deck_id in level.deck_ids]


@dataclass(frozen=True)
class Snapshot:
    """
    Complete, serializable state of a user's collection at one point in time.

    ``series_progress`` maps series id -> completed deck ids. ``extra`` carries
    top-level sections the core does not interpret (folders, settings...).
    """

    version: int = SNAPSHOT_VERSION
    decks: tuple[Deck, ...] = ()
    deck_series: tuple[DeckSeries, ...] = ()
    series_progress: Mapping[str, frozenset[str]] = field(default_factory=dict)
    reviews: tuple[ReviewLog, ...] = ()
    last_modified: datetime | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def deck(self, deck_id: str) -> Deck | None:
        for d in self.decks:
            if d.id == deck_id:
                return d
        return None

    def series(self, series_id: str) -> DeckSeries | None:
        for s in self.deck_series:
            if s.id == series_id:
                return s
        return None


@dataclass(frozen=True)
class EngineConfig:
    """
    Closed set of engine-relevant knobs.

    Built from AppConfig at the edge; the pure engines only ever see this.
    """

    leech_threshold: int = DEFAULT_LEECH_THRESHOLD
    leech_action: LeechAction = LeechAction(DEFAULT_LEECH_ACTION)
    retention: float = DEFAULT_RETENTION
    new_items_per_day: int = DEFAULT_NEW_ITEMS_PER_DAY

    def __post_init__(self):
        if self.leech_threshold < 1:
            raise ValueError(f"leech_threshold must be >= 1, got {self.leech_threshold}")
        if not 0.0 <= self.retention <= 1.0:
            raise ValueError(f"retention must be within [0, 1], got {self.retention}")
        if self.new_items_per_day < 0:
            raise ValueError(f"new_items_per_day must be >= 0, got {self.new_items_per_day}")
