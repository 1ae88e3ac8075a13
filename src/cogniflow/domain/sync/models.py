"""
Diff artifacts produced on every sync attempt.

These are transient: built fresh by the differ, consumed by the merge engine,
never persisted.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from cogniflow.domain.models import Deck, DeckSeries, ReviewLog, Snapshot


@dataclass(frozen=True)
class Section:
    """
    A top-level snapshot section the core does not interpret (folders, settings...).

    Compared as one opaque value per key, so it diffs and merges like an entity.
    """

    id: str
    value: Any

    @property
    def name(self) -> str:
        return self.id

    @property
    def is_deleted(self) -> bool:
        return False

    @property
    def last_modified(self) -> datetime | None:
        return None


Entity = Deck | DeckSeries | Section


class EntityKind(str, Enum):
    DECK = "deck"
    SERIES = "series"
    SECTION = "section"


class Side(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"

    @property
    def opposite(self) -> "Side":
        return Side.REMOTE if self is Side.LOCAL else Side.LOCAL


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class ResolutionChoice(str, Enum):
    KEEP_LOCAL = "local"
    KEEP_REMOTE = "remote"


@dataclass(frozen=True)
class Change:
    """
    An entity changed on exactly one side since the baseline.

    Attributes:
        kind: Entity type.
        entity_id: Entity identifier.
        change: What happened on ``side``.
        side: The side whose version should be applied.
        entity: The version to apply. None when ``side`` purged the entity outright.
        other: The untouched version on the opposite side, if it has one.
    """

    kind: EntityKind
    entity_id: str
    change: ChangeKind
    side: Side
    entity: Entity | None
    other: Entity | None = None


@dataclass(frozen=True)
class Conflict:
    """An entity modified on both sides since the baseline. None means purged."""

    kind: EntityKind
    entity_id: str
    local: Entity | None
    remote: Entity | None
    base: Entity | None = None

    def version(self, side: Side) -> Entity | None:
        return self.local if side is Side.LOCAL else self.remote


@dataclass(frozen=True)
class UserResolution:
    kind: EntityKind
    entity_id: str
    choice: ResolutionChoice

    @property
    def side(self) -> Side:
        return Side.LOCAL if self.choice is ResolutionChoice.KEEP_LOCAL else Side.REMOTE


@dataclass(frozen=True)
class MergeReport:
    """
    Everything the merge engine needs, precomputed by the differ.

    Entities identical on both sides are carried in ``unchanged_*``; review logs
    and series progress are already unioned.
    """

    local: Snapshot
    remote_modified_time: datetime | None
    changes: tuple[Change, ...] = ()
    conflicts: tuple[Conflict, ...] = ()
    unchanged_decks: tuple[Deck, ...] = ()
    unchanged_series: tuple[DeckSeries, ...] = ()
    unchanged_sections: tuple[Section, ...] = ()
    deck_order: tuple[str, ...] = ()
    series_order: tuple[str, ...] = ()
    section_order: tuple[str, ...] = ()
    reviews: tuple[ReviewLog, ...] = ()
    series_progress: Mapping[str, frozenset[str]] = field(default_factory=dict)
    version: int = 0

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def conflict(self, kind: EntityKind, entity_id: str) -> Conflict | None:
        for c in self.conflicts:
            if c.kind is kind and c.entity_id == entity_id:
                return c
        return None
