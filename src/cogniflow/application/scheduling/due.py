"""
Due-item query.

Builds the set of items a user should study today. Ordering is left to the
caller (session builders sort and prioritize).
"""

from dataclasses import dataclass
from datetime import datetime

from cogniflow.application.utils.time import end_of_day, ensure_aware
from cogniflow.domain.models import Deck, Reviewable, Snapshot


@dataclass(frozen=True)
class DueItem:
    deck_id: str
    item: Reviewable


def is_due(item: Reviewable, now: datetime) -> bool:
    """An item is due when it is active and its due date falls on or before today."""
    return not item.suspended and item.due_date <= end_of_day(now)


def due_items_for_deck(deck: Deck, now: datetime) -> list[Reviewable]:
    ensure_aware(now, "now")
    return [it for it in deck.items if is_due(it, now)]


def due_items(snapshot: Snapshot, now: datetime, deck_id: str | None = None) -> list[DueItem]:
    """
    Return every non-suspended item due by the end of ``now``'s day.

    Decks in the trash (tombstoned) are skipped.

    Args:
        snapshot: The collection to query.
        now: Timezone-aware reference instant.
        deck_id: Restrict the query to a single deck.
    """
    ensure_aware(now, "now")
    result: list[DueItem] = []
    for deck in snapshot.decks:
        if deck.is_deleted:
            continue
        if deck_id is not None and deck.id != deck_id:
            continue
        result.extend(DueItem(deck_id=deck.id, item=it) for it in due_items_for_deck(deck, now))
    return result


def due_counts(snapshot: Snapshot, now: datetime) -> dict[str, int]:
    """Number of due items per (non-deleted) deck."""
    counts: dict[str, int] = {}
    for entry in due_items(snapshot, now):
        counts[entry.deck_id] = counts.get(entry.deck_id, 0) + 1
    return counts
