"""
Applies scheduling results to a whole snapshot.

This is the caller the scheduling engine reports to: it decides what to do with
leeches, appends the review log and returns a new snapshot value.
"""

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime

from cogniflow.domain.errors import EntityNotFoundError
from cogniflow.domain.models import (
    Deck,
    EngineConfig,
    ReviewLog,
    ReviewRating,
    Reviewable,
    Snapshot,
)

from .leech import apply_leech_action
from .scheduler import reset_progress, schedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewResult:
    snapshot: Snapshot
    item: Reviewable
    log: ReviewLog
    is_leech: bool


def review_item(
    snapshot: Snapshot,
    deck_id: str,
    item_id: str,
    rating: ReviewRating | int | str | None,
    now: datetime,
    config: EngineConfig | None = None,
    series_id: str | None = None,
) -> ReviewResult:
    """
    Rate one item and fold the result back into the snapshot.

    Args:
        snapshot: Current collection.
        deck_id: Deck owning the item.
        item_id: Item being rated.
        rating: again/hard/good/easy, or None to suspend.
        now: Timezone-aware review instant.
        config: Leech threshold/action; defaults when omitted.
        series_id: Series the review happened in, recorded in the log.

    Raises:
        EntityNotFoundError: Unknown deck or item.
        InvalidRatingError: Unknown rating.
    """
    config = config or EngineConfig()
    deck = _require_deck(snapshot, deck_id)
    item = deck.item(item_id)
    if item is None:
        raise EntityNotFoundError(f"Item '{item_id}' not found in deck '{deck_id}'")

    outcome = schedule(
        item,
        rating,
        now,
        deck_id=deck_id,
        series_id=series_id,
        leech_threshold=config.leech_threshold,
    )
    updated = outcome.item
    if outcome.is_leech and outcome.log.rating is ReviewRating.AGAIN:
        updated = apply_leech_action(updated, config.leech_action)

    new_deck = dataclasses.replace(
        deck,
        items=tuple(updated if it.id == item_id else it for it in deck.items),
        last_modified=now,
    )
    new_snapshot = dataclasses.replace(
        _replace_deck(snapshot, new_deck),
        reviews=snapshot.reviews + (outcome.log,),
        last_modified=now,
    )
    logger.debug(
        f"[review] {deck_id}/{item_id} rated {outcome.log.rating} -> "
        f"interval={updated.interval} ease={updated.ease_factor}"
    )
    return ReviewResult(
        snapshot=new_snapshot, item=updated, log=outcome.log, is_leech=outcome.is_leech
    )


def reset_deck_progress(
    snapshot: Snapshot, deck_id: str, now: datetime, item_ids: list[str] | None = None
) -> Snapshot:
    """
    Reset scheduling progress of a deck (or some of its items).

    Review logs are append-only and are kept.
    """
    deck = _require_deck(snapshot, deck_id)
    wanted = set(item_ids) if item_ids is not None else None
    items = tuple(
        reset_progress(it, now) if wanted is None or it.id in wanted else it
        for it in deck.items
    )
    logger.info(f"[review] Reset progress of deck {deck_id} ({len(wanted or items)} items)")
    new_deck = dataclasses.replace(deck, items=items, last_modified=now)
    return dataclasses.replace(_replace_deck(snapshot, new_deck), last_modified=now)


def _require_deck(snapshot: Snapshot, deck_id: str) -> Deck:
    deck = snapshot.deck(deck_id)
    if deck is None:
        raise EntityNotFoundError(f"Deck '{deck_id}' not found")
    return deck


def _replace_deck(snapshot: Snapshot, deck: Deck) -> Snapshot:
    return dataclasses.replace(
        snapshot, decks=tuple(deck if d.id == deck.id else d for d in snapshot.decks)
    )
