"""
Collection edits that touch more than one entity table.

Deleting moves an entity to the trash: it keeps a ``deleted_at`` tombstone so the
deletion propagates through merges, and can be restored. Purging removes it from
the snapshot for good; a later sync reports it as removed on this side.
"""

import dataclasses
import logging
from collections.abc import Collection
from datetime import datetime

from cogniflow.application.utils.time import ensure_aware
from cogniflow.domain.errors import EntityNotFoundError
from cogniflow.domain.models import Deck, DeckSeries, SeriesLevel, Snapshot

logger = logging.getLogger(__name__)


def delete_deck(snapshot: Snapshot, deck_id: str, now: datetime) -> Snapshot:
    """
    Move a deck to the trash.

    Trashed decks are never archived. The deck id is removed from every series
    level referencing it.
    """
    ensure_aware(now, "now")
    _require_deck(snapshot, deck_id)
    decks = tuple(_trash(d, now) if d.id == deck_id else d for d in snapshot.decks)
    series = _unlink_decks(snapshot.deck_series, {deck_id}, now)
    logger.info(f"[collection] Deck {deck_id} moved to the trash")
    return dataclasses.replace(snapshot, decks=decks, deck_series=series, last_modified=now)


def restore_deck(snapshot: Snapshot, deck_id: str, now: datetime) -> Snapshot:
    """Take a deck out of the trash. Series levels it was unlinked from stay as they are."""
    ensure_aware(now, "now")
    _require_deck(snapshot, deck_id)
    decks = tuple(_restore(d, now) if d.id == deck_id else d for d in snapshot.decks)
    logger.info(f"[collection] Deck {deck_id} restored")
    return dataclasses.replace(snapshot, decks=decks, last_modified=now)


def purge_deck(snapshot: Snapshot, deck_id: str, now: datetime) -> Snapshot:
    """
    Delete a deck permanently.

    Its references in series levels and series progress go with it. Review logs
    are append-only and are kept.
    """
    ensure_aware(now, "now")
    _require_deck(snapshot, deck_id)
    logger.info(f"[collection] Deck {deck_id} permanently deleted")
    return _purge(snapshot, {deck_id}, set(), now)


def delete_series(snapshot: Snapshot, series_id: str, now: datetime) -> Snapshot:
    """
    Move a series and every deck of its levels to the trash.

    The levels keep their deck ids, so restoring the series brings its decks back.
    """
    ensure_aware(now, "now")
    target = _require_series(snapshot, series_id)
    deck_ids = set(target.deck_ids)
    decks = tuple(
        _trash(d, now) if d.id in deck_ids and not d.is_deleted else d for d in snapshot.decks
    )
    series = tuple(_trash(s, now) if s.id == series_id else s for s in snapshot.deck_series)
    logger.info(
        f"[collection] Series {series_id} and its {len(deck_ids)} deck(s) moved to the trash"
    )
    return dataclasses.replace(snapshot, decks=decks, deck_series=series, last_modified=now)


def restore_series(snapshot: Snapshot, series_id: str, now: datetime) -> Snapshot:
    """Take a series out of the trash, along with the decks trashed together with it."""
    ensure_aware(now, "now")
    target = _require_series(snapshot, series_id)
    if not target.is_deleted:
        return snapshot
    deck_ids = set(target.deck_ids)
    decks = tuple(
        _restore(d, now) if d.id in deck_ids and d.deleted_at == target.deleted_at else d
        for d in snapshot.decks
    )
    series = tuple(_restore(s, now) if s.id == series_id else s for s in snapshot.deck_series)
    logger.info(f"[collection] Series {series_id} restored")
    return dataclasses.replace(snapshot, decks=decks, deck_series=series, last_modified=now)


def purge_series(snapshot: Snapshot, series_id: str, now: datetime) -> Snapshot:
    """Delete a series and the decks of its levels permanently."""
    ensure_aware(now, "now")
    target = _require_series(snapshot, series_id)
    deck_ids = set(target.deck_ids)
    logger.info(
        f"[collection] Series {series_id} and its {len(deck_ids)} deck(s) permanently deleted"
    )
    return _purge(snapshot, deck_ids, {series_id}, now)


def mark_deck_completed(
    snapshot: Snapshot, series_id: str, deck_id: str, now: datetime
) -> Snapshot:
    """Record a deck as completed within a series. Completion is never undone."""
    ensure_aware(now, "now")
    _require_series(snapshot, series_id)
    completed = snapshot.series_progress.get(series_id, frozenset())
    if deck_id in completed:
        return snapshot
    progress = dict(snapshot.series_progress)
    progress[series_id] = completed | {deck_id}
    return dataclasses.replace(snapshot, series_progress=progress, last_modified=now)


def _require_deck(snapshot: Snapshot, deck_id: str) -> Deck:
    deck = snapshot.deck(deck_id)
    if deck is None:
        raise EntityNotFoundError(f"Deck '{deck_id}' not found")
    return deck


def _require_series(snapshot: Snapshot, series_id: str) -> DeckSeries:
    series = snapshot.series(series_id)
    if series is None:
        raise EntityNotFoundError(f"Series '{series_id}' not found")
    return series


def _trash(entity, now: datetime):
    return dataclasses.replace(entity, deleted_at=now, archived=False, last_modified=now)


def _restore(entity, now: datetime):
    if not entity.is_deleted:
        return entity
    return dataclasses.replace(entity, deleted_at=None, last_modified=now)


def _unlink_decks(
    series: tuple[DeckSeries, ...], deck_ids: Collection[str], now: datetime
) -> tuple[DeckSeries, ...]:
    result = []
    for s in series:
        if not any(i in deck_ids for i in s.deck_ids):
            result.append(s)
            continue
        levels = tuple(
            SeriesLevel(title=lv.title, deck_ids=tuple(i for i in lv.deck_ids if i not in deck_ids))
            for lv in s.levels
        )
        result.append(dataclasses.replace(s, levels=levels, last_modified=now))
        logger.debug(f"[collection] Unlinked {len(deck_ids)} deck(s) from series {s.id}")
    return tuple(result)


def _purge(
    snapshot: Snapshot, deck_ids: set[str], series_ids: set[str], now: datetime
) -> Snapshot:
    decks = tuple(d for d in snapshot.decks if d.id not in deck_ids)
    remaining = tuple(s for s in snapshot.deck_series if s.id not in series_ids)
    series = _unlink_decks(remaining, deck_ids, now)
    progress = {
        sid: frozenset(done - deck_ids)
        for sid, done in snapshot.series_progress.items()
        if sid not in series_ids
    }
    return dataclasses.replace(
        snapshot, decks=decks, deck_series=series, series_progress=progress, last_modified=now
    )
