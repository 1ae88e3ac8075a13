"""
Merge engine.

Folds a MergeReport and the user's resolutions into one consolidated snapshot.
Works from the report alone (no re-diffing) and never picks a side by default:
every conflict needs an explicit resolution.
"""

import dataclasses
import logging
from collections.abc import Iterable
from datetime import datetime

from cogniflow.application.utils.time import utcnow
from cogniflow.domain.errors import ConflictUnresolvedError
from cogniflow.domain.models import Deck, DeckSeries, SeriesLevel, Snapshot
from cogniflow.domain.sync.models import (
    Entity,
    EntityKind,
    MergeReport,
    UserResolution,
)

logger = logging.getLogger(__name__)


def merge(
    report: MergeReport,
    resolutions: Iterable[UserResolution] = (),
    now: datetime | None = None,
) -> Snapshot:
    """
    Produce the consolidated snapshot.

    Args:
        report: Output of ``diff``.
        resolutions: One resolution per conflict in the report.
        now: Stamp for the new ``last_modified``; current UTC time when omitted.

    Returns:
        The new authoritative snapshot, also the next sync baseline.

    Raises:
        ConflictUnresolvedError: A conflict has no matching resolution.
        ValueError: A resolution names an entity that is not in conflict.
    """
    by_key = _index_resolutions(report, resolutions)

    chosen: dict[EntityKind, dict[str, Entity | None]] = {
        EntityKind.DECK: {d.id: d for d in report.unchanged_decks},
        EntityKind.SERIES: {s.id: s for s in report.unchanged_series},
        EntityKind.SECTION: {s.id: s for s in report.unchanged_sections},
    }

    for change in report.changes:
        chosen[change.kind][change.entity_id] = _tombstone_wins(
            change.entity, change.other, f"{change.kind.value} '{change.entity_id}'"
        )

    for conflict in report.conflicts:
        resolution = by_key[(conflict.kind, conflict.entity_id)]
        picked = conflict.version(resolution.side)
        other = conflict.version(resolution.side.opposite)
        chosen[conflict.kind][conflict.entity_id] = _tombstone_wins(
            picked, other, f"{conflict.kind.value} '{conflict.entity_id}'"
        )

    decks: tuple[Deck, ...] = tuple(
        chosen[EntityKind.DECK][i]
        for i in report.deck_order
        if chosen[EntityKind.DECK].get(i) is not None
    )
    purged = {i for i, d in chosen[EntityKind.DECK].items() if d is None}
    series: tuple[DeckSeries, ...] = tuple(
        _prune_levels(chosen[EntityKind.SERIES][i], purged)
        for i in report.series_order
        if chosen[EntityKind.SERIES].get(i) is not None
    )
    extra = {
        i: chosen[EntityKind.SECTION][i].value
        for i in report.section_order
        if chosen[EntityKind.SECTION].get(i) is not None
    }

    local = report.local
    merged = Snapshot(
        version=report.version,
        decks=decks,
        deck_series=series,
        series_progress=dict(report.series_progress),
        reviews=report.reviews,
        last_modified=local.last_modified,
        extra=extra,
    )
    if merged != local:
        merged = dataclasses.replace(merged, last_modified=now or utcnow())

    logger.info(
        f"[merge] {len(decks)} deck(s), {len(series)} series, {len(report.reviews)} review(s); "
        f"{len(report.changes)} change(s) applied, {len(report.conflicts)} conflict(s) resolved"
    )
    return merged


def _index_resolutions(
    report: MergeReport, resolutions: Iterable[UserResolution]
) -> dict[tuple[EntityKind, str], UserResolution]:
    by_key: dict[tuple[EntityKind, str], UserResolution] = {}
    for res in resolutions:
        if report.conflict(res.kind, res.entity_id) is None:
            raise ValueError(
                f"Resolution for {res.kind.value} '{res.entity_id}' matches no conflict"
            )
        by_key[(res.kind, res.entity_id)] = res

    missing = [
        (c.kind.value, c.entity_id)
        for c in report.conflicts
        if (c.kind, c.entity_id) not in by_key
    ]
    if missing:
        raise ConflictUnresolvedError(missing)
    return by_key


def _tombstone_wins(picked: Entity | None, other: Entity | None, label: str) -> Entity | None:
    """
    A deletion beats any live version last modified before the tombstone.

    Keeps a stale copy on one device from resurrecting a deleted entity.
    """
    if picked is None or picked.is_deleted or other is None or not other.is_deleted:
        return picked
    if picked.last_modified is None or other.deleted_at >= picked.last_modified:
        logger.info(f"[merge] Tombstone wins for {label} (deleted {other.deleted_at})")
        return other
    return picked


def _prune_levels(series: DeckSeries, purged: set[str]) -> DeckSeries:
    """Drop level references to decks purged by this merge."""
    if not purged.intersection(series.deck_ids):
        return series
    levels = tuple(
        SeriesLevel(title=lv.title, deck_ids=tuple(i for i in lv.deck_ids if i not in purged))
        for lv in series.levels
    )
    logger.debug(f"[merge] Pruned dangling deck references from series '{series.id}'")
    return dataclasses.replace(series, levels=levels)
