"""
Snapshot differ.

Three-way comparison of two independently modified snapshots against the last
snapshot both devices shared (the baseline). Every deck and series ends up
unchanged, as an unconflicted Change, or as a Conflict for the user to settle.
Top-level sections the core does not interpret (folders, settings) are compared
the same way, one opaque value per key.

Review logs and series progress are never conflicting: logs are append-only and
merge by id-set union, completion is monotonic and merges by set union.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from cogniflow.domain.errors import StaleBaselineError
from cogniflow.domain.models import ReviewLog, Snapshot
from cogniflow.domain.sync.models import (
    Change,
    ChangeKind,
    Conflict,
    Entity,
    EntityKind,
    MergeReport,
    Section,
    Side,
)

logger = logging.getLogger(__name__)


def diff(
    local: Snapshot,
    remote: Snapshot | None,
    baseline: Snapshot | None,
    remote_modified_time: datetime | None = None,
) -> MergeReport:
    """
    Classify every entity of two snapshots relative to their shared baseline.

    Args:
        local: This device's snapshot.
        remote: The other device's snapshot; None when no remote exists yet.
        baseline: Last snapshot both sides shared; None for a first sync, in which
            case every entity that differs is reported as a conflict.
        remote_modified_time: Modification time reported by the remote source.

    Returns:
        A MergeReport carrying everything the merge engine needs.

    Raises:
        StaleBaselineError: The baseline is newer than one of the snapshots, so
            "changed since baseline" cannot be determined safely.
    """
    if remote is None:
        if baseline is not None:
            # Without a remote, every baseline entity would look purged
            raise StaleBaselineError("No remote snapshot exists although a baseline does")
        remote = Snapshot(version=local.version)
    if baseline is not None:
        check_baseline(local, remote, baseline)

    deck_result = _diff_entities(
        EntityKind.DECK,
        local.decks,
        remote.decks,
        baseline.decks if baseline is not None else None,
    )
    series_result = _diff_entities(
        EntityKind.SERIES,
        local.deck_series,
        remote.deck_series,
        baseline.deck_series if baseline is not None else None,
    )
    section_result = _diff_entities(
        EntityKind.SECTION,
        sections(local),
        sections(remote),
        sections(baseline) if baseline is not None else None,
    )

    report = MergeReport(
        local=local,
        remote_modified_time=remote_modified_time,
        changes=deck_result.changes + series_result.changes + section_result.changes,
        conflicts=deck_result.conflicts + series_result.conflicts + section_result.conflicts,
        unchanged_decks=deck_result.unchanged,
        unchanged_series=series_result.unchanged,
        unchanged_sections=section_result.unchanged,
        deck_order=deck_result.order,
        series_order=series_result.order,
        section_order=section_result.order,
        reviews=union_reviews(local.reviews, remote.reviews),
        series_progress=union_progress(local.series_progress, remote.series_progress),
        version=max(local.version, remote.version),
    )
    logger.info(
        f"[diff] {len(report.changes)} change(s), {len(report.conflicts)} conflict(s), "
        f"{len(report.unchanged_decks) + len(report.unchanged_series)} unchanged"
    )
    return report


def check_baseline(local: Snapshot, remote: Snapshot, baseline: Snapshot) -> None:
    """
    Verify the baseline can be an ancestor of both snapshots.

    A baseline stamped later than a snapshot (or holding a newer version of one
    of its entities) was never shared by that side.
    """
    for side, snap in ((Side.LOCAL, local), (Side.REMOTE, remote)):
        if _later(baseline.last_modified, snap.last_modified):
            raise StaleBaselineError(
                f"Baseline ({baseline.last_modified}) is newer than the {side.value} "
                f"snapshot ({snap.last_modified})"
            )
        for kind, base_entities, side_entities in (
            (EntityKind.DECK, baseline.decks, snap.decks),
            (EntityKind.SERIES, baseline.deck_series, snap.deck_series),
        ):
            current = {e.id: e for e in side_entities}
            for base_entity in base_entities:
                mine = current.get(base_entity.id)
                if mine is not None and _later(base_entity.last_modified, mine.last_modified):
                    raise StaleBaselineError(
                        f"Baseline {kind.value} '{base_entity.id}' is newer than the "
                        f"{side.value} copy"
                    )


def sections(snapshot: Snapshot) -> tuple[Section, ...]:
    return tuple(Section(key, value) for key, value in snapshot.extra.items())


def union_reviews(
    local: Sequence[ReviewLog], remote: Sequence[ReviewLog]
) -> tuple[ReviewLog, ...]:
    """Id-set union: local logs in their order, then logs only the remote has."""
    seen = {log.id for log in local}
    extra = [log for log in remote if log.id not in seen]
    extra.sort(key=lambda log: (log.timestamp, log.id))
    return tuple(local) + tuple(extra)


def union_progress(
    local: Mapping[str, frozenset[str]], remote: Mapping[str, frozenset[str]]
) -> dict[str, frozenset[str]]:
    """Per-series union of completed deck ids."""
    merged: dict[str, frozenset[str]] = {k: frozenset(v) for k, v in local.items()}
    for series_id, deck_ids in remote.items():
        merged[series_id] = merged.get(series_id, frozenset()) | frozenset(deck_ids)
    return merged


@dataclass(frozen=True)
class _EntityDiff:
    changes: tuple[Change, ...]
    conflicts: tuple[Conflict, ...]
    unchanged: tuple[Entity, ...]
    order: tuple[str, ...]


def _diff_entities(
    kind: EntityKind,
    local: Sequence[Entity],
    remote: Sequence[Entity],
    base: Sequence[Entity] | None,
) -> _EntityDiff:
    local_by_id = {e.id: e for e in local}
    remote_by_id = {e.id: e for e in remote}
    base_by_id = {e.id: e for e in base} if base is not None else {}

    order = list(local_by_id)
    order.extend(i for i in remote_by_id if i not in local_by_id)

    changes: list[Change] = []
    conflicts: list[Conflict] = []
    unchanged: list[Entity] = []

    for entity_id in order:
        mine = local_by_id.get(entity_id)
        theirs = remote_by_id.get(entity_id)
        has_base = entity_id in base_by_id
        before = base_by_id.get(entity_id)

        if mine is not None and theirs is not None:
            if mine == theirs:
                unchanged.append(mine)
                continue
            local_changed = not has_base or mine != before
            remote_changed = not has_base or theirs != before
            if local_changed and remote_changed:
                conflicts.append(Conflict(kind, entity_id, mine, theirs, before))
            elif local_changed:
                changes.append(_modified(kind, entity_id, Side.LOCAL, mine, theirs))
            else:
                changes.append(_modified(kind, entity_id, Side.REMOTE, theirs, mine))
            continue

        present_side = Side.LOCAL if mine is not None else Side.REMOTE
        present = mine if mine is not None else theirs

        if not has_base:
            changes.append(Change(kind, entity_id, ChangeKind.ADDED, present_side, present))
        elif present == before:
            # The other side purged it and this side never touched it
            changes.append(
                Change(kind, entity_id, ChangeKind.REMOVED, present_side.opposite, None, present)
            )
        elif present_side is Side.LOCAL:
            conflicts.append(Conflict(kind, entity_id, present, None, before))
        else:
            conflicts.append(Conflict(kind, entity_id, None, present, before))

    return _EntityDiff(
        changes=tuple(changes),
        conflicts=tuple(conflicts),
        unchanged=tuple(unchanged),
        order=tuple(order),
    )


def _modified(
    kind: EntityKind, entity_id: str, side: Side, entity: Entity, other: Entity
) -> Change:
    change = ChangeKind.REMOVED if entity.is_deleted else ChangeKind.MODIFIED
    return Change(kind, entity_id, change, side, entity, other)


def _later(a: datetime | None, b: datetime | None) -> bool:
    return a is not None and b is not None and a > b
