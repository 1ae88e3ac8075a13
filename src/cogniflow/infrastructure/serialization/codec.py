"""
Snapshot export/import codec.

``decode_snapshot`` validates a document and builds the immutable domain model;
``encode_snapshot`` writes canonical JSON (sorted keys), so equal snapshots
always encode to identical bytes.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from cogniflow.application.id_service import legacy_log_id
from cogniflow.domain.errors import ValidationError
from cogniflow.domain.models import (
    Deck,
    DeckSeries,
    Reviewable,
    ReviewLog,
    ReviewRating,
    SeriesLevel,
    Snapshot,
)

from .schema import (
    DeckSchema,
    DeckSeriesSchema,
    ReviewableSchema,
    ReviewLogSchema,
    SeriesLevelSchema,
    SnapshotSchema,
)

logger = logging.getLogger(__name__)


def decode_snapshot(raw: str | bytes | dict[str, Any]) -> Snapshot:
    """
    Parse and validate a snapshot document.

    Raises:
        ValidationError: The document is not JSON or violates the schema. Every
            problem found is listed in ``problems``.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Snapshot is not valid JSON: {e}", [str(e)]) from e
    if not isinstance(raw, dict):
        raise ValidationError("Snapshot must be a JSON object", ["root: expected an object"])

    try:
        schema = SnapshotSchema.model_validate(raw)
    except PydanticValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or 'root'}: {err['msg']}" for err in e.errors()
        ]
        raise ValidationError(f"Snapshot failed validation ({len(problems)} problem(s))", problems) from e

    return _snapshot_from_schema(schema)


def encode_snapshot(snapshot: Snapshot) -> str:
    """Serialize to canonical JSON."""
    return json.dumps(snapshot_to_dict(snapshot), sort_keys=True, indent=2, ensure_ascii=False)


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    """JSON-compatible document for a snapshot."""
    doc = SnapshotSchema(
        version=snapshot.version,
        series_progress={k: sorted(v) for k, v in snapshot.series_progress.items()},
        last_modified=snapshot.last_modified,
        **dict(snapshot.extra),
    ).model_dump(by_alias=True, mode="json")
    doc["decks"] = [_deck_to_dict(d) for d in snapshot.decks]
    doc["deckSeries"] = [_dump(_series_to_schema(s)) for s in snapshot.deck_series]
    doc["reviews"] = [_dump(_log_to_schema(log)) for log in snapshot.reviews]
    return doc


def _dump(schema) -> dict[str, Any]:
    return schema.model_dump(by_alias=True, mode="json")


# ---------- schema -> domain ----------


def _snapshot_from_schema(schema: SnapshotSchema) -> Snapshot:
    legacy_ids = 0
    reviews = []
    for log in schema.reviews:
        if log.id is None:
            legacy_ids += 1
        reviews.append(_log_from_schema(log))
    if legacy_ids:
        logger.info(f"[codec] Derived ids for {legacy_ids} legacy review log(s)")

    return Snapshot(
        version=schema.version,
        decks=tuple(_deck_from_schema(d) for d in schema.decks),
        deck_series=tuple(_series_from_schema(s) for s in schema.deck_series),
        series_progress={k: frozenset(v) for k, v in schema.series_progress.items()},
        reviews=tuple(reviews),
        last_modified=schema.last_modified,
        extra=dict(schema.model_extra or {}),
    )


def _item_from_schema(item: ReviewableSchema) -> Reviewable:
    return Reviewable(
        id=item.id,
        due_date=item.due_date,
        interval=item.interval,
        ease_factor=item.ease_factor,
        lapses=item.lapses,
        mastery_level=item.mastery_level,
        suspended=item.suspended,
        last_reviewed=item.last_reviewed,
        tags=frozenset(item.tags),
        content=dict(item.model_extra or {}),
    )


def _deck_from_schema(deck: DeckSchema) -> Deck:
    return Deck(
        id=deck.id,
        name=deck.name,
        type=deck.type,
        description=deck.description,
        items=tuple(_item_from_schema(i) for i in deck.items),
        archived=deck.archived,
        deleted_at=deck.deleted_at,
        last_modified=deck.last_modified,
        extra=dict(deck.model_extra or {}),
    )


def _series_from_schema(series: DeckSeriesSchema) -> DeckSeries:
    return DeckSeries(
        id=series.id,
        name=series.name,
        description=series.description,
        levels=tuple(SeriesLevel(title=lv.title, deck_ids=tuple(lv.deck_ids)) for lv in series.levels),
        created_at=series.created_at,
        archived=series.archived,
        deleted_at=series.deleted_at,
        last_modified=series.last_modified,
        extra=dict(series.model_extra or {}),
    )


def _log_from_schema(log: ReviewLogSchema) -> ReviewLog:
    return ReviewLog(
        id=log.id if log.id is not None else legacy_log_id(log.item_id, log.timestamp),
        item_id=log.item_id,
        deck_id=log.deck_id,
        series_id=log.series_id,
        timestamp=log.timestamp,
        rating=ReviewRating(log.rating) if log.rating is not None else None,
        new_interval=log.new_interval,
        ease_factor=log.ease_factor,
        mastery_level=log.mastery_level,
    )


# ---------- domain -> schema ----------


def _item_to_schema(item: Reviewable) -> ReviewableSchema:
    return ReviewableSchema(
        id=item.id,
        due_date=item.due_date,
        interval=item.interval,
        ease_factor=item.ease_factor,
        lapses=item.lapses,
        mastery_level=item.mastery_level,
        suspended=item.suspended,
        last_reviewed=item.last_reviewed,
        tags=sorted(item.tags),
        **dict(item.content),
    )


def _deck_to_dict(deck: Deck) -> dict[str, Any]:
    schema = DeckSchema(
        id=deck.id,
        name=deck.name,
        type=deck.type,
        description=deck.description,
        archived=deck.archived,
        deleted_at=deck.deleted_at,
        last_modified=deck.last_modified,
        **dict(deck.extra),
    )
    doc = _dump(schema)
    doc[deck.type.items_key] = [_dump(_item_to_schema(i)) for i in deck.items]
    return doc


def _series_to_schema(series: DeckSeries) -> DeckSeriesSchema:
    return DeckSeriesSchema(
        id=series.id,
        name=series.name,
        description=series.description,
        levels=[SeriesLevelSchema(title=lv.title, deck_ids=list(lv.deck_ids)) for lv in series.levels],
        created_at=series.created_at,
        archived=series.archived,
        deleted_at=series.deleted_at,
        last_modified=series.last_modified,
        **dict(series.extra),
    )


def _log_to_schema(log: ReviewLog) -> ReviewLogSchema:
    return ReviewLogSchema(
        id=log.id,
        item_id=log.item_id,
        deck_id=log.deck_id,
        series_id=log.series_id,
        timestamp=log.timestamp,
        rating=int(log.rating) if log.rating is not None else None,
        new_interval=log.new_interval,
        ease_factor=log.ease_factor,
        mastery_level=log.mastery_level,
    )
