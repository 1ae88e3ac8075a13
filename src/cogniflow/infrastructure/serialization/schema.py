"""
Persisted snapshot schema (export format version 9).

camelCase on the wire, snake_case in Python. Fields the core does not interpret
(card text, folders, settings...) are kept as pydantic extras and passed through.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from cogniflow.domain.constants import MIN_EASE_FACTOR, SNAPSHOT_VERSION
from cogniflow.domain.models import DeckType


def _coerce_id(v: Any) -> Any:
    # Older exports used numeric ids
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


def _coerce_epoch(v: Any) -> Any:
    # Older exports stamped lastModified as epoch milliseconds
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
    return v


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow", allow_inf_nan=False
    )


class ReviewableSchema(_Schema):
    id: str
    due_date: AwareDatetime
    interval: int = Field(default=0, ge=0)
    ease_factor: float = Field(default=2.5, ge=MIN_EASE_FACTOR)
    lapses: int = Field(default=0, ge=0)
    mastery_level: float | None = Field(default=None, ge=0.0, le=1.0)
    suspended: bool = False
    last_reviewed: AwareDatetime | None = None
    tags: list[str] = Field(default_factory=list)

    coerce_id = field_validator("id", mode="before")(_coerce_id)


class DeckSchema(_Schema):
    id: str
    name: str
    type: DeckType = DeckType.FLASHCARD
    description: str = ""
    # Read from "cards" or "questions" depending on the deck type
    items: list[ReviewableSchema] = Field(default_factory=list, exclude=True)
    archived: bool = False
    deleted_at: AwareDatetime | None = None
    last_modified: AwareDatetime | None = None

    coerce_id = field_validator("id", mode="before")(_coerce_id)
    coerce_last_modified = field_validator("last_modified", mode="before")(_coerce_epoch)

    @model_validator(mode="before")
    @classmethod
    def pick_items(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            key = DeckType(data.get("type", DeckType.FLASHCARD)).items_key
            data["items"] = data.pop(key, None) or []
        return data

    @model_validator(mode="after")
    def unique_item_ids(self) -> "DeckSchema":
        seen: set[str] = set()
        for item in self.items:
            if item.id in seen:
                raise ValueError(f"duplicate item id '{item.id}' in deck '{self.id}'")
            seen.add(item.id)
        return self


class SeriesLevelSchema(_Schema):
    title: str
    deck_ids: list[str] = Field(default_factory=list)

    @field_validator("deck_ids", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [_coerce_id(i) for i in v]
        return v


class DeckSeriesSchema(_Schema):
    id: str
    name: str
    description: str = ""
    levels: list[SeriesLevelSchema] = Field(default_factory=list)
    created_at: AwareDatetime | None = None
    archived: bool = False
    deleted_at: AwareDatetime | None = None
    last_modified: AwareDatetime | None = None

    coerce_id = field_validator("id", mode="before")(_coerce_id)
    coerce_last_modified = field_validator("last_modified", mode="before")(_coerce_epoch)


class ReviewLogSchema(_Schema):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", allow_inf_nan=False
    )

    id: str | None = None
    item_id: str
    deck_id: str
    series_id: str | None = None
    timestamp: AwareDatetime
    rating: int | None = Field(default=None, ge=1, le=4)
    new_interval: int = Field(ge=0)
    ease_factor: float
    mastery_level: float = Field(ge=0.0, le=1.0)

    coerce_ids = field_validator("id", "item_id", "deck_id", "series_id", mode="before")(_coerce_id)


class SnapshotSchema(_Schema):
    version: int = Field(default=SNAPSHOT_VERSION, ge=1)
    decks: list[DeckSchema] = Field(default_factory=list)
    deck_series: list[DeckSeriesSchema] = Field(default_factory=list)
    series_progress: dict[str, list[str]] = Field(default_factory=dict)
    reviews: list[ReviewLogSchema] = Field(default_factory=list)
    last_modified: AwareDatetime | None = None

    coerce_last_modified = field_validator("last_modified", mode="before")(_coerce_epoch)

    @model_validator(mode="after")
    def unique_ids(self) -> "SnapshotSchema":
        for label, entities in (("deck", self.decks), ("series", self.deck_series)):
            seen: set[str] = set()
            for e in entities:
                if e.id in seen:
                    raise ValueError(f"duplicate {label} id '{e.id}'")
                seen.add(e.id)
        return self
