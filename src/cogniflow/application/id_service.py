"""Service for generating stable identifiers."""

from datetime import datetime

from ulid import ULID


def generate_log_id() -> str:
    """Generate a review log id using ULID (sortable by creation time)."""
    return f"rev_{ULID()}"


def legacy_log_id(item_id: str, timestamp: datetime | str) -> str:
    """
    Derive a deterministic id for review logs exported without one.

    Two devices importing the same legacy log derive the same id, so the
    id-set union during merge does not duplicate it.
    """
    stamp = timestamp.isoformat() if isinstance(timestamp, datetime) else str(timestamp)
    return f"{item_id}@{stamp}"
