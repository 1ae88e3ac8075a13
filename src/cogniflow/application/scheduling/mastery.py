"""
Mastery model: effective mastery of an item under a forgetting curve.

This is a pure computation module with no I/O. ``now`` is always passed in,
so values are never cached and never depend on the wall clock.
"""

from datetime import datetime

from cogniflow.application.utils.time import days_between, ensure_aware
from cogniflow.domain.constants import (
    MASTERY_HALF_LIFE_FACTOR,
    MASTERY_SMOOTHING,
    MASTERY_TARGETS,
)
from cogniflow.domain.models import ReviewRating, Reviewable


def effective_mastery(item: Reviewable, now: datetime) -> float:
    """
    Compute the item's current mastery, decayed since its last review.

    The half-life of a memory is proportional to its interval: an item on a
    10-day interval fades much slower than one on a 1-day interval.

    N(t) = N0 * 0.5^(t / T), T = MASTERY_HALF_LIFE_FACTOR * max(interval, 1)

    Returns:
        A value in [0, 1]. 0 for items that were never reviewed or are suspended.
    """
    ensure_aware(now, "now")
    if item.last_reviewed is None or not item.mastery_level or item.suspended:
        return 0.0

    stored = _clamp(item.mastery_level)
    elapsed = days_between(item.last_reviewed, now)
    if elapsed <= 0:
        return stored

    half_life = MASTERY_HALF_LIFE_FACTOR * max(item.interval, 1)
    return _clamp(stored * 0.5 ** (elapsed / half_life))


def blended_mastery(previous: float, rating: ReviewRating) -> float:
    """
    Smooth the mastery trajectory toward the rating's target.

    new = (1 - w) * previous + w * target(rating)
    """
    target = MASTERY_TARGETS[int(rating)]
    return _clamp((1 - MASTERY_SMOOTHING) * previous + MASTERY_SMOOTHING * target)


def average_mastery(items: list[Reviewable], now: datetime) -> float:
    """Mean effective mastery, 0.0 for an empty list."""
    if not items:
        return 0.0
    return sum(effective_mastery(it, now) for it in items) / len(items)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))
