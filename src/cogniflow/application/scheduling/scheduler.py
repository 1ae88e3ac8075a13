"""
Scheduling engine (SM-2 family).

Maps (item, rating) to the item's next state. Invariants hold by construction:
the interval is never negative, the ease factor never drops below its floor and
lapses only ever grow. The engine reports leeches but never remediates them.
"""

import dataclasses
import math
from dataclasses import dataclass
from datetime import datetime

from cogniflow.application.id_service import generate_log_id
from cogniflow.application.utils.time import add_days, ensure_aware, start_of_day
from cogniflow.domain.constants import (
    AGAIN_INTERVAL_DAYS,
    DEFAULT_LEECH_THRESHOLD,
    EASE_FACTOR_MODIFIERS,
    EASY_BONUS_MULTIPLIER,
    EASY_GRADUATING_INTERVAL,
    HARD_INTERVAL_MULTIPLIER,
    INITIAL_EASE_FACTOR,
    MAX_INTERVAL_DAYS,
    MIN_EASE_FACTOR,
    REPEATED_LAPSE_GRACE,
    REPEATED_LAPSE_PENALTY,
)
from cogniflow.domain.errors import InvalidRatingError
from cogniflow.domain.models import ReviewLog, ReviewRating, Reviewable

from .leech import is_leech
from .mastery import blended_mastery, effective_mastery


@dataclass(frozen=True)
class ScheduleOutcome:
    """Result of one rating: the new item state, its log entry and the leech flag."""

    item: Reviewable
    log: ReviewLog
    is_leech: bool


def parse_rating(value: ReviewRating | int | str | None) -> ReviewRating | None:
    """
    Normalize a rating from user input.

    Accepts a ReviewRating, its integer value (1-4), its name ('again', 'good'...)
    or None / 'suspend' for the suspend pseudo-rating.

    Raises:
        InvalidRatingError: For anything else.
    """
    if value is None or isinstance(value, ReviewRating):
        return value
    if isinstance(value, bool):
        raise InvalidRatingError(f"Invalid rating: {value!r}")
    if isinstance(value, int):
        try:
            return ReviewRating(value)
        except ValueError:
            raise InvalidRatingError(
                f"Invalid rating {value}: expected 1 (again) to 4 (easy)"
            ) from None
    if isinstance(value, str):
        key = value.strip().lower()
        if key == "suspend":
            return None
        if key.isdigit():
            return parse_rating(int(key))
        try:
            return ReviewRating[key.upper()]
        except KeyError:
            raise InvalidRatingError(
                f"Invalid rating '{value}': expected again, hard, good, easy or suspend"
            ) from None
    raise InvalidRatingError(f"Invalid rating: {value!r}")


def next_state(item: Reviewable, rating: ReviewRating | None, now: datetime) -> Reviewable:
    """
    Compute the item's state after being rated at ``now``.

    Args:
        item: The item being reviewed. A first review is treated as interval 0.
        rating: One of the four levels, or None to suspend.
        now: Timezone-aware review instant.

    Returns:
        A new Reviewable; ``item`` is left untouched.
    """
    ensure_aware(now, "now")
    rating = parse_rating(rating)

    if rating is None:
        return dataclasses.replace(item, suspended=True)

    interval = max(0, item.interval)
    ease = max(MIN_EASE_FACTOR, item.ease_factor or INITIAL_EASE_FACTOR)
    lapses = item.lapses

    if rating is ReviewRating.AGAIN:
        lapses += 1
        penalty = EASE_FACTOR_MODIFIERS[rating]
        if lapses > REPEATED_LAPSE_GRACE:
            penalty -= (lapses - REPEATED_LAPSE_GRACE) * REPEATED_LAPSE_PENALTY
        new_ease = ease + penalty
        new_interval = AGAIN_INTERVAL_DAYS
    elif rating is ReviewRating.HARD:
        new_ease = ease + EASE_FACTOR_MODIFIERS[rating]
        new_interval = max(interval + 1, _round_half_up(interval * HARD_INTERVAL_MULTIPLIER))
    elif rating is ReviewRating.GOOD:
        new_ease = ease + EASE_FACTOR_MODIFIERS[rating]
        new_interval = max(1, _round_half_up(interval * ease))
    else:
        new_ease = ease + EASE_FACTOR_MODIFIERS[rating]
        if interval == 0:
            new_interval = EASY_GRADUATING_INTERVAL
        else:
            new_interval = max(
                interval + 1, _round_half_up(interval * ease * EASY_BONUS_MULTIPLIER)
            )

    new_ease = round(max(MIN_EASE_FACTOR, new_ease), 4)
    new_interval = min(MAX_INTERVAL_DAYS, new_interval)

    previous_mastery = effective_mastery(item, now)

    return dataclasses.replace(
        item,
        interval=new_interval,
        ease_factor=new_ease,
        lapses=lapses,
        due_date=add_days(start_of_day(now), new_interval),
        last_reviewed=now,
        mastery_level=blended_mastery(previous_mastery, rating),
    )


def schedule(
    item: Reviewable,
    rating: ReviewRating | int | str | None,
    now: datetime,
    *,
    deck_id: str,
    series_id: str | None = None,
    leech_threshold: int = DEFAULT_LEECH_THRESHOLD,
    log_id: str | None = None,
) -> ScheduleOutcome:
    """
    Rate an item and produce its new state plus one review log entry.

    Args:
        item: The item being reviewed.
        rating: again/hard/good/easy, or None for the suspend pseudo-rating.
        now: Timezone-aware review instant.
        deck_id: Owning deck (recorded in the log).
        series_id: Series the review happened in, if any.
        leech_threshold: Lapse count at which ``is_leech`` is reported.
        log_id: Explicit log identifier; a ULID is generated when omitted.

    Raises:
        InvalidRatingError: The rating is not one of the accepted values.
    """
    rating = parse_rating(rating)
    updated = next_state(item, rating, now)

    log = ReviewLog(
        id=log_id or generate_log_id(),
        item_id=item.id,
        deck_id=deck_id,
        series_id=series_id,
        timestamp=now,
        rating=rating,
        new_interval=updated.interval,
        ease_factor=updated.ease_factor,
        mastery_level=updated.mastery_level or 0.0,
    )
    return ScheduleOutcome(
        item=updated, log=log, is_leech=is_leech(updated, leech_threshold)
    )


def reset_progress(item: Reviewable, now: datetime) -> Reviewable:
    """
    Return the item to its never-reviewed state, due today.

    This is the only operation allowed to lower ``lapses``.
    """
    ensure_aware(now, "now")
    return dataclasses.replace(
        item,
        due_date=start_of_day(now),
        interval=0,
        ease_factor=INITIAL_EASE_FACTOR,
        lapses=0,
        mastery_level=None,
        last_reviewed=None,
        suspended=False,
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
