"""
Workload simulator.

Projects future review volume by running the scheduling engine forward under a
probabilistic retention model. The simulation works on private copies of the
items (they are immutable values), so the real collection is never touched and
a run can be offloaded to a worker without synchronization.
"""

import logging
import random
from collections import deque
from dataclasses import dataclass
from datetime import date, datetime

from cogniflow.application.utils.time import add_days, end_of_day, ensure_aware, start_of_day
from cogniflow.domain.models import ReviewRating, Reviewable

from .mastery import average_mastery
from .scheduler import next_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationDay:
    day: int  # Day index (0 = today)
    date: date
    review_count: int  # Reviews falling due this day
    new_count: int  # New items introduced this day
    total_load: int  # review_count + new_count
    mean_mastery: float  # Average effective mastery at end of day


@dataclass(frozen=True)
class WorkloadSummary:
    peak_load: int
    peak_day: int | None
    mean_load: float
    total_reviews: int
    total_new: int


def simulate(
    items: list[Reviewable],
    days: int,
    new_items_per_day: int,
    retention: float,
    now: datetime,
    seed: int | None = None,
) -> list[SimulationDay]:
    """
    Simulate future study workload.

    Args:
        items: Reviewable items to project. Suspended items are ignored; items
            with interval 0 form the new-item queue, in the given order.
        days: Number of days to look ahead.
        new_items_per_day: Max number of new items introduced per day.
        retention: Probability (0-1) that a due item is recalled (rated Good);
            otherwise it is forgotten (rated Again).
        now: Timezone-aware start of the projection (day 0).
        seed: Seed for the private random generator; equal seeds, equal output.

    Returns:
        One SimulationDay per simulated day.
    """
    ensure_aware(now, "now")
    if days < 0:
        raise ValueError(f"days must be >= 0, got {days}")
    if new_items_per_day < 0:
        raise ValueError(f"new_items_per_day must be >= 0, got {new_items_per_day}")
    if not 0.0 <= retention <= 1.0:
        raise ValueError(f"retention must be within [0, 1], got {retention}")

    rng = random.Random(seed)

    review_queue: list[Reviewable] = []
    new_queue: deque[Reviewable] = deque()
    for item in items:
        if item.suspended:
            continue
        if item.interval == 0:
            new_queue.append(item)
        else:
            review_queue.append(item)

    def rate(item: Reviewable, moment: datetime) -> Reviewable:
        rating = ReviewRating.GOOD if rng.random() < retention else ReviewRating.AGAIN
        return next_state(item, rating, moment)

    results: list[SimulationDay] = []
    today = start_of_day(now)

    for offset in range(days):
        current = add_days(today, offset)
        cutoff = end_of_day(current)

        # A. Reviews due today (the user is assumed to clear the queue every day)
        reviewed = 0
        next_queue: list[Reviewable] = []
        for item in review_queue:
            if item.due_date <= cutoff:
                next_queue.append(rate(item, current))
                reviewed += 1
            else:
                next_queue.append(item)

        # B. Introduce new items
        introduced = min(new_items_per_day, len(new_queue))
        for _ in range(introduced):
            next_queue.append(rate(new_queue.popleft(), current))

        review_queue = next_queue

        results.append(
            SimulationDay(
                day=offset,
                date=current.date(),
                review_count=reviewed,
                new_count=introduced,
                total_load=reviewed + introduced,
                mean_mastery=average_mastery([*review_queue, *new_queue], cutoff),
            )
        )

    logger.debug(
        f"[simulate] {len(items)} items over {days} days "
        f"(new/day={new_items_per_day}, retention={retention})"
    )
    return results


def summarize(days: list[SimulationDay]) -> WorkloadSummary:
    """Peak and mean load of a projection, used to judge burnout risk."""
    if not days:
        return WorkloadSummary(
            peak_load=0, peak_day=None, mean_load=0.0, total_reviews=0, total_new=0
        )
    peak = max(days, key=lambda d: d.total_load)
    return WorkloadSummary(
        peak_load=peak.total_load,
        peak_day=peak.day,
        mean_load=sum(d.total_load for d in days) / len(days),
        total_reviews=sum(d.review_count for d in days),
        total_new=sum(d.new_count for d in days),
    )
