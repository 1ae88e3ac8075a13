# Application Scheduling Package
from .due import DueItem, due_counts, due_items, is_due
from .leech import apply_leech_action, is_leech
from .mastery import effective_mastery
from .review_service import ReviewResult, reset_deck_progress, review_item
from .scheduler import ScheduleOutcome, next_state, parse_rating, reset_progress, schedule
from .simulator import SimulationDay, WorkloadSummary, simulate, summarize

__all__ = [
    "DueItem",
    "due_counts",
    "due_items",
    "is_due",
    "apply_leech_action",
    "is_leech",
    "effective_mastery",
    "ReviewResult",
    "reset_deck_progress",
    "review_item",
    "ScheduleOutcome",
    "next_state",
    "parse_rating",
    "reset_progress",
    "schedule",
    "SimulationDay",
    "WorkloadSummary",
    "simulate",
    "summarize",
]
