# Application Sync Package
from .differ import check_baseline, diff, sections, union_progress, union_reviews
from .merge import merge
from .orchestrator import SyncOrchestrator, SyncOutcome, SyncState

__all__ = [
    "check_baseline",
    "diff",
    "sections",
    "union_progress",
    "union_reviews",
    "merge",
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncState",
]
