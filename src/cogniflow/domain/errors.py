"""
Error taxonomy shared by every layer.

Pure engines raise the validation / conflict errors; adapters wrap I/O failures
in the storage / remote errors so the orchestrator can decide what to do.
"""


class CogniflowError(Exception):
    """Root of every error raised by CogniFlow."""


class ValidationError(CogniflowError, ValueError):
    """A snapshot (or part of one) is malformed: missing field, out-of-range value."""

    def __init__(self, message: str, problems: list[str] | None = None):
        super().__init__(message)
        self.problems = problems or []


class InvalidRatingError(CogniflowError, ValueError):
    """A rating outside the four ordinal levels (or the suspend pseudo-rating)."""


class ConflictUnresolvedError(CogniflowError):
    """Merge was invoked while at least one conflict has no user resolution."""

    def __init__(self, unresolved: list[tuple[str, str]]):
        self.unresolved = unresolved
        listing = ", ".join(f"{kind}:{entity_id}" for kind, entity_id in unresolved)
        super().__init__(f"{len(unresolved)} conflict(s) without a resolution: {listing}")


class StaleBaselineError(CogniflowError):
    """The sync baseline is not an ancestor of both snapshots."""


class StorageError(CogniflowError):
    """Loading or saving a snapshot failed."""


class RemoteError(CogniflowError):
    """Base class for failures talking to the remote snapshot source."""


class RemoteFetchError(RemoteError):
    """Fetching the remote snapshot failed."""


class RemotePushError(RemoteError):
    """Publishing the merged snapshot to the remote failed."""


class SyncInProgressError(CogniflowError):
    """A sync was requested while another one is still pending."""


class SyncStateError(CogniflowError):
    """An orchestrator operation was called in a state that does not allow it."""


class EntityNotFoundError(CogniflowError, LookupError):
    """A deck, series or item id does not exist in the snapshot."""
