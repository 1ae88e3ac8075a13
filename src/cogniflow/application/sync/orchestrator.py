"""
Sync Orchestrator — Application layer coordinator.

Sequences one sync attempt:

    Idle -> Fetching -> Diffed -> (AwaitingResolution -> Resolved)? -> Merging -> Persisted

with Failed reachable from any step on a storage or network error, and
AwaitingResolution -> Idle on cancellation. At most one attempt is in flight;
a second request while one is pending is rejected.

The baseline records what this device and the remote last had in common: the
merged snapshot after a push, or the fetched remote snapshot when pushing is off.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TypeVar

from cogniflow.application.utils.time import utcnow
from cogniflow.domain.constants import IO_RETRIES, IO_TIMEOUT, RETRY_BACKOFF
from cogniflow.domain.errors import (
    CogniflowError,
    ConflictUnresolvedError,
    RemoteError,
    RemoteFetchError,
    RemotePushError,
    StaleBaselineError,
    StorageError,
    SyncInProgressError,
    SyncStateError,
)
from cogniflow.domain.models import Snapshot
from cogniflow.domain.sync.models import MergeReport, UserResolution
from cogniflow.domain.sync.ports import RemoteSnapshotSource, SnapshotStorage

from .differ import diff
from .merge import merge

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DIFFED = "diffed"
    AWAITING_RESOLUTION = "awaiting_resolution"
    RESOLVED = "resolved"
    MERGING = "merging"
    PERSISTED = "persisted"
    FAILED = "failed"


_IN_FLIGHT = {
    SyncState.FETCHING,
    SyncState.DIFFED,
    SyncState.AWAITING_RESOLUTION,
    SyncState.RESOLVED,
    SyncState.MERGING,
}


@dataclass(frozen=True)
class SyncOutcome:
    """
    Where a sync call left off.

    ``snapshot`` is set once Persisted; ``report`` is set while conflicts await
    resolution.
    """

    state: SyncState
    snapshot: Snapshot | None = None
    report: MergeReport | None = None


@dataclass(frozen=True)
class _Pending:
    report: MergeReport
    remote: Snapshot | None
    remote_time: datetime | None
    baseline: Snapshot | None


class SyncOrchestrator:
    """
    Drives the pure differ/merge engines against the storage and remote ports.

    Follows Dependency Inversion: depends on the SnapshotStorage and
    RemoteSnapshotSource abstractions, not concrete adapters.
    """

    def __init__(
        self,
        local_store: SnapshotStorage,
        baseline_store: SnapshotStorage,
        remote: RemoteSnapshotSource,
        *,
        io_timeout: float = IO_TIMEOUT,
        io_retries: int = IO_RETRIES,
        retry_backoff: float = RETRY_BACKOFF,
        push_after_merge: bool = True,
    ):
        """
        Args:
            local_store: This device's current snapshot.
            baseline_store: Last snapshot shared with the remote.
            remote: Source of the other devices' snapshot.
            io_timeout: Seconds allowed for each storage/remote call.
            io_retries: Extra attempts for a failed storage/remote call.
            retry_backoff: Initial delay between attempts, doubled each time.
            push_after_merge: Publish the merged snapshot to the remote.
        """
        self._local_store = local_store
        self._baseline_store = baseline_store
        self._remote = remote
        self._io_timeout = io_timeout
        self._io_retries = io_retries
        self._retry_backoff = retry_backoff
        self._push_after_merge = push_after_merge

        self._state = SyncState.IDLE
        self._pending: _Pending | None = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def pending_report(self) -> MergeReport | None:
        return self._pending.report if self._pending else None

    async def start(self, now: datetime | None = None) -> SyncOutcome:
        """
        Fetch the remote snapshot and diff it against local state.

        Without conflicts the attempt runs through to Persisted. With conflicts it
        stops in AwaitingResolution and returns the report for the user.

        Raises:
            SyncInProgressError: Another attempt is still pending.
            StorageError, RemoteError: I/O failed (state becomes Failed).
        """
        if self._state in _IN_FLIGHT:
            raise SyncInProgressError(f"A sync is already in progress ({self._state.value})")
        self._transition(SyncState.FETCHING)

        try:
            local = await self._io("load local", self._local_store.load, StorageError)
            baseline = await self._io("load baseline", self._baseline_store.load, StorageError)
            fetched = await self._io("fetch remote", self._remote.fetch_remote, RemoteFetchError)
        except Exception:
            self._fail()
            raise

        remote, remote_time = fetched if fetched is not None else (None, None)
        try:
            report, baseline = self._diff(local or Snapshot(), remote, baseline, remote_time)
        except CogniflowError:
            self._fail()
            raise
        self._pending = _Pending(report, remote, remote_time, baseline)
        self._transition(SyncState.DIFFED)

        if report.has_conflicts:
            self._transition(SyncState.AWAITING_RESOLUTION)
            logger.info(f"[sync] {len(report.conflicts)} conflict(s) need a decision")
            return SyncOutcome(state=self._state, report=report)

        return await self._merge_and_persist(self._pending, now)

    async def resolve(
        self, resolutions: Iterable[UserResolution], now: datetime | None = None
    ) -> SyncOutcome:
        """
        Apply the user's decisions and finish the pending attempt.

        The attempt leaves AwaitingResolution before any I/O, so it can no longer be
        cancelled or resolved a second time. Local state is reloaded first; if it moved
        on while the user was deciding, it is diffed again against the held remote
        snapshot.

        Raises:
            SyncStateError: No attempt is awaiting resolution.
            ConflictUnresolvedError: Some conflict has no decision (state returns to
                AwaitingResolution with the refreshed report).
        """
        if self._state is not SyncState.AWAITING_RESOLUTION or self._pending is None:
            raise SyncStateError(f"Nothing to resolve (state is {self._state.value})")

        resolutions = list(resolutions)
        pending = self._pending
        self._transition(SyncState.RESOLVED)
        try:
            local = await self._io("load local", self._local_store.load, StorageError)
        except Exception:
            self._fail()
            raise

        report = pending.report
        if (local or Snapshot()) != report.local:
            logger.info("[sync] Local snapshot changed while awaiting resolution, re-diffing")
            try:
                report, _ = self._diff(
                    local or Snapshot(), pending.remote, pending.baseline, pending.remote_time
                )
            except CogniflowError:
                self._fail()
                raise
            pending = _Pending(report, pending.remote, pending.remote_time, pending.baseline)
            self._pending = pending
            resolutions = [r for r in resolutions if report.conflict(r.kind, r.entity_id)]

        try:
            merged = merge(report, resolutions, now or utcnow())
        except (ConflictUnresolvedError, ValueError):
            self._transition(SyncState.AWAITING_RESOLUTION)
            raise
        return await self._persist(merged, pending)

    def cancel(self) -> None:
        """
        Abandon the attempt awaiting resolution.

        The held remote snapshot is discarded; local state and baseline were never
        touched, so this is equivalent to the sync never having started.
        """
        if self._state is not SyncState.AWAITING_RESOLUTION:
            raise SyncStateError(f"Nothing to cancel (state is {self._state.value})")
        self._pending = None
        self._transition(SyncState.IDLE)

    async def close(self) -> None:
        """Release connections held by the remote source."""
        await self._remote.close()

    def _diff(
        self,
        local: Snapshot,
        remote: Snapshot | None,
        baseline: Snapshot | None,
        remote_time: datetime | None,
    ) -> tuple[MergeReport, Snapshot | None]:
        try:
            return diff(local, remote, baseline, remote_time), baseline
        except StaleBaselineError as e:
            logger.warning(f"[sync] {e}; falling back to a full comparison")
            return diff(local, remote, None, remote_time), None

    async def _merge_and_persist(self, pending: _Pending, now: datetime | None) -> SyncOutcome:
        merged = merge(pending.report, (), now or utcnow())
        return await self._persist(merged, pending)

    async def _persist(self, merged: Snapshot, pending: _Pending) -> SyncOutcome:
        if self._pending is not pending:
            raise SyncStateError("The sync attempt was abandoned before it was persisted")
        self._transition(SyncState.MERGING)
        try:
            if self._push_after_merge:
                # Remote first: a failed push leaves local state and baseline untouched
                await self._io("push remote", lambda: self._remote.push_remote(merged), RemotePushError)
                await self._io("save local", lambda: self._local_store.save(merged), StorageError)
                await self._io("save baseline", lambda: self._baseline_store.save(merged), StorageError)
            else:
                await self._io("save local", lambda: self._local_store.save(merged), StorageError)
                # The remote never received the merge: the fetched copy is what both sides share
                if pending.remote is not None:
                    await self._io(
                        "save baseline",
                        lambda: self._baseline_store.save(pending.remote),
                        StorageError,
                    )
        except Exception:
            self._fail()
            raise

        self._pending = None
        self._transition(SyncState.PERSISTED)
        return SyncOutcome(state=self._state, snapshot=merged)

    async def _io(
        self,
        label: str,
        call: Callable[[], Awaitable[T]],
        error_cls: type[CogniflowError],
    ) -> T:
        """Run one storage/remote call under a timeout, retrying I/O failures."""
        attempts = self._io_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(call(), timeout=self._io_timeout)
            except asyncio.TimeoutError as e:
                error: CogniflowError = error_cls(f"{label} timed out after {self._io_timeout}s")
                error.__cause__ = e
            except (StorageError, RemoteError) as e:
                error = e
            if attempt == attempts:
                raise error
            delay = self._retry_backoff * 2 ** (attempt - 1)
            logger.warning(f"[sync] {label} failed ({error}); retry {attempt}/{self._io_retries} in {delay}s")
            await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    def _transition(self, state: SyncState) -> None:
        logger.debug(f"[sync] {self._state.value} -> {state.value}")
        self._state = state

    def _fail(self) -> None:
        self._pending = None
        self._transition(SyncState.FAILED)
