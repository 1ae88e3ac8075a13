"""
Adapter Factory
Centralizes the logic for building storage and remote adapters from config.
"""

from cogniflow.application.config import AppConfig
from cogniflow.application.sync.orchestrator import SyncOrchestrator
from cogniflow.domain.errors import CogniflowError
from cogniflow.domain.sync.ports import RemoteSnapshotSource, SnapshotStorage
from cogniflow.infrastructure.adapters import FileRemoteSource, HttpRemoteSource, JsonFileStorage


def get_storage(config: AppConfig) -> SnapshotStorage:
    """This device's collection."""
    return JsonFileStorage(config.snapshot_path)


def get_baseline_storage(config: AppConfig) -> SnapshotStorage:
    """The last snapshot shared with the remote."""
    return JsonFileStorage(config.baseline_path)


def get_remote(config: AppConfig) -> RemoteSnapshotSource:
    """
    Returns the RemoteSnapshotSource selected by ``config.backend``.

    Raises:
        CogniflowError: No remote is configured, or its location is missing.
    """
    if config.backend == "file":
        if config.remote_path is None:
            raise CogniflowError("backend 'file' requires remote_path")
        return FileRemoteSource(config.remote_path)

    if config.backend == "http":
        if not config.remote_url:
            raise CogniflowError("backend 'http' requires remote_url")
        return HttpRemoteSource(config.remote_url, api_key=config.api_key, timeout=config.io_timeout)

    raise CogniflowError("No remote configured (set backend to 'file' or 'http')")


def get_orchestrator(config: AppConfig) -> SyncOrchestrator:
    return SyncOrchestrator(
        get_storage(config),
        get_baseline_storage(config),
        get_remote(config),
        io_timeout=config.io_timeout,
        io_retries=config.io_retries,
        push_after_merge=config.push_after_merge,
    )
