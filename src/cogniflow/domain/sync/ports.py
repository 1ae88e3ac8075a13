"""
Ports (interfaces) for snapshot persistence and remote exchange.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from cogniflow.domain.models import Snapshot


class SnapshotStorage(ABC):
    """
    Port for atomic, whole-snapshot persistence.

    Implementations:
        - JsonFileStorage: A JSON document on local disk.
    """

    @abstractmethod
    async def load(self) -> Snapshot | None:
        """
        Load the stored snapshot.

        Returns:
            The snapshot, or None if nothing has been stored yet.

        Raises:
            StorageError: The backend could not be read.
            ValidationError: The stored document is malformed.
        """
        pass

    @abstractmethod
    async def save(self, snapshot: Snapshot) -> None:
        """
        Persist the snapshot. Readers never observe a partial write.

        Raises:
            StorageError: The backend could not be written.
        """
        pass


class RemoteSnapshotSource(ABC):
    """
    Port for the snapshot shared with other devices.

    Implementations:
        - FileRemoteSource: A file in a folder synchronized by a third-party tool.
        - HttpRemoteSource: A backup service reached over HTTP.
    """

    @abstractmethod
    async def fetch_remote(self) -> tuple[Snapshot, datetime] | None:
        """
        Fetch the latest remote snapshot.

        Returns:
            (snapshot, remote modification time), or None if no remote exists yet.

        Raises:
            RemoteFetchError: The remote could not be reached or read.
        """
        pass

    @abstractmethod
    async def push_remote(self, snapshot: Snapshot) -> datetime:
        """
        Publish a snapshot as the new remote version.

        Returns:
            The remote modification time after the push.

        Raises:
            RemotePushError: The remote rejected or did not receive the snapshot.
        """
        pass

    async def close(self) -> None:
        """Release connections held by the source. Nothing to release by default."""
        return None
