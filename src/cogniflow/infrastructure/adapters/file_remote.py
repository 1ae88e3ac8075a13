"""
RemoteSnapshotSource backed by a file in a shared folder.

The folder is kept in sync between devices by a third-party tool (cloud drive,
Syncthing...). The file's mtime stands in for the remote modification time.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from cogniflow.domain.errors import RemoteFetchError, RemotePushError, ValidationError
from cogniflow.domain.models import Snapshot
from cogniflow.domain.sync.ports import RemoteSnapshotSource
from cogniflow.infrastructure.serialization import decode_snapshot, encode_snapshot

from .json_file_storage import write_atomic

logger = logging.getLogger(__name__)


class FileRemoteSource(RemoteSnapshotSource):
    def __init__(self, path: Path):
        self.path = Path(path)

    async def fetch_remote(self) -> tuple[Snapshot, datetime] | None:
        return await asyncio.to_thread(self._fetch)

    async def push_remote(self, snapshot: Snapshot) -> datetime:
        return await asyncio.to_thread(self._push, snapshot)

    def _mtime(self) -> datetime:
        return datetime.fromtimestamp(self.path.stat().st_mtime, tz=timezone.utc)

    def _fetch(self) -> tuple[Snapshot, datetime] | None:
        if not self.path.exists():
            logger.info(f"[remote] No remote snapshot at {self.path}")
            return None
        try:
            text = self.path.read_text(encoding="utf-8")
            modified = self._mtime()
        except OSError as e:
            raise RemoteFetchError(f"Could not read remote {self.path}: {e}") from e
        try:
            snapshot = decode_snapshot(text)
        except ValidationError as e:
            raise RemoteFetchError(f"Remote snapshot at {self.path} is invalid: {e}") from e
        return snapshot, modified

    def _push(self, snapshot: Snapshot) -> datetime:
        try:
            write_atomic(self.path, encode_snapshot(snapshot))
            modified = self._mtime()
        except OSError as e:
            raise RemotePushError(f"Could not write remote {self.path}: {e}") from e
        logger.info(f"[remote] Pushed snapshot to {self.path}")
        return modified
