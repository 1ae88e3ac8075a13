"""
JSON File Storage — SnapshotStorage on local disk.

Whole-snapshot writes go to a temporary file in the same directory and are moved
into place with ``os.replace``, so readers see either the old or the new document.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from cogniflow.domain.errors import StorageError
from cogniflow.domain.models import Snapshot
from cogniflow.domain.sync.ports import SnapshotStorage
from cogniflow.infrastructure.serialization import decode_snapshot, encode_snapshot

logger = logging.getLogger(__name__)


def write_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` in one step."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class JsonFileStorage(SnapshotStorage):
    def __init__(self, path: Path):
        self.path = Path(path)

    async def load(self) -> Snapshot | None:
        return await asyncio.to_thread(self._load)

    async def save(self, snapshot: Snapshot) -> None:
        await asyncio.to_thread(self._save, snapshot)

    def _load(self) -> Snapshot | None:
        if not self.path.exists():
            logger.debug(f"[storage] No snapshot at {self.path}")
            return None
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e
        return decode_snapshot(text)

    def _save(self, snapshot: Snapshot) -> None:
        try:
            write_atomic(self.path, encode_snapshot(snapshot))
        except OSError as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e
        logger.debug(f"[storage] Saved snapshot to {self.path}")
