"""
RemoteSnapshotSource for an HTTP snapshot backup service.

GET fetches the latest snapshot (404 means nothing was backed up yet), PUT
publishes a new one. The service reports its modification time in the
``Last-Modified`` header.
"""

import logging
from datetime import datetime
from email.utils import parsedate_to_datetime

import httpx

from cogniflow.application.utils.time import utcnow
from cogniflow.domain.constants import IO_TIMEOUT
from cogniflow.domain.errors import RemoteFetchError, RemotePushError, ValidationError
from cogniflow.domain.models import Snapshot
from cogniflow.domain.sync.ports import RemoteSnapshotSource
from cogniflow.infrastructure.serialization import decode_snapshot, encode_snapshot

logger = logging.getLogger(__name__)


class HttpRemoteSource(RemoteSnapshotSource):
    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        timeout: float = IO_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_remote(self) -> tuple[Snapshot, datetime] | None:
        try:
            resp = await self._get_client().get(self.url, headers=self.headers)
        except httpx.HTTPError as e:
            raise RemoteFetchError(f"Could not reach {self.url}: {e}") from e

        if resp.status_code == 404:
            logger.info(f"[remote] No snapshot stored at {self.url}")
            return None
        if resp.status_code != 200:
            raise RemoteFetchError(f"GET {self.url} returned HTTP {resp.status_code}")

        try:
            snapshot = decode_snapshot(resp.content)
        except ValidationError as e:
            raise RemoteFetchError(f"Remote snapshot is invalid: {e}") from e
        return snapshot, _last_modified(resp)

    async def push_remote(self, snapshot: Snapshot) -> datetime:
        headers = {**self.headers, "Content-Type": "application/json"}
        try:
            resp = await self._get_client().put(
                self.url, content=encode_snapshot(snapshot).encode("utf-8"), headers=headers
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemotePushError(
                f"PUT {self.url} returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise RemotePushError(f"Could not reach {self.url}: {e}") from e

        logger.info(f"[remote] Pushed snapshot to {self.url}")
        return _last_modified(resp)


def _last_modified(resp: httpx.Response) -> datetime:
    header = resp.headers.get("Last-Modified")
    if header:
        try:
            return parsedate_to_datetime(header)
        except (TypeError, ValueError):
            logger.warning(f"[remote] Unparseable Last-Modified header: {header!r}")
    return utcnow()
