"""Async client for the remote record store.

Records live in named collections (``barbeiros``, ``agendamentos``) behind a
plain JSON REST surface: POST creates, PATCH merges fields, GET lists.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


class RemoteError(RuntimeError):
    """Raised when the remote store cannot complete a request."""


class RemoteWriteError(RemoteError):
    pass


class RemoteReadError(RemoteError):
    pass


class RecordStore(Protocol):
    async def create_record(self, collection: str, payload: dict[str, Any]) -> str: ...

    async def update_record(
        self, collection: str, record_id: str, payload: dict[str, Any]
    ) -> None: ...


def _snippet(response: httpx.Response) -> str:
    return response.text[:300].replace("\n", " ")


def _extract_id(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    if body.get("id"):
        return str(body["id"])
    name = body.get("name")
    if isinstance(name, str) and name:
        return name.rsplit("/", 1)[-1]
    return None


class HttpRecordStore:
    """Record store over HTTP.

    Args:
        base_url: Root URL; collections are addressed as ``{base_url}/{name}``.
        api_key: Optional bearer token.
        timeout_s: Per-request timeout in seconds.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout_s, headers=self._headers(), transport=self._transport
        )

    async def create_record(self, collection: str, payload: dict[str, Any]) -> str:
        url = f"{self.base_url}/{collection}"
        async with self._client() as client:
            try:
                resp = await client.post(url, json=payload)
            except httpx.HTTPError as e:
                raise RemoteWriteError(f"create in {collection} failed: {e}") from e
        if resp.is_error:
            raise RemoteWriteError(
                f"create in {collection} HTTP {resp.status_code}: {_snippet(resp)}"
            )
        try:
            record_id = _extract_id(resp.json())
        except ValueError:
            record_id = None
        if not record_id:
            raise RemoteWriteError(f"create in {collection} returned no record id")
        logger.debug("Created %s/%s", collection, record_id)
        return record_id

    async def update_record(
        self, collection: str, record_id: str, payload: dict[str, Any]
    ) -> None:
        url = f"{self.base_url}/{collection}/{record_id}"
        async with self._client() as client:
            try:
                resp = await client.patch(url, json=payload)
            except httpx.HTTPError as e:
                raise RemoteWriteError(
                    f"update of {collection}/{record_id} failed: {e}"
                ) from e
        if resp.is_error:
            raise RemoteWriteError(
                f"update of {collection}/{record_id} HTTP {resp.status_code}: "
                f"{_snippet(resp)}"
            )
        logger.debug("Updated %s/%s", collection, record_id)

    async def list_records(
        self, collection: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        url = f"{self.base_url}/{collection}"
        async with self._client() as client:
            try:
                resp = await client.get(url, params=params)
            except httpx.HTTPError as e:
                raise RemoteReadError(f"list of {collection} failed: {e}") from e
        if resp.is_error:
            raise RemoteReadError(
                f"list of {collection} HTTP {resp.status_code}: {_snippet(resp)}"
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise RemoteReadError(f"list of {collection} returned invalid JSON") from e
        if isinstance(body, dict):
            body = body.get("documents") or body.get("items") or []
        return [item for item in body if isinstance(item, dict)]
