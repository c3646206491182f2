"""Shared test fixtures and dummy classes."""

from __future__ import annotations

from typing import Any, Iterable

from barbershop_client.storage import MemoryStore


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingStore(MemoryStore):
    """Memory store that counts reads."""

    def __init__(self) -> None:
        super().__init__()
        self.gets = 0

    async def get(self, key: str) -> str | None:
        self.gets += 1
        return await super().get(key)


class FailingStore:
    """Store whose every operation fails."""

    async def get(self, key: str) -> str | None:
        raise OSError("disk unavailable")

    async def set(self, key: str, value: str) -> None:
        raise OSError("disk unavailable")

    async def remove(self, key: str) -> None:
        raise OSError("disk unavailable")

    async def list_keys(self) -> list[str]:
        raise OSError("disk unavailable")

    async def remove_many(self, keys: Iterable[str]) -> None:
        raise OSError("disk unavailable")


class DummyRemote:
    """Remote record store that records calls.

    ``errors`` is consumed one entry per write; ``None`` or an empty list
    means the write succeeds.
    """

    def __init__(self, errors: list[Exception | None] | None = None) -> None:
        self.calls: list[tuple[str, str, str | None, dict[str, Any]]] = []
        self.errors = list(errors or [])
        self.records: dict[str, list[dict[str, Any]]] = {}
        self._next_id = 0

    def _maybe_fail(self) -> None:
        if self.errors:
            exc = self.errors.pop(0)
            if exc is not None:
                raise exc

    async def create_record(self, collection: str, payload: dict[str, Any]) -> str:
        self.calls.append(("create", collection, None, dict(payload)))
        self._maybe_fail()
        self._next_id += 1
        return f"remote-{self._next_id}"

    async def update_record(
        self, collection: str, record_id: str, payload: dict[str, Any]
    ) -> None:
        self.calls.append(("update", collection, record_id, dict(payload)))
        self._maybe_fail()

    async def list_records(
        self, collection: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        self.calls.append(("list", collection, None, dict(params or {})))
        return list(self.records.get(collection, []))


class DummyResponse:
    """Dummy HTTP response for testing."""

    def __init__(self, data: object, status: int = 200, text: str = "") -> None:
        self._data = data
        self.status_code = status
        self.text = text or str(data)
        self.ok = 200 <= status < 300

    def json(self) -> object:
        return self._data
