"""Persistent key-value stores.

Values are opaque strings; callers serialize their own records. All
operations are async so that file I/O runs off the event loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def list_keys(self) -> list[str]: ...

    async def remove_many(self, keys: Iterable[str]) -> None: ...


class MemoryStore:
    """Dict-backed store. Nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)

    async def list_keys(self) -> list[str]:
        return list(self.data.keys())

    async def remove_many(self, keys: Iterable[str]) -> None:
        for key in list(keys):
            self.data.pop(key, None)


class JsonFileStore:
    """Store backed by a single JSON object on disk.

    The file is re-read on every access and rewritten atomically (temp file
    plus ``os.replace``), so a crash mid-write leaves the previous contents.
    A missing file is an empty store; a corrupt file raises ``ValueError``.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return {}
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            prefix=f".{self.path.name}.", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp, self.path)
        except Exception:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def _set_key(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def _remove_keys(self, keys: list[str]) -> None:
        data = self._read()
        removed = [k for k in keys if data.pop(k, None) is not None]
        if removed:
            self._write(data)

    async def get(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set_key, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove_keys, [key])

    async def list_keys(self) -> list[str]:
        data = await asyncio.to_thread(self._read)
        return list(data.keys())

    async def remove_many(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        await asyncio.to_thread(self._remove_keys, keys)
        logger.debug("Removed %d keys from %s", len(keys), self.path)
