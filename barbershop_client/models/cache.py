"""Cache-related dataclasses."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

DEFAULT_MEMORY_TTL_S = 5 * 60
DEFAULT_PERSISTENT_TTL_S = 24 * 60 * 60


@dataclass
class CacheEntry:
    """Cached value with the time it was stored and its time-to-live."""

    key: str
    value: Any
    stored_at: float
    ttl_s: float

    def is_expired(self, now: float) -> bool:
        return (now - self.stored_at) > self.ttl_s

    def to_json(self) -> str:
        return json.dumps(
            {
                "key": self.key,
                "data": self.value,
                "stored_at": self.stored_at,
                "ttl_s": self.ttl_s,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> CacheEntry:
        """Decode a persisted entry.

        Raises:
            ValueError: if the payload is not a well-formed entry.
        """
        item = json.loads(raw)
        if not isinstance(item, dict) or "data" not in item:
            raise ValueError("cache entry is not an object with data")
        return cls(
            key=str(item.get("key", "")),
            value=item["data"],
            stored_at=float(item["stored_at"]),
            ttl_s=float(item["ttl_s"]),
        )


@dataclass(frozen=True)
class CacheOptions:
    memory_ttl_s: float = DEFAULT_MEMORY_TTL_S
    persistent_ttl_s: float = DEFAULT_PERSISTENT_TTL_S
    persistent_only: bool = False


@dataclass
class CacheStats:
    memory_items: int = 0
    persistent_items: int = 0
    expired_items: int = 0
    total_size_bytes: int = 0

    @property
    def total_size_kb(self) -> int:
        return round(self.total_size_bytes / 1024)
