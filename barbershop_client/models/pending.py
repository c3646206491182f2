"""Pending (offline) operation dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class OperationType(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"


@dataclass
class PendingOperation:
    """A write recorded while disconnected, replayed once back online."""

    id: str
    type: OperationType
    payload: dict[str, Any]
    enqueued_at: float
    target_id: str | None = None
    local_id: str | None = None
    attempts: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "payload": self.payload,
            "enqueued_at": self.enqueued_at,
            "target_id": self.target_id,
            "local_id": self.local_id,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingOperation:
        return cls(
            id=str(data["id"]),
            type=OperationType(data["type"]),
            payload=dict(data.get("payload") or {}),
            enqueued_at=float(data.get("enqueued_at") or 0.0),
            target_id=data.get("target_id"),
            local_id=data.get("local_id"),
            attempts=int(data.get("attempts") or 0),
            last_error=data.get("last_error"),
        )


@dataclass
class SyncResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    requeued: int = 0
    dead_lettered: int = 0
    skipped: bool = False
    errors: list[str] = field(default_factory=list)
