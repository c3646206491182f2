"""Offline-tolerant writes for one remote collection.

While disconnected, creates and updates are appended to a persisted FIFO
queue and mirrored into a local read-shadow so the client sees its own
unconfirmed writes. On the offline→online edge the queue is replayed in
enqueue order, one pass at a time.

Failed replays are kept in their original position for the next pass and
move to a dead-letter list after ``max_attempts`` failures. An update whose
target was created offline and has not reached the remote yet is held back
behind that create.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
from typing import Any, Callable

from .connectivity import ConnectivityMonitor
from .models.pending import OperationType, PendingOperation, SyncResult
from .remote import RecordStore
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

QUEUE_KEY = "pendingOperations"
DEAD_LETTER_KEY = "failedOperations"
LOCAL_ID_PREFIX = "offline-"


class OfflineQueue:
    def __init__(
        self,
        store: KeyValueStore,
        remote: RecordStore,
        collection: str = "agendamentos",
        connected: bool = True,
        max_attempts: int = 5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.remote = remote
        self.collection = collection
        self.max_attempts = max(1, max_attempts)
        self._clock = clock
        self._connected = connected
        self._pending: list[PendingOperation] = []
        self._loaded = False
        self._syncing = False
        self._sync_task: asyncio.Task | None = None

    # Connectivity

    def is_connected(self) -> bool:
        return self._connected

    def set_connected(self, connected: bool) -> asyncio.Task | None:
        """Record the connectivity flag.

        Returns:
            The replay task when this call is an offline→online transition,
            otherwise None.
        """
        was_offline = not self._connected
        self._connected = bool(connected)
        if not (was_offline and self._connected):
            return None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Back online outside an event loop; replay deferred")
            return None
        logger.info("Back online; replaying pending operations")
        self._sync_task = asyncio.create_task(self.sync_pending_operations())
        return self._sync_task

    def attach(self, monitor: ConnectivityMonitor) -> Callable[[], None]:
        self._connected = monitor.is_connected
        return monitor.subscribe(self.set_connected)

    # Writes

    async def create_record(self, payload: dict[str, Any]) -> str:
        if self._connected:
            return await self.remote.create_record(self.collection, payload)

        local_id = f"{LOCAL_ID_PREFIX}{secrets.token_urlsafe(8)}"
        await self._enqueue(
            PendingOperation(
                id=self._new_operation_id(),
                type=OperationType.CREATE,
                payload=dict(payload),
                enqueued_at=self._clock(),
                local_id=local_id,
            )
        )
        records = await self.local_records()
        records.append({**payload, "id": local_id, "offline": True})
        await self._save_shadow(records)
        return local_id

    async def update_record(self, record_id: str, payload: dict[str, Any]) -> None:
        if self._connected:
            await self.remote.update_record(self.collection, record_id, payload)
            return

        await self._enqueue(
            PendingOperation(
                id=self._new_operation_id(),
                type=OperationType.UPDATE,
                payload=dict(payload),
                enqueued_at=self._clock(),
                target_id=record_id,
            )
        )
        records = await self.local_records()
        for record in records:
            if record.get("id") == record_id:
                record.update(payload)
                await self._save_shadow(records)
                break

    # Replay

    async def sync_pending_operations(self) -> SyncResult:
        if self._syncing:
            logger.debug("Sync already running; ignoring trigger")
            return SyncResult(skipped=True)
        self._syncing = True
        try:
            return await self._sync_pass()
        finally:
            self._syncing = False

    async def _sync_pass(self) -> SyncResult:
        loaded = await self._load_queue()
        if loaded is not None:
            self._pending = loaded
        self._loaded = True

        batch = list(self._pending)
        result = SyncResult()
        if not batch:
            return result
        logger.info("Replaying %d pending operations", len(batch))

        id_map: dict[str, str] = {}
        blocked: set[str] = set()
        dropped: set[str] = set()
        kept: list[PendingOperation] = []
        dead: list[PendingOperation] = []

        for op in batch:
            result.processed += 1
            if op.type is OperationType.UPDATE and op.target_id in id_map:
                op.target_id = id_map[op.target_id]
            if op.type is OperationType.UPDATE and op.target_id in dropped:
                op.last_error = "create of target record was dead-lettered"
                dead.append(op)
                result.dead_lettered += 1
                continue
            if op.type is OperationType.UPDATE and op.target_id in blocked:
                kept.append(op)
                result.requeued += 1
                continue

            try:
                remote_id = await self._execute(op)
            except Exception as exc:
                result.failed += 1
                op.attempts += 1
                op.last_error = str(exc)
                result.errors.append(f"{op.type.value} {op.id}: {exc}")
                logger.error(
                    "Failed to replay %s %s (attempt %d/%d): %s",
                    op.type.value,
                    op.id,
                    op.attempts,
                    self.max_attempts,
                    exc,
                )
                if op.attempts >= self.max_attempts:
                    dead.append(op)
                    result.dead_lettered += 1
                    if op.local_id:
                        dropped.add(op.local_id)
                else:
                    kept.append(op)
                    result.requeued += 1
                    # Later writes to the same record must stay behind this one.
                    blocked.add(
                        op.local_id if op.type is OperationType.CREATE else op.target_id
                    )
                continue

            result.succeeded += 1
            if op.type is OperationType.CREATE and op.local_id and remote_id:
                id_map[op.local_id] = remote_id
                await self._confirm_shadow(op.local_id, remote_id)

        # Operations enqueued while this pass was awaiting the remote.
        batch_ids = {op.id for op in batch}
        arrived = [op for op in self._pending if op.id not in batch_ids]
        for op in arrived:
            if op.target_id in id_map:
                op.target_id = id_map[op.target_id]

        self._pending = kept + arrived
        await self._save_queue(self._pending)
        if dead:
            await self._append_dead_letters(dead)
        logger.info(
            "Replay finished: %d ok, %d failed, %d requeued, %d dead-lettered",
            result.succeeded,
            result.failed,
            result.requeued,
            result.dead_lettered,
        )
        return result

    async def _execute(self, op: PendingOperation) -> str | None:
        if op.type is OperationType.CREATE:
            return await self.remote.create_record(self.collection, op.payload)
        if not op.target_id:
            raise ValueError("update has no target record id")
        await self.remote.update_record(self.collection, op.target_id, op.payload)
        return None

    # Inspection

    async def pending_operations(self) -> list[PendingOperation]:
        await self._ensure_loaded()
        return list(self._pending)

    async def local_records(self) -> list[dict[str, Any]]:
        items = await self._read_list(self.collection)
        return [item for item in items if isinstance(item, dict)]

    async def dead_letters(self) -> list[PendingOperation]:
        return self._parse_operations(await self._read_list(DEAD_LETTER_KEY))

    # Bookkeeping; failures here are logged, never raised

    def _new_operation_id(self) -> str:
        return f"{int(self._clock() * 1000)}-{secrets.token_hex(4)}"

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        loaded = await self._load_queue()
        if loaded is not None:
            # Keep anything enqueued before the first load.
            known = {op.id for op in loaded}
            self._pending = loaded + [op for op in self._pending if op.id not in known]
        self._loaded = True

    async def _enqueue(self, op: PendingOperation) -> None:
        await self._ensure_loaded()
        self._pending.append(op)
        await self._save_queue(self._pending)
        logger.info("Queued offline %s operation %s", op.type.value, op.id)

    async def _read_list(self, key: str) -> list[Any]:
        try:
            raw = await self.store.get(key)
        except Exception:
            logger.exception("Failed to read %s", key)
            return []
        if raw is None:
            return []
        try:
            items = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable %s", key)
            return []
        return items if isinstance(items, list) else []

    async def _write_list(self, key: str, items: list[Any]) -> None:
        try:
            if items:
                await self.store.set(key, json.dumps(items))
            else:
                await self.store.remove(key)
        except Exception:
            logger.exception("Failed to write %s", key)

    def _parse_operations(self, items: list[Any]) -> list[PendingOperation]:
        ops: list[PendingOperation] = []
        for item in items:
            try:
                ops.append(PendingOperation.from_dict(item))
            except (ValueError, TypeError, KeyError, AttributeError):
                logger.warning("Skipping malformed pending operation: %r", item)
        return ops

    async def _load_queue(self) -> list[PendingOperation] | None:
        try:
            raw = await self.store.get(QUEUE_KEY)
        except Exception:
            logger.exception("Failed to load pending operations")
            return None
        if raw is None:
            return None
        try:
            items = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable pending operation queue")
            return None
        if not isinstance(items, list):
            return None
        return self._parse_operations(items)

    async def _save_queue(self, ops: list[PendingOperation]) -> None:
        await self._write_list(QUEUE_KEY, [op.to_dict() for op in ops])

    async def _append_dead_letters(self, ops: list[PendingOperation]) -> None:
        existing = await self._read_list(DEAD_LETTER_KEY)
        await self._write_list(DEAD_LETTER_KEY, existing + [op.to_dict() for op in ops])
        logger.warning("Moved %d operations to %s", len(ops), DEAD_LETTER_KEY)

    async def _save_shadow(self, records: list[dict[str, Any]]) -> None:
        await self._write_list(self.collection, records)

    async def _confirm_shadow(self, local_id: str, remote_id: str) -> None:
        records = await self.local_records()
        for record in records:
            if record.get("id") == local_id:
                record["id"] = remote_id
                record.pop("offline", None)
                await self._save_shadow(records)
                return
