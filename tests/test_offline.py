import asyncio
import json

import pytest

from barbershop_client.connectivity import ConnectivityMonitor
from barbershop_client.models.pending import OperationType
from barbershop_client.offline import DEAD_LETTER_KEY, QUEUE_KEY, OfflineQueue
from barbershop_client.remote import RemoteWriteError
from barbershop_client.storage import MemoryStore
from conftest import DummyRemote, FailingStore, FakeClock


def _queue(store=None, remote=None, **kwargs) -> OfflineQueue:
    kwargs.setdefault("connected", False)
    return OfflineQueue(
        store if store is not None else MemoryStore(),
        remote if remote is not None else DummyRemote(),
        clock=FakeClock(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_online_create_goes_straight_to_remote() -> None:
    remote = DummyRemote()
    store = MemoryStore()
    queue = _queue(store, remote, connected=True)

    record_id = await queue.create_record({"clienteId": "c1"})

    assert record_id == "remote-1"
    assert remote.calls == [("create", "agendamentos", None, {"clienteId": "c1"})]
    assert QUEUE_KEY not in store.data


@pytest.mark.asyncio
async def test_online_write_error_reaches_caller() -> None:
    remote = DummyRemote(errors=[RemoteWriteError("HTTP 500")])
    queue = _queue(remote=remote, connected=True)

    with pytest.raises(RemoteWriteError):
        await queue.update_record("r1", {"status": "confirmado"})


@pytest.mark.asyncio
async def test_offline_create_is_queued_and_shadowed() -> None:
    remote = DummyRemote()
    store = MemoryStore()
    queue = _queue(store, remote)

    local_id = await queue.create_record({"clienteId": "c1", "status": "pendente"})

    assert local_id.startswith("offline-")
    assert remote.calls == []
    pending = await queue.pending_operations()
    assert len(pending) == 1
    assert pending[0].type is OperationType.CREATE
    assert pending[0].local_id == local_id
    assert json.loads(store.data[QUEUE_KEY])[0]["payload"] == {
        "clienteId": "c1",
        "status": "pendente",
    }
    assert await queue.local_records() == [
        {"clienteId": "c1", "status": "pendente", "id": local_id, "offline": True}
    ]


@pytest.mark.asyncio
async def test_offline_update_merges_into_shadow_record() -> None:
    queue = _queue()
    local_id = await queue.create_record({"status": "pendente"})

    await queue.update_record(local_id, {"status": "cancelado"})

    records = await queue.local_records()
    assert records[0]["status"] == "cancelado"
    pending = await queue.pending_operations()
    assert [op.type for op in pending] == [OperationType.CREATE, OperationType.UPDATE]
    assert pending[1].target_id == local_id


@pytest.mark.asyncio
async def test_replay_preserves_enqueue_order() -> None:
    remote = DummyRemote()
    store = MemoryStore()
    queue = _queue(store, remote)
    await queue.create_record({"op": "A"})
    await queue.update_record("r9", {"op": "B"})
    await queue.create_record({"op": "C"})

    task = queue.set_connected(True)
    assert task is not None
    result = await task

    assert [call[3]["op"] for call in remote.calls] == ["A", "B", "C"]
    assert remote.calls[1][:3] == ("update", "agendamentos", "r9")
    assert result.succeeded == 3
    assert QUEUE_KEY not in store.data
    assert await queue.pending_operations() == []
    assert queue.is_connected() is True


@pytest.mark.asyncio
async def test_two_offline_creates_replay_in_order_then_drain() -> None:
    remote = DummyRemote()
    store = MemoryStore()
    queue = _queue(store, remote)
    await queue.create_record({"client": "x"})
    await queue.create_record({"client": "x"})

    await queue.set_connected(True)

    assert remote.calls == [
        ("create", "agendamentos", None, {"client": "x"}),
        ("create", "agendamentos", None, {"client": "x"}),
    ]
    assert QUEUE_KEY not in store.data


@pytest.mark.asyncio
async def test_failed_operation_is_requeued_in_place() -> None:
    remote = DummyRemote(errors=[RuntimeError("timeout"), None])
    queue = _queue(remote=remote)
    await queue.create_record({"op": "A"})
    await queue.create_record({"op": "B"})

    result = await queue.sync_pending_operations()
    assert result.failed == 1
    assert result.succeeded == 1

    pending = await queue.pending_operations()
    assert [op.payload["op"] for op in pending] == ["A"]
    assert pending[0].attempts == 1
    assert pending[0].last_error == "timeout"

    await queue.sync_pending_operations()
    assert await queue.pending_operations() == []
    assert [call[3]["op"] for call in remote.calls] == ["A", "B", "A"]


@pytest.mark.asyncio
async def test_later_update_waits_behind_failed_update_of_same_record() -> None:
    remote = DummyRemote(errors=[RuntimeError("timeout")])
    queue = _queue(remote=remote)
    await queue.update_record("r1", {"status": "confirmado"})
    await queue.update_record("r1", {"status": "cancelado"})
    await queue.update_record("r2", {"status": "pago"})

    first = await queue.sync_pending_operations()
    assert first.failed == 1
    assert first.requeued == 2
    assert first.succeeded == 1
    pending = await queue.pending_operations()
    assert [op.payload["status"] for op in pending] == ["confirmado", "cancelado"]
    assert pending[1].attempts == 0

    await queue.sync_pending_operations()
    statuses = [(call[2], call[3]["status"]) for call in remote.calls]
    assert statuses == [
        ("r1", "confirmado"),
        ("r2", "pago"),
        ("r1", "confirmado"),
        ("r1", "cancelado"),
    ]
    assert await queue.pending_operations() == []


@pytest.mark.asyncio
async def test_operation_is_dead_lettered_after_max_attempts() -> None:
    remote = DummyRemote(errors=[RuntimeError("boom")] * 2)
    store = MemoryStore()
    queue = _queue(store, remote, connected=True, max_attempts=2)
    queue.set_connected(False)
    await queue.create_record({"op": "A"})

    first = await queue.sync_pending_operations()
    second = await queue.sync_pending_operations()

    assert first.requeued == 1
    assert second.dead_lettered == 1
    assert await queue.pending_operations() == []
    dead = await queue.dead_letters()
    assert len(dead) == 1
    assert dead[0].attempts == 2
    assert DEAD_LETTER_KEY in store.data


@pytest.mark.asyncio
async def test_update_of_offline_record_waits_for_its_create() -> None:
    remote = DummyRemote(errors=[RuntimeError("down")])
    queue = _queue(remote=remote)
    local_id = await queue.create_record({"status": "pendente"})
    await queue.update_record(local_id, {"status": "confirmado"})

    first = await queue.sync_pending_operations()
    assert len(remote.calls) == 1
    assert first.requeued == 2

    await queue.sync_pending_operations()
    assert remote.calls[1][0] == "create"
    assert remote.calls[2] == ("update", "agendamentos", "remote-1", {"status": "confirmado"})
    records = await queue.local_records()
    assert records[0]["id"] == "remote-1"
    assert "offline" not in records[0]


@pytest.mark.asyncio
async def test_concurrent_sync_trigger_is_ignored() -> None:
    gate = asyncio.Event()

    class SlowRemote(DummyRemote):
        async def create_record(self, collection, payload):
            await gate.wait()
            return await super().create_record(collection, payload)

    remote = SlowRemote()
    queue = _queue(remote=remote)
    await queue.create_record({"op": "A"})

    first = asyncio.create_task(queue.sync_pending_operations())
    await asyncio.sleep(0)
    second = await queue.sync_pending_operations()
    gate.set()
    result = await first

    assert second.skipped is True
    assert result.succeeded == 1
    assert len(remote.calls) == 1


@pytest.mark.asyncio
async def test_operations_queued_during_replay_are_kept() -> None:
    gate = asyncio.Event()

    class SlowRemote(DummyRemote):
        async def create_record(self, collection, payload):
            await gate.wait()
            return await super().create_record(collection, payload)

    queue = _queue(remote=SlowRemote())
    await queue.create_record({"op": "A"})

    replay = asyncio.create_task(queue.sync_pending_operations())
    await asyncio.sleep(0)
    await queue.create_record({"op": "B"})
    gate.set()
    await replay

    pending = await queue.pending_operations()
    assert [op.payload["op"] for op in pending] == ["B"]


@pytest.mark.asyncio
async def test_queue_bookkeeping_failures_are_not_raised() -> None:
    remote = DummyRemote()
    queue = _queue(FailingStore(), remote)

    local_id = await queue.create_record({"op": "A"})
    assert local_id.startswith("offline-")
    assert await queue.local_records() == []

    result = await queue.sync_pending_operations()
    assert result.succeeded == 1
    assert remote.calls[0][3] == {"op": "A"}


@pytest.mark.asyncio
async def test_persisted_queue_is_replayed_by_new_instance() -> None:
    store = MemoryStore()
    remote = DummyRemote()
    await _queue(store, DummyRemote()).create_record({"op": "A"})

    restarted = _queue(store, remote)
    await restarted.create_record({"op": "B"})
    assert [op.payload["op"] for op in await restarted.pending_operations()] == ["A", "B"]

    await restarted.sync_pending_operations()
    assert [call[3]["op"] for call in remote.calls] == ["A", "B"]


@pytest.mark.asyncio
async def test_malformed_queue_entries_are_skipped() -> None:
    store = MemoryStore(
        {
            QUEUE_KEY: json.dumps(
                [
                    {"id": "1", "type": "DELETE", "payload": {}},
                    {"id": "2", "type": "CREATE", "payload": {"op": "A"}},
                ]
            )
        }
    )
    remote = DummyRemote()
    queue = _queue(store, remote)

    await queue.sync_pending_operations()

    assert remote.calls == [("create", "agendamentos", None, {"op": "A"})]


@pytest.mark.asyncio
async def test_only_offline_to_online_edge_triggers_replay() -> None:
    queue = _queue(connected=True)

    assert queue.set_connected(True) is None
    assert queue.set_connected(False) is None
    assert queue.set_connected(False) is None
    task = queue.set_connected(True)
    assert task is not None
    await task


@pytest.mark.asyncio
async def test_attach_replays_when_monitor_reports_online() -> None:
    remote = DummyRemote()
    monitor = ConnectivityMonitor(initial=True)
    queue = _queue(remote=remote, connected=True)
    queue.attach(monitor)

    monitor.publish(False)
    await queue.create_record({"op": "A"})
    monitor.publish(True)
    await queue._sync_task

    assert remote.calls == [("create", "agendamentos", None, {"op": "A"})]
