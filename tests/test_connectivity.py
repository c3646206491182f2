import asyncio

import httpx
import pytest

from barbershop_client.connectivity import ConnectivityMonitor


def test_publish_notifies_subscribers_and_isolates_errors() -> None:
    monitor = ConnectivityMonitor(initial=True)
    seen: list[bool] = []

    def broken(_connected: bool) -> None:
        raise RuntimeError("listener bug")

    monitor.subscribe(broken)
    unsubscribe = monitor.subscribe(seen.append)

    monitor.publish(False)
    monitor.publish(True)
    unsubscribe()
    monitor.publish(False)

    assert seen == [False, True]
    assert monitor.is_connected is False


@pytest.mark.asyncio
@pytest.mark.parametrize("status, expected", [(200, True), (404, True), (503, False)])
async def test_probe_maps_status_codes(status, expected) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(status))
    monitor = ConnectivityMonitor("http://probe.test/health", transport=transport)

    assert await monitor.probe() is expected


@pytest.mark.asyncio
async def test_probe_transport_error_means_offline() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("network down", request=request)

    monitor = ConnectivityMonitor(
        "http://probe.test/health", transport=httpx.MockTransport(handler)
    )

    assert await monitor.probe() is False


@pytest.mark.asyncio
async def test_polling_loop_publishes_probe_results() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    monitor = ConnectivityMonitor(
        "http://probe.test/health", interval_s=0.01, transport=transport
    )
    seen: list[bool] = []
    monitor.subscribe(seen.append)

    task = monitor.ensure_started()
    assert monitor.ensure_started() is task
    for _ in range(100):
        if seen:
            break
        await asyncio.sleep(0.01)
    await monitor.stop()

    assert seen and seen[0] is False
    assert task.done()


@pytest.mark.asyncio
async def test_polling_disabled_without_probe_url() -> None:
    monitor = ConnectivityMonitor(None)

    assert monitor.ensure_started() is None
    assert await monitor.probe() is True
