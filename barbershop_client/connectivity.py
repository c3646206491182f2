"""Network status tracking and change notification."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

import httpx

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityMonitor:
    """Publishes "is connected" events to subscribers.

    Events come from ``publish`` (push-style integrations) or from the
    polling loop started by ``ensure_started``, which probes ``probe_url``.
    Every probe result is delivered, not only changes; subscribers decide
    which transitions matter to them.
    """

    def __init__(
        self,
        probe_url: str | None = None,
        interval_s: float = 15.0,
        timeout_s: float = 5.0,
        initial: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.probe_url = probe_url
        self.interval_s = interval_s
        self.timeout_s = timeout_s
        self._connected = initial
        self._listeners: list[Listener] = []
        self._task: asyncio.Task | None = None
        self._transport = transport

    @property
    def is_connected(self) -> bool:
        return self._connected

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, connected: bool) -> None:
        if connected != self._connected:
            logger.info("Connectivity changed: %s", "online" if connected else "offline")
        self._connected = connected
        for listener in list(self._listeners):
            try:
                listener(connected)
            except Exception:
                logger.exception("Connectivity listener failed")

    async def probe(self) -> bool:
        if not self.probe_url:
            return self._connected
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_s, transport=self._transport
            ) as client:
                resp = await client.get(self.probe_url)
            return resp.status_code < 500
        except httpx.HTTPError as e:
            logger.debug("Connectivity probe failed: %s", e)
            return False

    def ensure_started(self) -> asyncio.Task | None:
        if not self.probe_url:
            logger.warning("No connectivity probe URL configured; polling disabled")
            return None
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self._poll_loop())
        return self._task

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _poll_loop(self) -> None:
        logger.info(
            "Starting connectivity loop (url=%s, interval=%ss)",
            self.probe_url,
            self.interval_s,
        )
        while True:
            try:
                start = time.monotonic()
                self.publish(await self.probe())
                elapsed = time.monotonic() - start
                await asyncio.sleep(max(0.0, self.interval_s - elapsed))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Connectivity loop error")
                await asyncio.sleep(self.interval_s)
