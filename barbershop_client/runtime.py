"""Runtime wiring: one object holding every long-lived component."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from .cache import TieredCache
from .config import Settings
from .connectivity import ConnectivityMonitor
from .models.cache import CacheOptions
from .offline import OfflineQueue
from .remote import HttpRecordStore
from .services import BookingService
from .storage import JsonFileStore, KeyValueStore
from .whatsapp import WhatsAppClient, WhatsAppConfig

logger = logging.getLogger(__name__)


@dataclass
class ClientRuntime:
    store: KeyValueStore
    cache: TieredCache
    remote: HttpRecordStore
    queue: OfflineQueue
    monitor: ConnectivityMonitor
    bookings: BookingService
    _detach: Callable[[], None] | None = field(default=None, repr=False)

    async def start(self) -> None:
        removed = await self.cache.clear_expired()
        logger.info("Startup: removed %d expired cache entries", removed)
        self._detach = self.queue.attach(self.monitor)
        self.monitor.ensure_started()
        if self.queue.is_connected() and await self.queue.pending_operations():
            await self.queue.sync_pending_operations()

    async def stop(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None
        await self.monitor.stop()
        await self.bookings.drain_notifications()


def build_runtime(settings: Settings, store: KeyValueStore | None = None) -> ClientRuntime:
    store = store if store is not None else JsonFileStore(settings.store_path)
    cache = TieredCache(
        store,
        CacheOptions(
            memory_ttl_s=settings.CACHE_MEMORY_TTL_S,
            persistent_ttl_s=settings.CACHE_PERSISTENT_TTL_S,
        ),
    )
    remote = HttpRecordStore(
        settings.REMOTE_BASE_URL or "http://localhost",
        api_key=settings.REMOTE_API_KEY,
        timeout_s=settings.REMOTE_TIMEOUT_S,
    )
    queue = OfflineQueue(
        store,
        remote,
        collection=settings.BOOKINGS_COLLECTION,
        max_attempts=settings.SYNC_MAX_ATTEMPTS,
    )
    monitor = ConnectivityMonitor(
        settings.CONNECTIVITY_PROBE_URL,
        interval_s=settings.CONNECTIVITY_INTERVAL_S,
        timeout_s=settings.CONNECTIVITY_TIMEOUT_S,
    )
    messenger = WhatsAppClient(
        WhatsAppConfig(
            access_token=settings.WHATSAPP_ACCESS_TOKEN,
            phone_number_id=settings.WHATSAPP_PHONE_NUMBER_ID,
            api_version=settings.WHATSAPP_API_VERSION,
            webhook_url=settings.WHATSAPP_WEBHOOK_URL,
            use_direct_link=settings.WHATSAPP_USE_DIRECT_LINK,
        )
    )
    bookings = BookingService(
        cache,
        queue,
        remote,
        messenger=messenger,
        barbers_collection=settings.BARBERS_COLLECTION,
    )
    return ClientRuntime(
        store=store,
        cache=cache,
        remote=remote,
        queue=queue,
        monitor=monitor,
        bookings=bookings,
    )
