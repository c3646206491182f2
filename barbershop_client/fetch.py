"""Cache-first fetching with a forced-refresh escape hatch."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from .cache import TieredCache
from .models.cache import CacheOptions
from .models.fetch_state import FetchState

logger = logging.getLogger(__name__)

Producer = Callable[[], Awaitable[Any]]
StateListener = Callable[[FetchState], None]


class FetchCoordinator:
    """Wrap one data source with cache-first semantics.

    Every call to ``fetch`` takes a sequence number; only the most recently
    started call may update ``state``. An older call that finishes later
    still returns its own result to its caller but leaves ``state`` and the
    cache alone.

    Producer failures never propagate: they land in ``state.error`` and the
    cached value (if any) is served as a fallback.
    """

    def __init__(
        self,
        producer: Producer,
        cache: TieredCache | None = None,
        cache_key: str | None = None,
        cache_options: CacheOptions | None = None,
    ) -> None:
        self.producer = producer
        self.cache = cache
        self.cache_key = cache_key
        self.cache_options = cache_options
        self.state = FetchState()
        self._seq = 0
        self._listeners: list[StateListener] = []

    @property
    def data(self) -> Any:
        return self.state.data

    @property
    def loading(self) -> bool:
        return self.state.loading

    @property
    def error(self) -> Exception | None:
        return self.state.error

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _update(self, call_id: int, **changes: Any) -> bool:
        if call_id != self._seq:
            return False
        for name, value in changes.items():
            setattr(self.state, name, value)
        snapshot = FetchState(
            data=self.state.data, loading=self.state.loading, error=self.state.error
        )
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Fetch state listener failed")
        return True

    def _cache_enabled(self) -> bool:
        return self.cache is not None and bool(self.cache_key)

    async def fetch(self, force_refresh: bool = False) -> Any:
        self._seq += 1
        call_id = self._seq
        self._update(call_id, loading=True, error=None)

        if not force_refresh and self._cache_enabled():
            cached = await self.cache.get(self.cache_key)
            if cached is not None:
                self._update(call_id, data=cached, loading=False)
                return cached

        try:
            fresh = await self.producer()
        except Exception as exc:
            logger.error("Fetch failed for %s: %s", self.cache_key or "<uncached>", exc)
            fallback = None
            if self._cache_enabled():
                fallback = await self.cache.get(self.cache_key)
            if fallback is not None:
                self._update(call_id, data=fallback, error=exc, loading=False)
            else:
                self._update(call_id, error=exc, loading=False)
            return fallback

        if call_id != self._seq:
            logger.debug("Discarding stale fetch result for %s", self.cache_key)
            return fresh
        if self._cache_enabled() and fresh is not None:
            await self.cache.set(self.cache_key, fresh, self.cache_options)
        self._update(call_id, data=fresh, loading=False)
        return fresh

    async def refresh(self) -> Any:
        return await self.fetch(force_refresh=True)

    refetch = fetch
