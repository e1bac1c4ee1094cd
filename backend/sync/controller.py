"""Per-entity-family cache kept coherent with the RemoteStore.

A CacheController serves the freshest acceptable snapshot of one collection:

- fetch() inside the TTL returns the cached snapshot without touching the store.
- Otherwise a refresh is scheduled through a debounce timer and executed
  single-flight, so a burst of callers produces one store read and every
  caller receives the same result.
- A failed refresh (TransientStoreError) keeps the last-known snapshot. Only
  the first caller of an explicit force refresh sees the error.
- Push signals are debounced separately; signals naming a record trigger a
  point read-and-merge when the family supports point lookups.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import structlog

from shared.clock import utc_now
from shared.errors import TransientStoreError
from sync.debounce import Debouncer
from sync.single_flight import SingleFlight

if TYPE_CHECKING:
    from datetime import datetime

    from shared.clock import Clock
    from shared.dal.models import StoreModel
    from shared.store.protocol import ChangeEvent

Loader = Callable[[], Awaitable[list[Any]]]
PointLoader = Callable[[str], Awaitable[Any]]
Observer = Callable[[list[Any]], None]

DEFAULT_CACHE_TIMEOUT = timedelta(seconds=30)
DEFAULT_SIGNAL_DEBOUNCE_SECONDS = 2.0

logger = structlog.get_logger()


@dataclass
class RefreshOutcome:
    """Result of one refresh cycle, shared by every caller that awaited it."""

    items: list[Any]
    error: Exception | None = None
    error_reported: bool = False


class CacheController:
    def __init__(
        self,
        name: str,
        loader: Loader,
        *,
        point_loader: PointLoader | None = None,
        clock: Clock = utc_now,
        cache_timeout: timedelta = DEFAULT_CACHE_TIMEOUT,
        debounce_seconds: float = 0.0,
        signal_debounce_seconds: float = DEFAULT_SIGNAL_DEBOUNCE_SECONDS,
        sort_key: Callable[[Any], Any] | None = None,
    ) -> None:
        self.name = name
        self._loader = loader
        self._point_loader = point_loader
        self._clock = clock
        self._cache_timeout = cache_timeout
        self._sort_key = sort_key
        self._items: dict[str, StoreModel] = {}
        self._last_refresh_time: datetime | None = None
        self._flights = SingleFlight()
        self._refresh_debouncer = Debouncer(debounce_seconds, self._run_refresh, name=f"{name}.refresh")
        self._signal_debouncer = Debouncer(signal_debounce_seconds, self._apply_signals, name=f"{name}.signal")
        self._pending_record_ids: set[str] = set()
        self._pending_full_refresh = False
        self._observers: list[Observer] = []
        # Bumped by every local write so a refresh that read the store earlier
        # neither marks the snapshot fresh nor overwrites newer records.
        self._generation = 0
        self._written_at: dict[str, int] = {}

    @property
    def last_refresh_time(self) -> datetime | None:
        return self._last_refresh_time

    @property
    def supports_point_lookup(self) -> bool:
        return self._point_loader is not None

    def is_fresh(self) -> bool:
        if self._last_refresh_time is None:
            return False
        return self._clock() - self._last_refresh_time < self._cache_timeout

    def snapshot(self) -> list[Any]:
        items = list(self._items.values())
        if self._sort_key is not None:
            items.sort(key=self._sort_key)
        return items

    def get(self, record_id: str) -> Any | None:
        return self._items.get(record_id)

    async def fetch(self, *, force_refresh: bool = False) -> list[Any]:
        """Return the cached snapshot if fresh, otherwise refresh and return the result."""
        if not force_refresh and self.is_fresh():
            return self.snapshot()
        if self._flights.in_flight(self.name):
            outcome = await self._flights.do(self.name, self._refresh)
        else:
            outcome = await asyncio.shield(self._refresh_debouncer.trigger())
        return self._settle(outcome, force_refresh=force_refresh)

    async def refresh_record(self, record_id: str) -> Any | None:
        """Point read one record and merge it; a missing record is evicted.

        Falls back to a full refresh when the family has no point lookup.
        """
        if not self.supports_point_lookup:
            await self.fetch(force_refresh=True)
            return self.get(record_id)
        item = await self._point_loader(record_id)
        if item is None:
            self.discard(record_id)
        else:
            self.upsert(item)
        return item

    def upsert(self, item: Any) -> None:
        self._mark_written(item.id)
        self._items[item.id] = item
        self._notify()

    def discard(self, record_id: str) -> None:
        self._mark_written(record_id)
        if self._items.pop(record_id, None) is not None:
            self._notify()

    def invalidate(self) -> None:
        """Mark the snapshot stale; the next fetch refreshes."""
        self._generation += 1
        self._last_refresh_time = None

    def clear(self) -> None:
        self._generation += 1
        self._items.clear()
        self._written_at.clear()
        self._last_refresh_time = None
        self._notify()

    def handle_signal(self, event: ChangeEvent) -> asyncio.Future[Any]:
        """Schedule a debounced reaction to a push signal.

        Returns the debounce cycle's future so callers may await the outcome.
        """
        if event.record_id is not None and self.supports_point_lookup:
            self._pending_record_ids.add(event.record_id)
        else:
            self._pending_full_refresh = True
        return self._signal_debouncer.trigger()

    def add_observer(self, observer: Observer) -> Callable[[], None]:
        """Register a callback receiving the snapshot after each change. Returns an unsubscribe callable."""
        self._observers.append(observer)

        def _remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _remove

    def close(self) -> None:
        self._refresh_debouncer.cancel()
        self._signal_debouncer.cancel()
        self._flights.cancel_all()
        self._pending_record_ids.clear()
        self._pending_full_refresh = False

    def _settle(self, outcome: RefreshOutcome, *, force_refresh: bool) -> list[Any]:
        if outcome.error is not None and force_refresh and not outcome.error_reported:
            outcome.error_reported = True
            raise outcome.error
        return list(outcome.items)

    async def _run_refresh(self) -> RefreshOutcome:
        return await self._flights.do(self.name, self._refresh)

    async def _refresh(self) -> RefreshOutcome:
        started_at = self._clock()
        generation = self._generation
        try:
            items = await self._loader()
        except TransientStoreError as exc:
            logger.warning("cache refresh failed, serving stale snapshot", cache=self.name, exc_info=True)
            return RefreshOutcome(items=self.snapshot(), error=exc)

        written = {record_id for record_id, seen in self._written_at.items() if seen > generation}
        fresh = {item.id: item for item in items if item.id not in written}
        evicted = self._items.keys() - fresh.keys() - written
        for record_id in evicted:
            del self._items[record_id]
        self._items.update(fresh)
        if generation == self._generation:
            self._last_refresh_time = started_at
            self._written_at.clear()
        else:
            logger.debug("cache changed during refresh, leaving stale", cache=self.name)
        logger.debug("cache refreshed", cache=self.name, count=len(fresh), evicted=len(evicted))
        self._notify()
        return RefreshOutcome(items=self.snapshot())

    async def _apply_signals(self) -> None:
        record_ids = sorted(self._pending_record_ids)
        full_refresh = self._pending_full_refresh
        self._pending_record_ids.clear()
        self._pending_full_refresh = False

        if full_refresh:
            # A fetch already in flight may have read the store before the change landed.
            if self._flights.in_flight(self.name):
                await self._flights.do(self.name, self._refresh)
            await self._flights.do(self.name, self._refresh)
            return

        for record_id in record_ids:
            try:
                await self.refresh_record(record_id)
            except TransientStoreError:
                logger.warning("point refresh failed", cache=self.name, record_id=record_id, exc_info=True)

    def _mark_written(self, record_id: str) -> None:
        self._generation += 1
        self._written_at[record_id] = self._generation

    def _notify(self) -> None:
        if not self._observers:
            return
        snapshot = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                logger.exception("cache observer failed", cache=self.name)
