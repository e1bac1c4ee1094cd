"""Startup wiring: one DataCache and one SessionManager per client process."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from pairing.manager import SessionManager
from shared.clock import utc_now
from shared.logging import setup_logging
from shared.settings import SyncSettings
from shared.store import InMemoryRemoteStore
from sync.service import DataCache

if TYPE_CHECKING:
    from pathlib import Path

    from shared.clock import Clock
    from shared.store.protocol import RemoteStore

logger = structlog.get_logger()


@dataclass
class SyncLayer:
    """Service objects handed to every consumer by reference."""

    store: RemoteStore
    settings: SyncSettings
    cache: DataCache
    sessions: SessionManager
    log_path: Path | None = None

    def start(self) -> None:
        self.cache.start()
        self.sessions.start_sweeper()
        logger.info("sync layer started")

    async def stop(self) -> None:
        await self.sessions.stop_sweeper()
        await self.cache.stop()
        logger.info("sync layer stopped")


def create_sync_layer(
    store: RemoteStore | None = None,
    settings: SyncSettings | None = None,
    clock: Clock = utc_now,
    *,
    configure_logging: bool = True,
) -> SyncLayer:
    if settings is None:  # pragma: no cover
        settings = SyncSettings()

    log_path = setup_logging(log_dir=settings.log_dir) if configure_logging else None

    if store is None:
        store = InMemoryRemoteStore()
        logger.warning("no remote store configured, using in-memory store")

    return SyncLayer(
        store=store,
        settings=settings,
        cache=DataCache.from_settings(store, settings, clock=clock),
        sessions=SessionManager.from_settings(store, settings, clock=clock),
        log_path=log_path,
    )
