"""Abstract interface for the remote document store."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable


@dataclass(frozen=True)
class ChangeEvent:
    """Push signal that records of an entity type (optionally one record) changed."""

    entity_type: str
    record_id: str | None = None


class Subscription:
    """Async iterator over ChangeEvents for one entity type.

    Events queue up until consumed. close() ends iteration for the consumer
    and detaches the subscription from its store.
    """

    def __init__(
        self,
        entity_type: str,
        record_id: str | None = None,
        on_close: Callable[[Subscription], None] | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.record_id = record_id
        self._on_close = on_close
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def accepts(self, event: ChangeEvent) -> bool:
        if event.entity_type != self.entity_type:
            return False
        if self.record_id is None or event.record_id is None:
            return True
        return event.record_id == self.record_id

    def publish(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
        if self._on_close is not None:
            self._on_close(self)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


class RemoteStore(ABC):
    """Key/document store addressed by slash-separated paths.

    Implementations raise TransientStoreError for network or backend failures
    and PermissionDeniedError when their access rules reject a mutation.
    """

    @abstractmethod
    async def get(self, path: str) -> Any | None: ...

    @abstractmethod
    async def set(self, path: str, value: Any) -> None: ...

    @abstractmethod
    async def update(self, path: str, partial: dict[str, Any]) -> None: ...

    @abstractmethod
    async def remove(self, path: str) -> None: ...

    @abstractmethod
    async def push(self, path: str) -> str:
        """Return a new unique child key under path without writing anything."""

    @abstractmethod
    def subscribe(self, entity_type: str, record_id: str | None = None) -> Subscription: ...
