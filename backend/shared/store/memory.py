"""In-memory RemoteStore used for local runs and tests."""

from __future__ import annotations

import asyncio
import copy
from typing import Any
from uuid import uuid4

import structlog

from shared.store.paths import split
from shared.store.protocol import ChangeEvent, RemoteStore, Subscription

logger = structlog.get_logger()


class InMemoryRemoteStore(RemoteStore):
    """Nested-dict document tree with change fan-out to subscribers.

    Reads return deep copies so callers never alias stored state. Every
    operation yields to the event loop (after an optional artificial latency)
    the way a networked store would. Writing None or removing the last child
    of a node prunes the empty parents.
    """

    def __init__(self, latency: float = 0.0, initial: dict[str, Any] | None = None) -> None:
        self._latency = latency
        self._root: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._subscriptions: list[Subscription] = []

    async def get(self, path: str) -> Any | None:
        await self._suspend()
        node: Any = self._root
        for segment in split(path):
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return copy.deepcopy(node)

    async def set(self, path: str, value: Any) -> None:
        await self._suspend()
        if value is None:
            self._delete(split(path))
        else:
            self._write(split(path), copy.deepcopy(value))
        self._notify(path)

    async def update(self, path: str, partial: dict[str, Any]) -> None:
        await self._suspend()
        segments = split(path)
        for key, value in partial.items():
            child = [*segments, *split(key)]
            if value is None:
                self._delete(child)
            else:
                self._write(child, copy.deepcopy(value))
        self._notify(path)

    async def remove(self, path: str) -> None:
        await self._suspend()
        self._delete(split(path))
        self._notify(path)

    async def push(self, path: str) -> str:  # noqa: ARG002
        await self._suspend()
        return uuid4().hex

    def subscribe(self, entity_type: str, record_id: str | None = None) -> Subscription:
        subscription = Subscription(entity_type, record_id, on_close=self._detach)
        self._subscriptions.append(subscription)
        return subscription

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def _suspend(self) -> None:
        await asyncio.sleep(self._latency)

    def _write(self, segments: list[str], value: Any) -> None:
        if not segments:
            if not isinstance(value, dict):
                raise ValueError("The store root must be a mapping")
            self._root = value
            return
        node = self._root
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        node[segments[-1]] = value

    def _delete(self, segments: list[str]) -> None:
        if not segments:
            self._root = {}
            return
        trail: list[tuple[dict[str, Any], str]] = []
        node = self._root
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                return
            trail.append((node, segment))
            node = child
        if segments[-1] not in node:
            return
        del node[segments[-1]]
        for parent, segment in reversed(trail):
            if parent[segment]:
                break
            del parent[segment]

    def _notify(self, path: str) -> None:
        segments = split(path)
        if not segments:
            return
        event = ChangeEvent(entity_type=segments[0], record_id=segments[1] if len(segments) > 1 else None)
        for subscription in list(self._subscriptions):
            if subscription.accepts(event):
                subscription.publish(event)

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug("subscription closed", entity_type=subscription.entity_type)
