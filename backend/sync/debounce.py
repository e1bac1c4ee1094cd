"""Cancellable debounce timer shared by every cache refresh path."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = structlog.get_logger()


def _retrieve_exception(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()


class Debouncer:
    """Collapse a burst of trigger() calls into one deferred action.

    Each trigger while the timer is still waiting cancels that timer and starts
    a new one. Every caller of the same cycle receives the same future, resolved
    with the action's result. Once the action is executing it can no longer be
    cancelled by a trigger; the next trigger starts a new cycle.
    """

    def __init__(self, delay: float, action: Callable[[], Awaitable[Any]], name: str = "") -> None:
        self._delay = delay
        self._action = action
        self._name = name
        self._timer: asyncio.Task[None] | None = None
        self._executing: asyncio.Task[None] | None = None
        self._waiters: asyncio.Future[Any] | None = None

    @property
    def pending(self) -> bool:
        """True while a timer is waiting to fire."""
        return self._timer is not None

    def trigger(self) -> asyncio.Future[Any]:
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        if self._waiters is None:
            self._waiters = loop.create_future()
            self._waiters.add_done_callback(_retrieve_exception)
        waiters = self._waiters
        self._timer = loop.create_task(self._fire(waiters))
        return waiters

    def cancel(self) -> None:
        """Cancel the pending timer and the executing action; waiters are cancelled too."""
        for task in (self._timer, self._executing):
            if task is not None and not task.done():
                task.cancel()
        if self._waiters is not None and not self._waiters.done():
            self._waiters.cancel()
        self._timer = None
        self._executing = None
        self._waiters = None

    async def _fire(self, waiters: asyncio.Future[Any]) -> None:
        await asyncio.sleep(self._delay)
        # Past this point a new trigger() starts a fresh cycle instead of cancelling us.
        self._executing = self._timer
        self._timer = None
        self._waiters = None
        try:
            result = await self._action()
        except asyncio.CancelledError:
            waiters.cancel()
            raise
        except Exception as exc:
            logger.exception("debounced action failed", debouncer=self._name)
            if not waiters.done():
                waiters.set_exception(exc)
        else:
            if not waiters.done():
                waiters.set_result(result)
        finally:
            if self._executing is asyncio.current_task():
                self._executing = None
