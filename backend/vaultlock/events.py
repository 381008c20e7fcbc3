"""Minimal observer primitive shared by the lifecycle, activity, auth and config signals."""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from .logging import get_logger

logger = get_logger("events")


class Signal:
    """A named list of listeners.

    Listeners may be plain callables or coroutine functions; coroutine work is
    scheduled on the running loop and tracked until it finishes. ``subscribe``
    returns a function that removes the listener again, so teardown code can
    hold on to it.
    """

    def __init__(self, name: str):
        self.name = name
        self._listeners: list[Callable[..., Any]] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, listener: Callable[..., Any]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: Callable[..., Any]) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, *args: Any) -> None:
        """Call every listener in subscription order.

        A failing listener is logged and does not stop the others.
        """
        for listener in list(self._listeners):
            try:
                result = listener(*args)
            except Exception as e:
                logger.warning(f"Listener on {self.name} failed: {type(e).__name__}: {e}")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.warning(f"Async listener on {self.name} failed: {type(exc).__name__}: {exc}")

    async def drain(self) -> None:
        """Wait for scheduled coroutine listeners to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
