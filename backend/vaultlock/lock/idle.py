"""
Idle detection for the app lock.

The UI shell posts input activity to an ``ActivitySource``. An ``IdleMonitor``
keeps a single countdown on the event loop that every activity event
restarts; when it runs out the monitor calls ``on_idle`` once and goes
dormant until ``mark_active()``.

``IdleClock`` owns the one monitor of an authenticated session and hands it
out with reference counting, so several guards never run separate clocks.
"""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any, Optional

from ..config import IdleSettings
from ..events import Signal
from ..logging import get_logger
from .models import LockMethod

logger = get_logger("lock.idle")

ACTIVITY_EVENTS = ("pointer", "key", "touch", "scroll", "wheel")

# Browser/DOM event names mapped to activity classes
EVENT_ALIASES = {
    "mousedown": "pointer",
    "mousemove": "pointer",
    "pointerdown": "pointer",
    "pointermove": "pointer",
    "click": "pointer",
    "keydown": "key",
    "keypress": "key",
    "touchstart": "touch",
    "touchmove": "touch",
}


def normalize_event(event_type: str) -> Optional[str]:
    """Map an event name to its activity class, or None if it is not activity."""
    name = (event_type or "").strip().lower()
    if name in ACTIVITY_EVENTS:
        return name
    return EVENT_ALIASES.get(name)


class ActivitySource:
    """System-wide stream of user input activity."""

    def __init__(self):
        self._signal = Signal("activity")

    def post(self, event_type: str) -> bool:
        """Publish one input event. Returns False for events that are not activity."""
        kind = normalize_event(event_type)
        if kind is None:
            return False
        self._signal.emit(kind)
        return True

    def subscribe(self, listener: Callable[[str], Any]) -> Callable[[], None]:
        return self._signal.subscribe(listener)

    @property
    def listener_count(self) -> int:
        return self._signal.listener_count


class IdleMonitor:
    """Fires ``on_idle(lock_method)`` once after ``timeout`` seconds without activity."""

    def __init__(
        self,
        activity: ActivitySource,
        lock_method: Callable[[], LockMethod],
        settings: Optional[IdleSettings] = None,
    ):
        self._activity = activity
        self._lock_method = lock_method
        self._settings = settings
        self._timeout: Optional[float] = None
        self._on_idle: Optional[Callable[[LockMethod], Any]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._deadline: Optional[float] = None
        self._running = False
        self._dormant = False
        self._unsubscribers: list[Callable[[], None]] = []
        self._tasks: set[asyncio.Future] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_dormant(self) -> bool:
        return self._dormant

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    @property
    def has_pending_timer(self) -> bool:
        return self._handle is not None

    def remaining(self) -> Optional[float]:
        """Seconds until the countdown expires, or None if none is pending."""
        if self._handle is None or self._deadline is None or self._loop is None:
            return None
        return max(0.0, self._deadline - self._loop.time())

    def start(self, timeout: Optional[float], on_idle: Callable[[LockMethod], Any]) -> None:
        """Attach to the activity source and arm the countdown.

        A missing or zero timeout, or no configured lock method, leaves the
        monitor stopped.
        """
        if self._running:
            self.stop()
        if not timeout or timeout <= 0:
            logger.debug("Idle lock disabled (no timeout), monitor not started")
            return
        if not self._lock_method().configured:
            logger.debug("No lock method configured, monitor not started")
            return

        self._loop = asyncio.get_running_loop()
        self._timeout = float(timeout)
        self._on_idle = on_idle
        self._unsubscribers.append(self._activity.subscribe(self._on_activity))
        if self._settings is not None:
            self._unsubscribers.append(self._settings.subscribe(self._on_timeout_changed))
        self._running = True
        self._dormant = False
        self._arm()
        logger.info(f"Idle monitor started ({self._timeout:g}s)")

    def reset(self) -> None:
        """Restart the countdown from the full timeout."""
        if not self._running or self._dormant:
            return
        self._arm()

    def mark_active(self) -> None:
        """Leave dormancy and restart the countdown (after an unlock)."""
        if not self._running:
            return
        self._dormant = False
        self._arm()

    def stop(self) -> None:
        """Detach every listener, cancel the countdown and pending callbacks."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._cancel_timer()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        was_running = self._running
        self._running = False
        self._dormant = False
        if was_running:
            logger.info("Idle monitor stopped")

    def _on_activity(self, _event_type: str) -> None:
        self.reset()

    def _on_timeout_changed(self, seconds: int) -> None:
        self._timeout = float(seconds) if seconds and seconds > 0 else None
        if self._timeout is None:
            self._cancel_timer()
            logger.info("Idle lock disabled by settings change")
        else:
            logger.info(f"Idle timeout changed to {self._timeout:g}s, applies from next reset")

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            self._deadline = None

    def _arm(self) -> None:
        self._cancel_timer()
        if not self._timeout or self._loop is None:
            return
        if not self._lock_method().configured:
            return
        self._deadline = self._loop.time() + self._timeout
        self._handle = self._loop.call_later(self._timeout, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._deadline = None
        if not self._running or self._dormant or self._on_idle is None:
            return
        method = self._lock_method()
        if not method.configured:
            return

        self._dormant = True
        logger.info(f"Idle timeout reached, locking with {method.value}")
        try:
            result = self._on_idle(method)
        except Exception as e:
            logger.error(f"Idle callback failed: {type(e).__name__}: {e}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error(f"Idle callback failed: {type(exc).__name__}: {exc}")


class IdleClock:
    """Reference-counted owner of the session's single idle monitor."""

    def __init__(self, monitor: IdleMonitor, settings: IdleSettings):
        self.monitor = monitor
        self._settings = settings
        self._subscribers: list[Callable[[LockMethod], Any]] = []

    @property
    def refcount(self) -> int:
        return len(self._subscribers)

    def acquire(self, on_idle: Callable[[LockMethod], Any]) -> bool:
        """Register an idle callback. Returns True if the clock is running."""
        if on_idle not in self._subscribers:
            self._subscribers.append(on_idle)
        if not self.monitor.is_running:
            self.monitor.start(self._settings.seconds, self._dispatch)
        return self.monitor.is_running

    def release(self, on_idle: Callable[[LockMethod], Any]) -> None:
        if on_idle in self._subscribers:
            self._subscribers.remove(on_idle)
        if not self._subscribers:
            self.monitor.stop()

    def mark_active(self) -> None:
        self.monitor.mark_active()

    def shutdown(self) -> None:
        self._subscribers.clear()
        self.monitor.stop()

    def _dispatch(self, method: LockMethod):
        pending = []
        for callback in list(self._subscribers):
            result = callback(method)
            if inspect.isawaitable(result):
                pending.append(result)
        if pending:
            return asyncio.gather(*pending)
        return None
