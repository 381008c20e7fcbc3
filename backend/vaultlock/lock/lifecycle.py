"""Foreground/background transitions of the app shell."""

from collections.abc import Callable
from enum import Enum
from typing import Any

from ..events import Signal
from ..logging import get_logger

logger = get_logger("lock.lifecycle")


class AppState(str, Enum):
    FOREGROUND = "foreground"
    BACKGROUND = "background"


class AppLifecycle:
    """Publishes app state transitions; repeated states are not re-emitted."""

    def __init__(self):
        self._state = AppState.FOREGROUND
        self._signal = Signal("app-lifecycle")

    @property
    def state(self) -> AppState:
        return self._state

    def emit(self, state: AppState) -> bool:
        state = AppState(state)
        if state == self._state:
            return False
        self._state = state
        logger.info(f"App moved to {state.value}")
        self._signal.emit(state)
        return True

    def subscribe(self, listener: Callable[[AppState], Any]) -> Callable[[], None]:
        return self._signal.subscribe(listener)

    async def drain(self) -> None:
        """Wait for async listeners reacting to the last transition."""
        await self._signal.drain()
