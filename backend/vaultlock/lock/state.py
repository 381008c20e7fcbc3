"""
Lock state for the current device session.

The state lives in the session-scoped store so a reload inside the same
session keeps it. The session-unlocked flag sits next to it and stops the
gate from re-prompting on every mount after a successful unlock.
"""

import json
import time
from collections.abc import Callable
from typing import Any, Optional

from ..events import Signal
from ..logging import get_logger
from ..storage.base import KeyValueStore
from .models import LockMethod, LockState

logger = get_logger("lock.state")

LOCK_STATE_KEY = "app_lock_state"
SESSION_UNLOCKED_KEY = "app_lock_session_unlocked"


class SessionUnlockedFlag:
    """Marks that the user already unlocked during this app session."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    async def is_set(self) -> bool:
        return (await self._store.get(SESSION_UNLOCKED_KEY)) == "true"

    async def set(self) -> None:
        await self._store.set(SESSION_UNLOCKED_KEY, "true")

    async def clear(self) -> None:
        await self._store.remove(SESSION_UNLOCKED_KEY)


class LockStateMachine:
    """Two states: unlocked, or locked for a given method."""

    def __init__(self, store: KeyValueStore, session_flag: SessionUnlockedFlag):
        self._store = store
        self.session_flag = session_flag
        self._state = LockState()
        self.changed = Signal("lock-state")

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def is_locked(self) -> bool:
        return self._state.is_locked

    @property
    def lock_type(self) -> Optional[LockMethod]:
        return self._state.lock_type

    async def load(self) -> LockState:
        """Restore the state saved earlier in this session, if any."""
        raw = await self._store.get(LOCK_STATE_KEY)
        if raw:
            try:
                self._state = LockState.from_dict(json.loads(raw))
            except (ValueError, TypeError, AttributeError):
                logger.warning("Discarding unreadable lock state")
                self._state = LockState()
        # A locked state without a method cannot be challenged
        if self._state.is_locked and not self._state.lock_type:
            self._state = LockState()
        return self._state

    async def _save(self, state: LockState) -> None:
        await self._store.set(LOCK_STATE_KEY, json.dumps(state.to_dict()))
        self._state = state
        self.changed.emit(state)

    async def lock(self, method: LockMethod) -> bool:
        """Engage the lock for ``method``. Returns False when no method is configured."""
        method = LockMethod.parse(method)
        if not method.configured:
            return False
        if self._state.is_locked and self._state.lock_type == method:
            return True

        await self.session_flag.clear()
        await self._save(LockState(is_locked=True, lock_type=method, timestamp=time.time()))
        logger.info(f"App locked ({method.value})")
        return True

    async def unlock(self) -> None:
        """Clear the lock after a verified credential and mark the session unlocked."""
        await self._save(LockState())
        await self.session_flag.set()
        logger.info("App unlocked")

    async def reset(self) -> None:
        """Forget the session entirely (sign-out): unlocked, flag cleared."""
        await self._save(LockState())
        await self.session_flag.clear()

    def subscribe(self, listener: Callable[[LockState], Any]) -> Callable[[], None]:
        return self.changed.subscribe(listener)
