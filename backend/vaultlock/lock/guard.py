"""
Gating decisions in front of app content.

- ``AppLockGate`` wraps the whole shell before sign-in and uses the device
  copy of the lock preference.
- ``RouteGuard`` runs for protected routes once auth has resolved.
- ``IdleLockGuard`` holds the session's idle clock and re-locks on timeout.

All three share one ``LockStateMachine``; an unlock through any gate opens
them all.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..config import IdleSettings
from ..errors import LockError
from ..logging import get_logger
from .gate import LockGate
from .idle import IdleClock
from .interfaces import AuthProvider, AuthStatus
from .lifecycle import AppLifecycle, AppState
from .models import AuthUser, LockMethod, LockState
from .preferences import LockPreferenceStore
from .state import LockStateMachine

logger = get_logger("lock.guard")

# (lock_type, pre_login) -> gate
GateFactory = Callable[[LockMethod, bool], LockGate]


class GateDecision(str, Enum):
    """What the shell should render."""
    LOADING = "loading"    # auth still resolving
    SIGN_IN = "sign_in"    # not authenticated
    LOCKED = "locked"      # show the LockGate
    OPEN = "open"          # render content


@dataclass
class GateView:
    decision: GateDecision
    gate: Optional[LockGate] = None

    @property
    def lock_type(self) -> Optional[LockMethod]:
        return self.gate.lock_type if self.gate else None

    def to_dict(self) -> dict:
        return {
            "decision": self.decision.value,
            "gate": self.gate.to_dict() if self.gate else None,
        }


LOADING_VIEW = GateView(GateDecision.LOADING)
OPEN_VIEW = GateView(GateDecision.OPEN)


class AppLockGate:
    """Pre-authentication gate around the app shell."""

    def __init__(
        self,
        preferences: LockPreferenceStore,
        state: LockStateMachine,
        lifecycle: AppLifecycle,
        gate_factory: GateFactory,
    ):
        self._preferences = preferences
        self._state = state
        self._lifecycle = lifecycle
        self._gate_factory = gate_factory
        self._unsubscribers: list[Callable[[], None]] = []
        self.view = LOADING_VIEW

    async def mount(self) -> GateView:
        self._unsubscribers = [
            self._lifecycle.subscribe(self._on_lifecycle),
            self._state.subscribe(self._on_state),
        ]
        return await self.check()

    def unmount(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    async def check(self) -> GateView:
        """Session already unlocked -> open; local method configured -> locked."""
        try:
            if await self._state.session_flag.is_set():
                self.view = OPEN_VIEW
                return self.view

            method = await self._preferences.get()
            if method:
                await self._state.lock(method)
                self.view = GateView(GateDecision.LOCKED, self._gate_factory(method, True))
                logger.info(f"Pre-login gate engaged ({method.value})")
            else:
                self.view = OPEN_VIEW
        except LockError as e:
            logger.error(f"Error checking app lock: {e}")
            self.view = OPEN_VIEW
        return self.view

    def _on_lifecycle(self, app_state: AppState):
        if app_state is AppState.BACKGROUND:
            return self._state.session_flag.clear()
        return self.check()

    def _on_state(self, lock_state: LockState) -> None:
        if not lock_state.is_locked and self.view.decision is GateDecision.LOCKED:
            self.view = OPEN_VIEW


class RouteGuard:
    """Post-authentication check run for every protected route."""

    def __init__(
        self,
        auth: AuthProvider,
        preferences: LockPreferenceStore,
        state: LockStateMachine,
        gate_factory: GateFactory,
    ):
        self._auth = auth
        self._preferences = preferences
        self._state = state
        self._gate_factory = gate_factory

    async def evaluate(self) -> GateView:
        status = self._auth.status
        if status is AuthStatus.LOADING:
            return LOADING_VIEW
        if status is not AuthStatus.AUTHENTICATED:
            return GateView(GateDecision.SIGN_IN)

        method = await self._preferences.resolve()
        if not method.configured:
            return OPEN_VIEW

        if self._state.is_locked:
            lock_type = self._state.lock_type or method
            return GateView(GateDecision.LOCKED, self._gate_factory(lock_type, False))

        # First open of this session locks unless the user already unlocked
        if not await self._state.session_flag.is_set():
            await self._state.lock(method)
            return GateView(GateDecision.LOCKED, self._gate_factory(method, False))

        return OPEN_VIEW


class IdleLockGuard:
    """Keeps the idle clock running while idle locking applies, and locks on idle."""

    def __init__(
        self,
        auth: AuthProvider,
        preferences: LockPreferenceStore,
        state: LockStateMachine,
        clock: IdleClock,
        settings: IdleSettings,
        gate_factory: GateFactory,
    ):
        self._auth = auth
        self._preferences = preferences
        self._state = state
        self._clock = clock
        self._settings = settings
        self._gate_factory = gate_factory
        self._unsubscribers: list[Callable[[], None]] = []
        self._acquired = False
        self.method = LockMethod.NONE
        self.view = OPEN_VIEW

    @property
    def active(self) -> bool:
        return self._acquired and self._clock.monitor.is_running

    async def mount(self) -> None:
        self._unsubscribers = [
            self._auth.on_auth_state_change(self._on_auth_change),
            self._settings.subscribe(self._on_settings_change),
            self._state.subscribe(self._on_state),
        ]
        await self.refresh()

    def unmount(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._release()

    async def refresh(self) -> bool:
        """Re-derive whether idle locking applies and start/stop the clock."""
        if self._auth.status is AuthStatus.AUTHENTICATED:
            self.method = await self._preferences.resolve()
        else:
            self.method = LockMethod.NONE

        enabled = self.method.configured and self._settings.seconds > 0
        if enabled and not self._acquired:
            self._acquired = True
            self._clock.acquire(self._on_idle)
        elif not enabled and self._acquired:
            self._release()
        return enabled

    def _release(self) -> None:
        if self._acquired:
            self._acquired = False
            self._clock.release(self._on_idle)

    async def _on_idle(self, method: LockMethod) -> None:
        if await self._state.lock(method):
            self.view = GateView(GateDecision.LOCKED, self._gate_factory(method, False))

    def _on_auth_change(self, _event: str, _user: Optional[AuthUser]):
        return self.refresh()

    def _on_settings_change(self, _seconds: int):
        return self.refresh()

    def _on_state(self, lock_state: LockState) -> None:
        if not lock_state.is_locked and self.view.decision is GateDecision.LOCKED:
            self.view = OPEN_VIEW
