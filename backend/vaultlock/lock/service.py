"""
Wires the app lock together for one device session.

``LockService`` owns the stores, the state machine, the single idle clock,
the guards and the currently shown gate. The HTTP layer talks only to this
object.
"""

from typing import Optional

from ..auth import AuthClient, SIGNED_IN, SIGNED_OUT
from ..biometric import BiometricAuthenticator, create_biometric
from ..config import IdleSettings, LockConfig
from ..db import ActivityLogRepository, ProfileRepository
from ..errors import AppLocked, LockError, RemoteUnavailable
from ..logging import get_logger
from ..storage import KeyValueStore, SessionStorage, create_device_store
from .gate import AttemptPolicy, LockGate
from .guard import AppLockGate, GateDecision, GateView, IdleLockGuard, RouteGuard
from .idle import ActivitySource, IdleClock, IdleMonitor
from .interfaces import ActivityLog, AuthProvider, ProfileStore
from .lifecycle import AppLifecycle
from .models import AuthUser, LockMethod
from .preferences import LockPreferenceStore
from .state import LockStateMachine, SessionUnlockedFlag

logger = get_logger("main")


class LockService:
    """Dependency container and facade for the app lock."""

    def __init__(
        self,
        config: LockConfig,
        *,
        device_store: Optional[KeyValueStore] = None,
        session_store: Optional[KeyValueStore] = None,
        auth: Optional[AuthProvider] = None,
        profiles: Optional[ProfileStore] = None,
        activity_log: Optional[ActivityLog] = None,
        biometric: Optional[BiometricAuthenticator] = None,
    ):
        self.config = config
        self.device_store = device_store or create_device_store(config)
        self.session_store = session_store or SessionStorage()
        self.auth = auth or AuthClient(config.auth_url, config.auth_api_key, self.device_store)
        self.profiles = profiles or ProfileRepository()
        self.activity_log = activity_log or ActivityLogRepository()
        self.biometric = biometric or create_biometric(config)

        self.settings = IdleSettings(self.device_store, default_seconds=config.default_auto_lock_seconds)
        self.session_flag = SessionUnlockedFlag(self.session_store)
        self.state = LockStateMachine(self.session_store, self.session_flag)
        self.preferences = LockPreferenceStore(self.device_store, self.profiles, self.auth, self.biometric)
        self.policy = AttemptPolicy(config.max_failed_attempts, config.lockout_seconds)
        self.lifecycle = AppLifecycle()
        self.activity = ActivitySource()

        monitor = IdleMonitor(self.activity, lambda: self.idle_guard.method, self.settings)
        self.idle_clock = IdleClock(monitor, self.settings)
        self.idle_guard = IdleLockGuard(
            self.auth, self.preferences, self.state, self.idle_clock, self.settings, self.gate_for,
        )
        self.app_gate = AppLockGate(self.preferences, self.state, self.lifecycle, self.gate_for)
        self.route_guard = RouteGuard(self.auth, self.preferences, self.state, self.gate_for)

        self._active_gate: Optional[LockGate] = None
        self._unsubscribers = []

    # --- Lifecycle ---

    async def start(self) -> None:
        await self.state.load()
        await self.settings.load()
        self._unsubscribers.append(self.auth.on_auth_state_change(self._on_auth_change))
        restore = getattr(self.auth, "restore", None)
        if restore is not None:
            await restore()
        await self._settle_auth()
        await self.app_gate.mount()
        await self.idle_guard.mount()
        logger.info("App lock service started")

    async def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.app_gate.unmount()
        self.idle_guard.unmount()
        self.idle_clock.shutdown()
        close = getattr(self.auth, "close", None)
        if close is not None:
            await close()
        logger.info("App lock service stopped")

    # --- Gates ---

    def gate_for(self, lock_type: LockMethod, pre_login: bool) -> LockGate:
        """The one gate shown for ``lock_type``; reused until it unlocks."""
        gate = self._active_gate
        if (
            gate is not None
            and not gate.unlocked
            and gate.lock_type is lock_type
            and gate.pre_login == pre_login
        ):
            return gate
        self._active_gate = LockGate(
            lock_type,
            state=self.state,
            preferences=self.preferences,
            auth=self.auth,
            biometric=self.biometric,
            policy=self.policy,
            idle=self.idle_clock,
            activity_log=self.activity_log,
            pre_login=pre_login,
        )
        return self._active_gate

    @property
    def active_gate(self) -> Optional[LockGate]:
        gate = self._active_gate
        if gate is None or gate.unlocked or not self.state.is_locked:
            return None
        return gate

    async def status(self) -> GateView:
        """What the shell should render right now."""
        app_view = self.app_gate.view
        if app_view.decision is not GateDecision.OPEN:
            return app_view
        route_view = await self.route_guard.evaluate()
        if route_view.decision is not GateDecision.OPEN:
            return route_view
        if self.idle_guard.view.decision is GateDecision.LOCKED:
            return self.idle_guard.view
        return route_view

    async def lock_now(self) -> bool:
        """Lock immediately with the configured method."""
        method = await self.preferences.resolve()
        return await self.state.lock(method)

    # --- Settings ---

    async def _require_unlocked(self) -> None:
        if self.state.is_locked or (await self.status()).decision is GateDecision.LOCKED:
            raise AppLocked("Lock settings are frozen while the app is locked")

    async def enable_lock(self, method: LockMethod) -> None:
        method = LockMethod.parse(method)
        if method is LockMethod.PIN:
            raise ValueError("Use PIN enrollment to enable a PIN lock")
        await self._require_unlocked()
        await self.preferences.set(method)
        await self._log("app_lock_enabled" if method.configured else "app_lock_disabled", method)
        await self.idle_guard.refresh()

    async def enroll_pin(self, pin: str, confirmation: str) -> None:
        await self._require_unlocked()
        await self.preferences.enroll_pin(pin, confirmation)
        await self._log("app_lock_enabled", LockMethod.PIN)
        await self.idle_guard.refresh()

    async def disable_lock(self) -> None:
        await self._require_unlocked()
        await self.preferences.clear()
        await self._log("app_lock_disabled", LockMethod.NONE)
        await self.idle_guard.refresh()

    async def set_auto_lock(self, seconds: int) -> None:
        """Change the idle timeout; mirrored to the profile when signed in."""
        if seconds < 0:
            raise ValueError("Auto-lock timeout must be >= 0")
        await self._require_unlocked()
        user = self.auth.current_user
        if user is not None:
            minutes = round(seconds / 60, 4) if seconds else None
            await self.profiles.update_profile(user.id, auto_lock_minutes=minutes)
        await self.settings.update(seconds)
        await self.settings.changed.drain()

    # --- Auth ---

    async def sign_in(self, email: str, password: str) -> AuthUser:
        user = await self.auth.sign_in_with_password(email, password)
        await self._settle_auth()
        return user

    async def sign_out(self) -> None:
        await self.auth.sign_out()
        await self._settle_auth()

    async def _settle_auth(self) -> None:
        """Wait until auth listeners have finished reacting."""
        drain = getattr(self.auth, "drain", None)
        if drain is not None:
            await drain()

    async def _on_auth_change(self, event: str, user: Optional[AuthUser]) -> None:
        if event == SIGNED_OUT:
            await self.preferences.forget_device()
            await self.state.reset()
            self._active_gate = None
            return
        if user is None:
            return
        if event == SIGNED_IN:
            # A password sign-in proves the user for this session
            await self.session_flag.set()
        await self._sync_auto_lock(user)

    async def _sync_auto_lock(self, user: AuthUser) -> None:
        try:
            profile = await self.profiles.get_profile(user.id)
        except RemoteUnavailable as e:
            logger.warning(f"Could not sync auto-lock timeout: {e}")
            return
        if profile is None:
            return
        # No stored timeout means idle locking is off
        if profile.auto_lock_seconds != self.settings.seconds:
            await self.settings.update(profile.auto_lock_seconds)
            await self.settings.changed.drain()

    async def _log(self, action_type: str, method: LockMethod) -> None:
        user = self.auth.current_user
        if user is None:
            return
        try:
            await self.activity_log.log(user.id, action_type, {"method": method.value})
        except LockError as e:
            logger.warning(f"Could not record {action_type}: {e}")
