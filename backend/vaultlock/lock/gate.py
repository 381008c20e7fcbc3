"""
The credential challenge shown while the app is locked.

A ``LockGate`` is built for one lock method and handles that method only:

- PIN: six keypad digits, auto-submitted on the sixth. Pre-login gates check
  the hash cached on the device; post-login gates check the profile's hash.
- Biometric: tried as soon as the gate mounts.
- Password: a full sign-in with the profile's email.

Only one verification runs at a time per gate. Credential, remote and
platform failures come back as an ``UnlockResult`` with a notice; the gate
stays locked and the entered PIN digits are cleared.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Optional

from ..biometric import BiometricAuthenticator
from ..errors import (
    AuthenticationRequired,
    BiometricUnavailable,
    InvalidCredential,
    LockError,
    TooManyAttempts,
    VerificationInProgress,
)
from ..logging import get_logger
from .idle import IdleClock
from .interfaces import ActivityLog, AuthProvider
from .models import LockMethod, UnlockResult
from .pin import PinBuffer, hash_pin, needs_rehash, verify_pin_hash
from .preferences import LockPreferenceStore
from .state import LockStateMachine

logger = get_logger("lock.gate")

UNLOCKED_NOTICE = "App unlocked. Welcome back!"

MISMATCH_NOTICES = {
    LockMethod.PIN: "Invalid PIN. Please try again",
    LockMethod.PASSWORD: "Invalid password. Please try again",
    LockMethod.BIOMETRIC: "Biometric check failed. Please try again",
}

PROMPTS = {
    LockMethod.PIN: "Enter your PIN to unlock",
    LockMethod.PASSWORD: "Enter your password to unlock",
    LockMethod.BIOMETRIC: "Use biometric authentication to unlock",
}


class AttemptPolicy:
    """Failed-attempt limit with a doubling lockout window.

    After ``max_failed_attempts`` consecutive failures further attempts are
    refused for ``lockout_seconds``; each lockout that follows without a
    success doubles the window. ``max_failed_attempts = 0`` turns it off.
    """

    def __init__(
        self,
        max_failed_attempts: int = 5,
        lockout_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_failed_attempts = max_failed_attempts
        self.lockout_seconds = lockout_seconds
        self._clock = clock
        self.failures = 0
        self._lockouts = 0
        self._locked_until: Optional[float] = None

    def check(self) -> None:
        """Raise TooManyAttempts while a lockout window is open."""
        if self._locked_until is None:
            return
        remaining = self._locked_until - self._clock()
        if remaining > 0:
            raise TooManyAttempts(remaining)
        self._locked_until = None

    def record_failure(self) -> None:
        if self.max_failed_attempts <= 0:
            return
        self.failures += 1
        if self.failures >= self.max_failed_attempts:
            window = self.lockout_seconds * (2 ** self._lockouts)
            self._lockouts += 1
            self._locked_until = self._clock() + window
            self.failures = 0
            logger.warning(f"Too many failed unlock attempts, locked out for {window:g}s")

    def record_success(self) -> None:
        self.failures = 0
        self._lockouts = 0
        self._locked_until = None


class LockGate:
    """Blocks everything else until one credential of ``lock_type`` verifies."""

    def __init__(
        self,
        lock_type: LockMethod,
        *,
        state: LockStateMachine,
        preferences: LockPreferenceStore,
        auth: AuthProvider,
        biometric: BiometricAuthenticator,
        policy: AttemptPolicy,
        idle: Optional[IdleClock] = None,
        activity_log: Optional[ActivityLog] = None,
        pre_login: bool = False,
    ):
        lock_type = LockMethod.parse(lock_type)
        if not lock_type.configured:
            raise ValueError("A lock gate needs a configured lock method")

        self.lock_type = lock_type
        self.pre_login = pre_login
        self.pin = PinBuffer()
        self.notice: Optional[str] = None
        self.unlocked = False
        self.mounted = False
        self._state = state
        self._preferences = preferences
        self._auth = auth
        self._biometric = biometric
        self._policy = policy
        self._idle = idle
        self._activity_log = activity_log
        self._verifying = False

    @property
    def busy(self) -> bool:
        return self._verifying

    @property
    def prompt(self) -> str:
        return PROMPTS[self.lock_type]

    def to_dict(self) -> dict:
        return {
            "lock_type": self.lock_type.value,
            "prompt": self.prompt,
            "pre_login": self.pre_login,
            "pin_length": len(self.pin) if self.lock_type is LockMethod.PIN else None,
            "busy": self.busy,
            "notice": self.notice,
        }

    def _expect(self, method: LockMethod) -> None:
        if self.lock_type is not method:
            raise ValueError(f"This gate unlocks with {self.lock_type.value}, not {method.value}")

    async def mount(self) -> Optional[UnlockResult]:
        """Called when the gate is first shown. Biometric gates prompt right away."""
        if self.mounted:
            return None
        self.mounted = True
        if self.lock_type is LockMethod.BIOMETRIC:
            return await self.attempt_biometric()
        return None

    # --- PIN ---

    async def press_digit(self, digit: str) -> Optional[UnlockResult]:
        """Add one keypad digit; the sixth digit submits the PIN."""
        self._expect(LockMethod.PIN)
        if self._verifying or self.unlocked:
            return None
        pin = self.pin.press(digit)
        if pin is None:
            return None
        return await self.submit_pin(pin)

    def delete_digit(self) -> None:
        self._expect(LockMethod.PIN)
        if not self._verifying:
            self.pin.delete()

    async def submit_pin(self, pin: str) -> UnlockResult:
        self._expect(LockMethod.PIN)
        return await self._attempt(lambda: self._verify_pin(pin))

    async def _verify_pin(self, pin: str) -> bool:
        if self.pre_login:
            pin_hash = await self._preferences.get_pin_hash()
        else:
            if self._auth.current_user is None:
                raise AuthenticationRequired("PIN check against the profile needs a session")
            profile = await self._preferences.fetch_profile()
            pin_hash = profile.app_pin_hash if profile else None
        if not pin_hash:
            logger.warning("No PIN hash available to verify against")
        matched = await asyncio.to_thread(verify_pin_hash, pin_hash, pin)
        if matched and not self.pre_login and needs_rehash(pin_hash):
            await self._upgrade_pin_hash(pin)
        return matched

    async def _upgrade_pin_hash(self, pin: str) -> None:
        """Replace a legacy profile hash once the PIN is known to match."""
        try:
            new_hash = await asyncio.to_thread(hash_pin, pin)
            await self._preferences.set(LockMethod.PIN, new_hash)
            logger.info("Rehashed PIN with updated parameters")
        except LockError as e:
            logger.warning(f"Could not upgrade PIN hash: {e}")

    # --- Password ---

    async def submit_password(self, password: str) -> UnlockResult:
        self._expect(LockMethod.PASSWORD)
        return await self._attempt(lambda: self._verify_password(password))

    async def _known_email(self) -> Optional[str]:
        user = self._auth.current_user
        try:
            profile = await self._preferences.fetch_profile()
        except LockError as e:
            logger.warning(f"Profile unavailable for password unlock: {e}")
            profile = None
        if profile and profile.email:
            return profile.email
        return user.email if user else None

    async def _verify_password(self, password: str) -> bool:
        if not password:
            return False
        email = await self._known_email()
        if not email:
            raise AuthenticationRequired(
                "No account email known for password unlock",
                notice="Sign in to unlock with your password",
            )
        # Raises InvalidCredential on a wrong password
        await self._auth.sign_in_with_password(email, password)
        return True

    # --- Biometric ---

    async def attempt_biometric(self) -> UnlockResult:
        self._expect(LockMethod.BIOMETRIC)
        return await self._attempt(self._verify_biometric)

    async def _verify_biometric(self) -> bool:
        if not await self._biometric.is_available():
            raise BiometricUnavailable("No biometric authenticator available")
        return await self._biometric.verify("Unlock your vault")

    # --- Shared flow ---

    async def _attempt(self, verify: Callable[[], Awaitable[bool]]) -> UnlockResult:
        if self.unlocked:
            return UnlockResult(True, self.lock_type, UNLOCKED_NOTICE)
        if self._verifying:
            return self._failure(VerificationInProgress())
        try:
            self._policy.check()
        except TooManyAttempts as e:
            self.pin.clear()
            return self._failure(e)

        self._verifying = True
        try:
            if not await verify():
                raise InvalidCredential(notice=MISMATCH_NOTICES[self.lock_type])
            await self._complete_unlock()
        except InvalidCredential as e:
            self._policy.record_failure()
            self.pin.clear()
            logger.info(f"Unlock with {self.lock_type.value} rejected", extra={"lock_type": self.lock_type.value})
            await self._log("app_unlock_failed")
            if e.notice == InvalidCredential.notice:
                e.notice = MISMATCH_NOTICES[self.lock_type]
            return self._failure(e)
        except LockError as e:
            # Remote, storage or platform trouble: stay locked, do not count it
            self.pin.clear()
            logger.warning(f"Unlock with {self.lock_type.value} failed: {e}")
            return self._failure(e)
        finally:
            self._verifying = False

        return UnlockResult(True, self.lock_type, UNLOCKED_NOTICE)

    async def _complete_unlock(self) -> None:
        await self._state.unlock()
        self.unlocked = True
        self.pin.clear()
        self.notice = UNLOCKED_NOTICE
        self._policy.record_success()
        if self._idle is not None:
            self._idle.mark_active()
        logger.info(f"Unlocked with {self.lock_type.value}", extra={"lock_type": self.lock_type.value})
        await self._log("app_unlocked")

    def _failure(self, error: LockError) -> UnlockResult:
        self.notice = error.notice
        return UnlockResult(
            success=False,
            method=self.lock_type,
            notice=error.notice,
            error=type(error).__name__,
            retry_after=getattr(error, "retry_after", None),
        )

    async def _log(self, action_type: str) -> None:
        user = self._auth.current_user
        if self._activity_log is None or user is None:
            return
        try:
            await self._activity_log.log(user.id, action_type, {
                "method": self.lock_type.value,
                "pre_login": self.pre_login,
            })
        except LockError as e:
            logger.warning(f"Could not record {action_type}: {e}")
