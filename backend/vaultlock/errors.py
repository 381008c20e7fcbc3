"""Error taxonomy for the app lock.

Every error carries a short user-facing ``notice``. Callers at the gate and
settings boundary turn these into notices or HTTP responses; none of them is
fatal to the process.
"""

from typing import Optional


class LockError(Exception):
    """Base class for app lock errors."""

    notice = "Something went wrong. Please try again"

    def __init__(self, message: Optional[str] = None, notice: Optional[str] = None):
        super().__init__(message or self.notice)
        if notice:
            self.notice = notice


class InvalidCredential(LockError):
    """PIN mismatch, wrong password or rejected biometric."""

    notice = "Invalid credential. Please try again"


class RemoteUnavailable(LockError):
    """Profile store or authentication provider could not be reached."""

    notice = "Couldn't reach the server. Please try again"


class LocalStorageError(LockError):
    """The device key-value store could not be read or written."""

    notice = "Couldn't access device storage"


class BiometricUnavailable(LockError):
    """The platform has no usable biometric authenticator."""

    notice = "Biometric authentication is not available on this device"


class AuthenticationRequired(LockError):
    """An operation needs a signed-in user."""

    notice = "Please sign in first"


class VerificationInProgress(LockError):
    """Another verification attempt is still running on the same gate."""

    notice = "Verification already in progress"


class TooManyAttempts(LockError):
    """Failed attempt limit reached; further attempts wait for the lockout."""

    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        seconds = max(1, int(round(retry_after)))
        super().__init__(
            f"Too many failed attempts, retry in {seconds}s",
            notice=f"Too many attempts. Try again in {seconds} seconds",
        )


class AppLocked(LockError):
    """Lock settings cannot change while the lock gate is shown."""

    notice = "Unlock the app to change lock settings"
