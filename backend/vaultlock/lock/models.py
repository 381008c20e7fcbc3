"""Data models for the app lock."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class LockMethod(str, Enum):
    """Credential required to unlock the app."""
    NONE = "none"
    PIN = "pin"
    BIOMETRIC = "biometric"
    PASSWORD = "password"

    @classmethod
    def parse(cls, value: Any) -> "LockMethod":
        """Parse a stored value; empty or unknown values mean no lock."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.NONE
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NONE

    @property
    def configured(self) -> bool:
        return self is not LockMethod.NONE


@dataclass
class LockPreference:
    """The user's chosen lock method and, for PIN locks, the PIN hash."""
    method: LockMethod = LockMethod.NONE
    pin_hash: Optional[str] = None


@dataclass
class LockState:
    """Runtime lock state for this device session."""
    is_locked: bool = False
    lock_type: Optional[LockMethod] = None
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_locked": self.is_locked,
            "lock_type": self.lock_type.value if self.lock_type else None,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LockState":
        lock_type = LockMethod.parse(data.get("lock_type"))
        return cls(
            is_locked=bool(data.get("is_locked", False)),
            lock_type=lock_type if lock_type.configured else None,
            timestamp=float(data.get("timestamp") or 0),
        )


@dataclass
class Profile:
    """The lock-related columns of a user's profile record."""
    id: str
    email: str
    app_lock_type: Optional[str] = None
    app_pin_hash: Optional[str] = None
    auto_lock_minutes: Optional[float] = None

    @property
    def lock_method(self) -> LockMethod:
        return LockMethod.parse(self.app_lock_type)

    @property
    def auto_lock_seconds(self) -> int:
        """Idle timeout in seconds; minutes may be fractional (0.5 = 30s)."""
        if not self.auto_lock_minutes or self.auto_lock_minutes <= 0:
            return 0
        return int(round(self.auto_lock_minutes * 60))


@dataclass
class AuthUser:
    """An authenticated account as reported by the auth provider."""
    id: str
    email: str


@dataclass
class UnlockResult:
    """Outcome of one unlock attempt, ready to show to the user."""
    success: bool
    method: LockMethod
    notice: str
    error: Optional[str] = None
    retry_after: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "method": self.method.value,
            "notice": self.notice,
            "error": self.error,
            "retry_after": self.retry_after,
        }
