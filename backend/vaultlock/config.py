"""Configuration with CLI > env var > defaults precedence, plus the idle timeout broadcast."""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from .errors import LocalStorageError
from .events import Signal
from .logging import get_logger

if TYPE_CHECKING:
    from .storage.base import KeyValueStore

logger = get_logger("config")

VAULTLOCK_DIR = Path.home() / ".vaultlock"

AUTO_LOCK_KEY = "auto_lock_seconds"

# Choices offered by the auto-lock settings screen (label -> seconds)
AUTO_LOCK_OPTIONS: dict[str, int] = {
    "30 seconds": 30,
    "1 minute": 60,
    "5 minutes": 300,
    "10 minutes": 600,
    "15 minutes": 900,
    "30 minutes": 1800,
}


@dataclass
class LockConfig:
    """Configuration for the app lock service."""
    data_dir: str = ""
    platform: str = ""  # auto, web or native
    host: str = "127.0.0.1"
    port: int = 8787
    log_dir: str = ""

    # Remote collaborators
    database_url: str = ""
    auth_url: str = ""
    auth_api_key: str = ""

    # Idle lock
    default_auto_lock_seconds: int = 0

    # Failed attempt policy (0 disables the lockout)
    max_failed_attempts: int = 5
    lockout_seconds: float = 30.0

    biometric_command: str = ""
    cors_origins: list[str] = field(default_factory=lambda: [
        "capacitor://localhost",
        "ionic://localhost",
        "http://localhost",
    ])

    def __post_init__(self):
        # Apply env var defaults before CLI overrides
        if not self.data_dir:
            self.data_dir = os.getenv("VAULTLOCK_DATA_DIR", str(VAULTLOCK_DIR))
        if not self.platform:
            self.platform = os.getenv("VAULTLOCK_PLATFORM", "auto")
        if self.port == 8787:
            env_port = os.getenv("VAULTLOCK_PORT")
            if env_port:
                self.port = int(env_port)
        if not self.log_dir:
            self.log_dir = os.getenv("VAULTLOCK_LOG_DIR", "")
        if not self.database_url:
            self.database_url = os.getenv("DATABASE_URL", "")
        if not self.auth_url:
            self.auth_url = os.getenv("AUTH_URL", "http://localhost:54321")
        if not self.auth_api_key:
            self.auth_api_key = os.getenv("AUTH_API_KEY", "")
        if self.max_failed_attempts == 5:
            env_attempts = os.getenv("VAULTLOCK_MAX_FAILED_ATTEMPTS")
            if env_attempts:
                self.max_failed_attempts = int(env_attempts)
        if self.lockout_seconds == 30.0:
            env_lockout = os.getenv("VAULTLOCK_LOCKOUT_SECONDS")
            if env_lockout:
                self.lockout_seconds = float(env_lockout)
        if not self.biometric_command:
            self.biometric_command = os.getenv("VAULTLOCK_BIOMETRIC_COMMAND", "termux-fingerprint")

        if self.platform not in ("auto", "web", "native"):
            raise ValueError(f"Unknown platform {self.platform!r}, expected auto, web or native")

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()


class IdleSettings:
    """Device-scoped idle timeout with a change broadcast.

    Every running idle monitor subscribes here, so a new timeout reaches all of
    them without a reload.
    """

    def __init__(self, store: "KeyValueStore", default_seconds: int = 0):
        self._store = store
        self._seconds = default_seconds
        self.changed = Signal("idle-settings")

    @property
    def seconds(self) -> int:
        return self._seconds

    async def load(self) -> int:
        """Read the persisted timeout; unreadable or invalid values keep the default."""
        try:
            raw = await self._store.get(AUTO_LOCK_KEY)
        except LocalStorageError as e:
            logger.warning(f"Could not read auto-lock timeout, using {self._seconds}s: {e}")
            return self._seconds
        if raw is not None:
            try:
                self._seconds = max(0, int(raw))
            except ValueError:
                logger.warning(f"Ignoring invalid stored auto-lock timeout {raw!r}")
        return self._seconds

    async def update(self, seconds: int) -> None:
        """Persist a new timeout and broadcast it. 0 disables idle locking."""
        if seconds < 0:
            raise ValueError("Auto-lock timeout must be >= 0")
        await self._store.set(AUTO_LOCK_KEY, str(int(seconds)))
        self._seconds = int(seconds)
        logger.info(f"Auto-lock timeout set to {self._seconds}s")
        self.changed.emit(self._seconds)

    def subscribe(self, listener: Callable[[int], Any]) -> Callable[[], None]:
        return self.changed.subscribe(listener)


def option_label(seconds: Optional[int]) -> Optional[str]:
    """Label of the preset matching ``seconds``, if any."""
    for label, value in AUTO_LOCK_OPTIONS.items():
        if value == seconds:
            return label
    return None
