"""Platform biometric authentication.

On native builds the check is delegated to a platform helper command that
prompts for a fingerprint/face and prints a JSON verdict (``termux-fingerprint``
by default). Everywhere else biometrics are unavailable.
"""

import asyncio
import json
import shutil
from abc import ABC, abstractmethod

from .config import LockConfig
from .errors import BiometricUnavailable
from .logging import get_logger
from .storage import is_native_platform

logger = get_logger("biometric")

AUTH_RESULT_SUCCESS = "AUTH_RESULT_SUCCESS"


class BiometricAuthenticator(ABC):
    """Platform biometric capability."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Whether a biometric check can be attempted on this device."""

    @abstractmethod
    async def verify(self, reason: str = "Unlock your vault") -> bool:
        """Prompt the user. True on success, False on rejection.

        Raises BiometricUnavailable when the platform cannot prompt at all.
        """


class UnavailableBiometric(BiometricAuthenticator):
    """Used on web and desktop, where no platform authenticator exists."""

    async def is_available(self) -> bool:
        return False

    async def verify(self, reason: str = "Unlock your vault") -> bool:
        raise BiometricUnavailable("No biometric authenticator on this platform")


class CommandBiometric(BiometricAuthenticator):
    """Runs a helper command and reads its JSON ``auth_result``."""

    def __init__(self, command: str, timeout: float = 60.0):
        self.command = command
        self.timeout = timeout

    async def is_available(self) -> bool:
        return shutil.which(self.command) is not None

    async def verify(self, reason: str = "Unlock your vault") -> bool:
        if not await self.is_available():
            raise BiometricUnavailable(f"{self.command} not found")

        try:
            proc = await asyncio.create_subprocess_exec(
                self.command, "-t", "Vault locked", "-d", reason,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BiometricUnavailable(f"Could not run {self.command}: {e}") from e
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("Biometric prompt timed out")
            return False

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", "replace").strip()
            raise BiometricUnavailable(f"{self.command} exited with {proc.returncode}: {detail}")

        try:
            verdict = json.loads(stdout.decode("utf-8") or "{}")
        except ValueError as e:
            raise BiometricUnavailable(f"Unexpected biometric helper output: {e}") from e
        if not isinstance(verdict, dict):
            raise BiometricUnavailable(f"Unexpected biometric helper verdict: {verdict!r}")

        errors = verdict.get("errors") or []
        if errors and verdict.get("auth_result") != AUTH_RESULT_SUCCESS:
            logger.info(f"Biometric helper reported: {', '.join(map(str, errors))}")
        return verdict.get("auth_result") == AUTH_RESULT_SUCCESS


def create_biometric(config: LockConfig) -> BiometricAuthenticator:
    """Pick the biometric backend for this platform."""
    if is_native_platform(config):
        logger.info(f"Biometric checks via {config.biometric_command}")
        return CommandBiometric(config.biometric_command)
    return UnavailableBiometric()
