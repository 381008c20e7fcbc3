"""
Lock preference storage: remote profile as authority, device store as cache.

Writes go to the profile record first and only reach the device store once
the remote update succeeded. Reads before sign-in (the pre-login gate) use
the device copy; ``resolve()`` prefers the profile when signed in.
"""

import asyncio
from typing import Optional

from ..biometric import BiometricAuthenticator
from ..errors import AuthenticationRequired, BiometricUnavailable, LocalStorageError, RemoteUnavailable
from ..logging import get_logger
from ..storage.base import KeyValueStore
from .interfaces import AuthProvider, ProfileStore
from .models import LockMethod, LockPreference, Profile
from .pin import confirm_pin, hash_pin

logger = get_logger("lock.preferences")

LOCAL_LOCK_TYPE_KEY = "app_lock_type_local"
LOCAL_PIN_HASH_KEY = "app_pin_hash_local"


class LockPreferenceStore:
    """Reads and writes the user's lock method and PIN hash."""

    def __init__(
        self,
        local: KeyValueStore,
        profiles: ProfileStore,
        auth: AuthProvider,
        biometric: Optional[BiometricAuthenticator] = None,
    ):
        self._local = local
        self._profiles = profiles
        self._auth = auth
        self._biometric = biometric

    def _user_id(self) -> str:
        user = self._auth.current_user
        if user is None:
            raise AuthenticationRequired("Changing the app lock requires a signed-in user")
        return user.id

    async def get(self) -> Optional[LockMethod]:
        """Locally cached method, or None. Unreadable storage counts as no lock."""
        try:
            raw = await self._local.get(LOCAL_LOCK_TYPE_KEY)
        except LocalStorageError as e:
            logger.warning(f"Could not read local lock preference: {e}")
            return None
        method = LockMethod.parse(raw)
        return method if method.configured else None

    async def get_pin_hash(self) -> Optional[str]:
        """Locally cached PIN hash for pre-login verification."""
        try:
            return await self._local.get(LOCAL_PIN_HASH_KEY)
        except LocalStorageError as e:
            logger.warning(f"Could not read local PIN hash: {e}")
            return None

    async def get_preference(self) -> LockPreference:
        method = await self.get() or LockMethod.NONE
        pin_hash = await self.get_pin_hash() if method is LockMethod.PIN else None
        return LockPreference(method=method, pin_hash=pin_hash)

    async def set(self, method: LockMethod, pin_hash: Optional[str] = None) -> None:
        """Store a new lock method, remote first."""
        method = LockMethod.parse(method)
        if not method.configured:
            await self.clear()
            return
        if method is LockMethod.PIN and not pin_hash:
            raise ValueError("A PIN lock needs a PIN hash")
        if method is LockMethod.BIOMETRIC:
            if self._biometric is None or not await self._biometric.is_available():
                raise BiometricUnavailable("Biometric lock requires the native app")

        user_id = self._user_id()
        stored_hash = pin_hash if method is LockMethod.PIN else None

        # Raises RemoteUnavailable; local state stays untouched in that case
        await self._profiles.update_profile(
            user_id,
            app_lock_type=method.value,
            app_pin_hash=stored_hash,
        )
        await self._write_local(method, stored_hash)
        logger.info(f"Lock method set to {method.value}")

    async def clear(self) -> None:
        """Disable the app lock remotely, then drop the local copy."""
        user_id = self._user_id()
        await self._profiles.update_profile(user_id, app_lock_type=None, app_pin_hash=None)
        await self._local.remove(LOCAL_LOCK_TYPE_KEY)
        await self._local.remove(LOCAL_PIN_HASH_KEY)
        logger.info("App lock disabled")

    async def enroll_pin(self, pin: str, confirmation: str) -> None:
        """Create + confirm a six-digit PIN and make it the lock method."""
        confirm_pin(pin, confirmation)
        pin_hash = await asyncio.to_thread(hash_pin, pin)
        await self.set(LockMethod.PIN, pin_hash)

    async def fetch_profile(self) -> Optional[Profile]:
        """The signed-in user's profile, or None before sign-in."""
        user = self._auth.current_user
        if user is None:
            return None
        return await self._profiles.get_profile(user.id)

    async def resolve(self) -> LockMethod:
        """Effective method: profile when reachable and signed in, else local cache."""
        try:
            profile = await self.fetch_profile()
        except RemoteUnavailable as e:
            logger.warning(f"Profile unavailable, using cached lock preference: {e}")
            profile = None

        if profile is None:
            return await self.get() or LockMethod.NONE

        try:
            await self._refresh_local(profile.lock_method, profile.app_pin_hash)
        except LocalStorageError as e:
            logger.warning(f"Could not refresh local lock preference: {e}")
        return profile.lock_method

    async def forget_device(self) -> None:
        """Drop the device copy (logout)."""
        for key in (LOCAL_LOCK_TYPE_KEY, LOCAL_PIN_HASH_KEY):
            try:
                await self._local.remove(key)
            except LocalStorageError as e:
                logger.warning(f"Could not remove {key}: {e}")

    async def _refresh_local(self, method: LockMethod, pin_hash: Optional[str]) -> None:
        """Bring the device copy in line with the profile, writing only on change."""
        cached = (await self._local.get(LOCAL_LOCK_TYPE_KEY), await self._local.get(LOCAL_PIN_HASH_KEY))
        wanted = (
            method.value if method.configured else None,
            pin_hash if method is LockMethod.PIN and pin_hash else None,
        )
        if cached != wanted:
            await self._write_local(method, pin_hash)

    async def _write_local(self, method: LockMethod, pin_hash: Optional[str]) -> None:
        if not method.configured:
            await self._local.remove(LOCAL_LOCK_TYPE_KEY)
            await self._local.remove(LOCAL_PIN_HASH_KEY)
            return
        await self._local.set(LOCAL_LOCK_TYPE_KEY, method.value)
        if method is LockMethod.PIN and pin_hash:
            await self._local.set(LOCAL_PIN_HASH_KEY, pin_hash)
        else:
            await self._local.remove(LOCAL_PIN_HASH_KEY)
