import pytest

from conftest import PASSWORD, USER, FakeBiometric
from vaultlock.errors import (
    AuthenticationRequired,
    BiometricUnavailable,
    InvalidCredential,
    LocalStorageError,
    RemoteUnavailable,
)
from vaultlock.lock.models import LockMethod
from vaultlock.lock.pin import hash_pin, verify_pin_hash
from vaultlock.lock.preferences import LOCAL_LOCK_TYPE_KEY, LOCAL_PIN_HASH_KEY, LockPreferenceStore
from vaultlock.storage import SessionStorage


class BrokenStore(SessionStorage):
    async def get(self, key):
        raise LocalStorageError("disk on fire")


class CountingStore(SessionStorage):
    def __init__(self):
        super().__init__()
        self.writes = 0

    async def set(self, key, value):
        self.writes += 1
        await super().set(key, value)

    async def remove(self, key):
        self.writes += 1
        await super().remove(key)


@pytest.fixture
async def signed_in(auth):
    await auth.sign_in_with_password(USER.email, PASSWORD)
    return auth


@pytest.fixture
def preferences(device_store, profiles, auth):
    return LockPreferenceStore(device_store, profiles, auth, FakeBiometric(available=True))


async def test_nothing_configured_means_no_lock(preferences):
    assert await preferences.get() is None
    assert await preferences.resolve() is LockMethod.NONE
    assert (await preferences.get_preference()).method is LockMethod.NONE


async def test_set_writes_remote_then_local(preferences, signed_in, profiles, device_store):
    await preferences.set(LockMethod.PASSWORD)

    assert profiles.profiles[USER.id].app_lock_type == "password"
    assert await device_store.get(LOCAL_LOCK_TYPE_KEY) == "password"
    assert await preferences.get() is LockMethod.PASSWORD


async def test_remote_failure_leaves_local_untouched(preferences, signed_in, profiles, device_store):
    await preferences.set(LockMethod.PASSWORD)
    profiles.available = False

    with pytest.raises(RemoteUnavailable):
        await preferences.set(LockMethod.BIOMETRIC)

    assert await device_store.get(LOCAL_LOCK_TYPE_KEY) == "password"


async def test_set_requires_signed_in_user(preferences, device_store):
    with pytest.raises(AuthenticationRequired):
        await preferences.set(LockMethod.PASSWORD)

    assert await device_store.get(LOCAL_LOCK_TYPE_KEY) is None


async def test_biometric_requires_platform_support(device_store, profiles, signed_in):
    preferences = LockPreferenceStore(device_store, profiles, signed_in, FakeBiometric(available=False))

    with pytest.raises(BiometricUnavailable):
        await preferences.set(LockMethod.BIOMETRIC)

    assert profiles.updates == []


async def test_pin_lock_needs_hash(preferences, signed_in):
    with pytest.raises(ValueError):
        await preferences.set(LockMethod.PIN)


async def test_enroll_pin_stores_hash_in_both_places(preferences, signed_in, profiles, device_store):
    await preferences.enroll_pin("482913", "482913")

    remote_hash = profiles.profiles[USER.id].app_pin_hash
    assert profiles.profiles[USER.id].app_lock_type == "pin"
    assert verify_pin_hash(remote_hash, "482913")
    assert await device_store.get(LOCAL_PIN_HASH_KEY) == remote_hash
    assert await preferences.get_pin_hash() == remote_hash


async def test_enroll_pin_mismatch_writes_nothing(preferences, signed_in, profiles):
    with pytest.raises(InvalidCredential):
        await preferences.enroll_pin("482913", "482931")

    assert profiles.updates == []


async def test_disable_is_immediate(preferences, signed_in, device_store):
    await preferences.enroll_pin("482913", "482913")

    await preferences.clear()

    assert await preferences.get() is None
    assert await device_store.get(LOCAL_PIN_HASH_KEY) is None
    assert await preferences.resolve() is LockMethod.NONE


async def test_setting_none_disables(preferences, signed_in, profiles):
    await preferences.set(LockMethod.PASSWORD)

    await preferences.set(LockMethod.NONE)

    assert profiles.profiles[USER.id].app_lock_type is None
    assert await preferences.get() is None


async def test_resolve_prefers_profile_and_refreshes_cache(preferences, signed_in, profiles, device_store):
    pin_hash = hash_pin("135790")
    profiles.profiles[USER.id].app_lock_type = "pin"
    profiles.profiles[USER.id].app_pin_hash = pin_hash
    await device_store.set(LOCAL_LOCK_TYPE_KEY, "password")

    assert await preferences.resolve() is LockMethod.PIN
    assert await device_store.get(LOCAL_LOCK_TYPE_KEY) == "pin"
    assert await device_store.get(LOCAL_PIN_HASH_KEY) == pin_hash


async def test_resolve_falls_back_to_cache_when_remote_down(preferences, signed_in, profiles, device_store):
    await device_store.set(LOCAL_LOCK_TYPE_KEY, "password")
    profiles.available = False

    assert await preferences.resolve() is LockMethod.PASSWORD


async def test_unreadable_local_store_counts_as_no_lock(profiles, auth):
    preferences = LockPreferenceStore(BrokenStore(), profiles, auth)

    assert await preferences.get() is None
    assert await preferences.get_pin_hash() is None
    assert await preferences.resolve() is LockMethod.NONE


async def test_unknown_stored_value_counts_as_no_lock(preferences, device_store):
    await device_store.set(LOCAL_LOCK_TYPE_KEY, "retina")

    assert await preferences.get() is None


async def test_forget_device_drops_local_copy_only(preferences, signed_in, profiles, device_store):
    await preferences.enroll_pin("482913", "482913")

    await preferences.forget_device()

    assert await device_store.get(LOCAL_LOCK_TYPE_KEY) is None
    assert await device_store.get(LOCAL_PIN_HASH_KEY) is None
    assert profiles.profiles[USER.id].app_lock_type == "pin"


async def test_resolve_only_writes_device_copy_on_change(profiles, signed_in):
    store = CountingStore()
    preferences = LockPreferenceStore(store, profiles, signed_in)
    pin_hash = hash_pin("482913")
    profiles.profiles[USER.id].app_lock_type = "pin"
    profiles.profiles[USER.id].app_pin_hash = pin_hash

    assert await preferences.resolve() is LockMethod.PIN
    first = store.writes
    assert first > 0
    for _ in range(3):
        assert await preferences.resolve() is LockMethod.PIN
    assert store.writes == first

    profiles.profiles[USER.id].app_lock_type = "password"
    profiles.profiles[USER.id].app_pin_hash = None
    await preferences.resolve()

    assert store.writes > first
    assert await store.get(LOCAL_LOCK_TYPE_KEY) == "password"
    assert await store.get(LOCAL_PIN_HASH_KEY) is None
