import json

from vaultlock.lock.models import LockMethod
from vaultlock.lock.state import (
    LOCK_STATE_KEY,
    SESSION_UNLOCKED_KEY,
    LockStateMachine,
    SessionUnlockedFlag,
)
from vaultlock.storage import SessionStorage


def make_state(store=None):
    store = store or SessionStorage()
    return LockStateMachine(store, SessionUnlockedFlag(store)), store


async def test_starts_unlocked():
    state, _ = make_state()

    assert not state.is_locked
    assert state.lock_type is None


async def test_lock_without_method_does_nothing():
    state, store = make_state()

    assert not await state.lock(LockMethod.NONE)
    assert not state.is_locked
    assert await store.get(LOCK_STATE_KEY) is None


async def test_lock_persists_and_clears_session_flag():
    state, store = make_state()
    await state.session_flag.set()

    assert await state.lock(LockMethod.PIN)

    assert state.is_locked
    assert state.lock_type is LockMethod.PIN
    assert state.state.timestamp > 0
    assert not await state.session_flag.is_set()
    saved = json.loads(await store.get(LOCK_STATE_KEY))
    assert saved["is_locked"] is True
    assert saved["lock_type"] == "pin"


async def test_unlock_sets_session_flag():
    state, store = make_state()
    await state.lock(LockMethod.PASSWORD)

    await state.unlock()

    assert not state.is_locked
    assert await store.get(SESSION_UNLOCKED_KEY) == "true"


async def test_reset_clears_everything():
    state, _ = make_state()
    await state.lock(LockMethod.BIOMETRIC)
    await state.session_flag.set()

    await state.reset()

    assert not state.is_locked
    assert not await state.session_flag.is_set()


async def test_load_restores_state_from_this_session():
    store = SessionStorage()
    first, _ = make_state(store)
    await first.lock(LockMethod.PIN)

    second, _ = make_state(store)
    await second.load()

    assert second.is_locked
    assert second.lock_type is LockMethod.PIN


async def test_load_discards_unreadable_or_methodless_state():
    store = SessionStorage()
    state, _ = make_state(store)

    await store.set(LOCK_STATE_KEY, "{broken")
    await state.load()
    assert not state.is_locked

    await store.set(LOCK_STATE_KEY, json.dumps({"is_locked": True, "lock_type": "none"}))
    await state.load()
    assert not state.is_locked


async def test_changes_are_broadcast():
    state, _ = make_state()
    seen = []
    unsubscribe = state.subscribe(lambda s: seen.append(s.is_locked))

    await state.lock(LockMethod.PIN)
    await state.lock(LockMethod.PIN)
    await state.unlock()
    unsubscribe()
    await state.lock(LockMethod.PIN)

    assert seen == [True, False]
