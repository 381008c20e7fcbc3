import asyncio

import pytest

from vaultlock.config import IdleSettings
from vaultlock.lock.idle import ActivitySource, IdleClock, IdleMonitor, normalize_event
from vaultlock.lock.models import LockMethod
from vaultlock.storage import SessionStorage

TIMEOUT = 0.05


class Recorder:
    def __init__(self):
        self.calls: list[LockMethod] = []

    def __call__(self, method: LockMethod) -> None:
        self.calls.append(method)


@pytest.fixture
def activity():
    return ActivitySource()


@pytest.fixture
def settings():
    return IdleSettings(SessionStorage(), default_seconds=300)


def make_monitor(activity, method=LockMethod.PIN, settings=None):
    return IdleMonitor(activity, lambda: method, settings)


def test_normalize_event():
    assert normalize_event("mousedown") == "pointer"
    assert normalize_event("keydown") == "key"
    assert normalize_event("scroll") == "scroll"
    assert normalize_event("resize") is None
    assert not ActivitySource().post("focus")


async def test_fires_once_then_goes_dormant(activity):
    on_idle = Recorder()
    monitor = make_monitor(activity)

    monitor.start(TIMEOUT, on_idle)
    await asyncio.sleep(TIMEOUT * 3)

    assert on_idle.calls == [LockMethod.PIN]
    assert monitor.is_dormant
    assert not monitor.has_pending_timer

    # Activity while dormant does not restart the countdown
    activity.post("keydown")
    await asyncio.sleep(TIMEOUT * 3)
    assert on_idle.calls == [LockMethod.PIN]
    monitor.stop()


async def test_activity_restarts_countdown(activity):
    on_idle = Recorder()
    monitor = make_monitor(activity)
    monitor.start(0.2, on_idle)

    for _ in range(3):
        await asyncio.sleep(0.1)
        assert activity.post("touchstart")
    assert on_idle.calls == []
    assert monitor.remaining() > 0.1

    await asyncio.sleep(0.35)
    assert len(on_idle.calls) == 1
    monitor.stop()


async def test_mark_active_is_idempotent(activity):
    on_idle = Recorder()
    monitor = make_monitor(activity)
    monitor.start(TIMEOUT, on_idle)
    await asyncio.sleep(TIMEOUT * 3)
    assert monitor.is_dormant

    monitor.mark_active()
    monitor.mark_active()
    assert not monitor.is_dormant
    assert monitor.has_pending_timer

    await asyncio.sleep(TIMEOUT * 3)
    assert len(on_idle.calls) == 2
    monitor.stop()


async def test_does_not_start_without_timeout_or_method(activity):
    no_timeout = make_monitor(activity)
    no_timeout.start(0, Recorder())
    assert not no_timeout.is_running

    no_method = make_monitor(activity, method=LockMethod.NONE)
    no_method.start(TIMEOUT, Recorder())
    assert not no_method.is_running
    assert activity.listener_count == 0


async def test_stop_detaches_everything(activity, settings):
    on_idle = Recorder()
    monitor = make_monitor(activity, settings=settings)
    monitor.start(TIMEOUT, on_idle)
    assert activity.listener_count == 1
    assert settings.changed.listener_count == 1

    monitor.stop()
    await asyncio.sleep(TIMEOUT * 3)

    assert on_idle.calls == []
    assert activity.listener_count == 0
    assert settings.changed.listener_count == 0
    assert not monitor.has_pending_timer


async def test_timeout_change_applies_from_next_reset(activity, settings):
    monitor = make_monitor(activity, settings=settings)
    monitor.start(settings.seconds, Recorder())
    assert monitor.timeout == 300

    await settings.update(60)
    assert monitor.timeout == 60
    assert monitor.remaining() > 60

    activity.post("key")
    assert monitor.remaining() <= 60
    monitor.stop()


async def test_zero_timeout_broadcast_cancels_pending_countdown(activity, settings):
    on_idle = Recorder()
    monitor = make_monitor(activity, settings=settings)
    monitor.start(TIMEOUT, on_idle)

    await settings.update(0)
    await asyncio.sleep(TIMEOUT * 3)

    assert on_idle.calls == []
    assert not monitor.has_pending_timer
    activity.post("key")
    assert not monitor.has_pending_timer
    monitor.stop()


async def test_async_idle_callback_runs(activity):
    locked = asyncio.Event()

    async def on_idle(method):
        locked.set()

    monitor = make_monitor(activity)
    monitor.start(TIMEOUT, on_idle)

    await asyncio.wait_for(locked.wait(), timeout=1)
    monitor.stop()


async def test_idle_clock_shares_one_monitor(activity, settings):
    await settings.update(1)
    monitor = make_monitor(activity, settings=settings)
    clock = IdleClock(monitor, settings)
    first, second = Recorder(), Recorder()

    assert clock.acquire(first)
    assert clock.acquire(second)
    assert clock.acquire(second)
    assert clock.refcount == 2
    assert activity.listener_count == 1

    clock.release(first)
    assert monitor.is_running

    clock.release(second)
    assert not monitor.is_running
    assert activity.listener_count == 0


async def test_idle_clock_fans_out_to_every_subscriber(activity):
    settings = IdleSettings(SessionStorage(), default_seconds=TIMEOUT)
    monitor = make_monitor(activity, settings=settings)
    clock = IdleClock(monitor, settings)
    first, second = Recorder(), Recorder()
    clock.acquire(first)
    clock.acquire(second)

    await asyncio.sleep(TIMEOUT * 3)

    assert first.calls == [LockMethod.PIN]
    assert second.calls == [LockMethod.PIN]
    clock.shutdown()
    assert clock.refcount == 0
