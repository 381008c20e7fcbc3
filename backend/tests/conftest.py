"""Shared fixtures: in-memory stand-ins for the remote collaborators."""

import asyncio
from typing import Any, Optional

import pytest

from vaultlock.auth import SIGNED_IN, SIGNED_OUT
from vaultlock.biometric import BiometricAuthenticator
from vaultlock.config import LockConfig
from vaultlock.errors import InvalidCredential, RemoteUnavailable
from vaultlock.events import Signal
from vaultlock.lock.interfaces import AuthStatus
from vaultlock.lock.models import AuthUser, Profile
from vaultlock.lock.service import LockService
from vaultlock.storage import SessionStorage

USER = AuthUser(id="11111111-1111-1111-1111-111111111111", email="ana@example.com")
PASSWORD = "correct horse battery staple"


class FakeProfileStore:
    """Profiles held in a dict; ``available = False`` simulates an outage."""

    def __init__(self):
        self.profiles: dict[str, Profile] = {}
        self.available = True
        self.updates: list[tuple[str, dict]] = []

    def add(self, user: AuthUser, **fields: Any) -> Profile:
        profile = Profile(id=user.id, email=user.email, **fields)
        self.profiles[user.id] = profile
        return profile

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        if not self.available:
            raise RemoteUnavailable("profile store offline")
        return self.profiles.get(user_id)

    async def update_profile(self, user_id: str, **fields: Any) -> Profile:
        if not self.available:
            raise RemoteUnavailable("profile store offline")
        profile = self.profiles.get(user_id)
        if profile is None:
            raise RemoteUnavailable(f"Profile {user_id} not found")
        for name, value in fields.items():
            setattr(profile, name, value)
        self.updates.append((user_id, fields))
        return profile


class FakeAuth:
    """Auth provider with one known account."""

    def __init__(self, user: AuthUser = USER, password: str = PASSWORD):
        self._account = user
        self._password = password
        self.status = AuthStatus.UNAUTHENTICATED
        self.current_user: Optional[AuthUser] = None
        self.sign_in_calls = 0
        self._signal = Signal("fake-auth")

    def on_auth_state_change(self, listener):
        return self._signal.subscribe(listener)

    async def sign_in_with_password(self, email: str, password: str) -> AuthUser:
        self.sign_in_calls += 1
        if email != self._account.email or password != self._password:
            raise InvalidCredential("Invalid login credentials", notice="Invalid password. Please try again")
        self.status = AuthStatus.AUTHENTICATED
        self.current_user = self._account
        self._signal.emit(SIGNED_IN, self._account)
        return self._account

    async def sign_out(self) -> None:
        self.status = AuthStatus.UNAUTHENTICATED
        self.current_user = None
        self._signal.emit(SIGNED_OUT, None)

    async def drain(self) -> None:
        await self._signal.drain()


class FakeBiometric(BiometricAuthenticator):
    """Scripted biometric prompt. Set ``gate`` to hold ``verify`` until it is set."""

    def __init__(self, available: bool = True, result: bool = True):
        self.available = available
        self.result = result
        self.calls = 0
        self.gate: Optional[asyncio.Event] = None

    async def is_available(self) -> bool:
        return self.available

    async def verify(self, reason: str = "Unlock your vault") -> bool:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        return self.result


class FakeActivityLog:
    def __init__(self):
        self.entries: list[tuple[str, str, Optional[dict]]] = []

    async def log(self, user_id: str, action_type: str, details: Optional[dict] = None) -> None:
        self.entries.append((user_id, action_type, details))

    @property
    def actions(self) -> list[str]:
        return [action for _, action, _ in self.entries]


@pytest.fixture
def config(tmp_path):
    return LockConfig(
        data_dir=str(tmp_path),
        platform="web",
        auth_url="http://auth.test",
        max_failed_attempts=3,
        lockout_seconds=30.0,
    )


@pytest.fixture
def device_store():
    return SessionStorage()


@pytest.fixture
def session_store():
    return SessionStorage()


@pytest.fixture
def profiles():
    store = FakeProfileStore()
    store.add(USER)
    return store


@pytest.fixture
def auth():
    return FakeAuth()


@pytest.fixture
def biometric():
    return FakeBiometric(available=False)


@pytest.fixture
def activity_log():
    return FakeActivityLog()


@pytest.fixture
def service(config, device_store, session_store, auth, profiles, activity_log, biometric):
    return LockService(
        config,
        device_store=device_store,
        session_store=session_store,
        auth=auth,
        profiles=profiles,
        activity_log=activity_log,
        biometric=biometric,
    )
