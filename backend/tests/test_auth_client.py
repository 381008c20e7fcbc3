import json

import httpx
import pytest

from vaultlock.auth import INITIAL_SESSION, SIGNED_IN, SIGNED_OUT, AuthClient
from vaultlock.auth.client import SESSION_KEY
from vaultlock.errors import InvalidCredential, RemoteUnavailable
from vaultlock.lock.interfaces import AuthStatus
from vaultlock.storage import SessionStorage

BASE_URL = "http://auth.test"
USER_JSON = {"id": "11111111-1111-1111-1111-111111111111", "email": "ana@example.com"}


class AuthServer:
    """Minimal GoTrue-style endpoints behind an httpx.MockTransport."""

    def __init__(self):
        self.password = "s3cret-pass"
        self.valid_token = "token-1"
        self.down = False
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path == "/auth/v1/token":
            body = json.loads(request.content)
            if body["password"] != self.password:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={
                "access_token": self.valid_token,
                "refresh_token": "refresh-1",
                "user": USER_JSON,
            })
        if request.url.path == "/auth/v1/user":
            if request.headers.get("Authorization") != f"Bearer {self.valid_token}":
                return httpx.Response(401, json={"message": "JWT expired"})
            return httpx.Response(200, json=USER_JSON)
        if request.url.path == "/auth/v1/logout":
            return httpx.Response(204)
        return httpx.Response(404)


@pytest.fixture
def server():
    return AuthServer()


@pytest.fixture
def store():
    return SessionStorage()


@pytest.fixture
async def client(server, store):
    http = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
    auth = AuthClient(BASE_URL, "anon-key", store, client=http)
    yield auth
    await auth.close()


def record_events(auth):
    events = []
    auth.on_auth_state_change(lambda event, user: events.append(event))
    return events


async def test_sign_in_persists_session_and_notifies(client, server, store):
    events = record_events(client)

    user = await client.sign_in_with_password("ana@example.com", server.password)

    assert user.email == "ana@example.com"
    assert client.status is AuthStatus.AUTHENTICATED
    assert client.current_user == user
    assert json.loads(await store.get(SESSION_KEY))["access_token"] == "token-1"
    assert events == [SIGNED_IN]
    request = server.requests[0]
    assert request.url.params["grant_type"] == "password"
    assert request.headers["apikey"] == "anon-key"


async def test_wrong_password_is_invalid_credential(client):
    with pytest.raises(InvalidCredential) as exc_info:
        await client.sign_in_with_password("ana@example.com", "nope")

    assert exc_info.value.notice == "Invalid password. Please try again"
    assert client.current_user is None


async def test_unreachable_provider_is_remote_unavailable(client, server):
    server.down = True

    with pytest.raises(RemoteUnavailable):
        await client.sign_in_with_password("ana@example.com", server.password)


async def test_server_error_is_remote_unavailable(store):
    http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(502)))
    auth = AuthClient(BASE_URL, "anon-key", store, client=http)

    with pytest.raises(RemoteUnavailable):
        await auth.sign_in_with_password("ana@example.com", "whatever")
    await auth.close()


async def test_restore_without_session_is_unauthenticated(client, server):
    events = record_events(client)
    assert client.status is AuthStatus.LOADING

    assert await client.restore() is None

    assert client.status is AuthStatus.UNAUTHENTICATED
    assert events == [INITIAL_SESSION]
    assert server.requests == []


async def test_restore_with_valid_token(client, store):
    await store.set(SESSION_KEY, json.dumps({"access_token": "token-1"}))

    user = await client.restore()

    assert user.id == USER_JSON["id"]
    assert client.status is AuthStatus.AUTHENTICATED


async def test_restore_with_expired_token_forgets_it(client, store):
    await store.set(SESSION_KEY, json.dumps({"access_token": "stale"}))

    assert await client.restore() is None

    assert client.status is AuthStatus.UNAUTHENTICATED
    assert await store.get(SESSION_KEY) is None


async def test_restore_offline_keeps_stored_session(client, server, store):
    await store.set(SESSION_KEY, json.dumps({"access_token": "token-1"}))
    server.down = True

    assert await client.restore() is None

    assert client.status is AuthStatus.UNAUTHENTICATED
    assert await store.get(SESSION_KEY) is not None


async def test_sign_out_is_best_effort(client, server, store):
    await client.sign_in_with_password("ana@example.com", server.password)
    events = record_events(client)
    server.down = True

    await client.sign_out()

    assert client.status is AuthStatus.UNAUTHENTICATED
    assert client.current_user is None
    assert await store.get(SESSION_KEY) is None
    assert events == [SIGNED_OUT]
