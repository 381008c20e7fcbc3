"""HTTP client for the hosted authentication provider (GoTrue-compatible REST API)."""

import json
from collections.abc import Callable
from typing import Any, Optional

import httpx

from ..errors import InvalidCredential, LocalStorageError, RemoteUnavailable
from ..events import Signal
from ..lock.interfaces import AuthStatus
from ..lock.models import AuthUser
from ..logging import get_logger
from ..storage.base import KeyValueStore

logger = get_logger("auth")

SESSION_KEY = "auth_session"

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
INITIAL_SESSION = "INITIAL_SESSION"


class AuthClient:
    """Async client for password sign-in and session restore.

    The access token is persisted in the device store so a cold start can
    restore the session without asking for the password again.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        store: KeyValueStore,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._store = store
        self._client = client or httpx.AsyncClient(timeout=10.0)
        self._status = AuthStatus.LOADING
        self._user: Optional[AuthUser] = None
        self._access_token: Optional[str] = None
        self._state_changed = Signal("auth-state")

    @property
    def status(self) -> AuthStatus:
        return self._status

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._user

    def on_auth_state_change(self, listener: Callable[[str, Optional[AuthUser]], Any]) -> Callable[[], None]:
        return self._state_changed.subscribe(listener)

    async def close(self):
        await self._client.aclose()

    async def drain(self) -> None:
        """Wait for async listeners of the last auth event."""
        await self._state_changed.drain()

    def _headers(self, token: Optional[str] = None) -> dict:
        headers = {"apikey": self.api_key}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _parse_user(data: dict) -> AuthUser:
        return AuthUser(id=str(data["id"]), email=data.get("email") or "")

    async def restore(self) -> Optional[AuthUser]:
        """Resolve the persisted session, if any. Ends in a definite status."""
        try:
            raw = await self._store.get(SESSION_KEY)
        except LocalStorageError as e:
            logger.warning(f"Could not read stored session: {e}")
            raw = None

        token = None
        if raw:
            try:
                token = json.loads(raw).get("access_token")
            except (ValueError, AttributeError):
                logger.warning("Discarding unreadable stored session")

        if not token:
            self._set_state(AuthStatus.UNAUTHENTICATED, None, None, INITIAL_SESSION)
            return None

        try:
            resp = await self._client.get(
                f"{self.base_url}/auth/v1/user",
                headers=self._headers(token),
            )
        except httpx.HTTPError as e:
            # Offline: the session is unknown, treat as signed out until reachable
            logger.warning(f"Session restore failed: {e}")
            self._set_state(AuthStatus.UNAUTHENTICATED, None, None, INITIAL_SESSION)
            return None

        if resp.status_code in (401, 403):
            logger.info("Stored session expired")
            await self._forget_session()
            self._set_state(AuthStatus.UNAUTHENTICATED, None, None, INITIAL_SESSION)
            return None
        if resp.status_code >= 400:
            logger.warning(f"Session restore got HTTP {resp.status_code}")
            self._set_state(AuthStatus.UNAUTHENTICATED, None, None, INITIAL_SESSION)
            return None

        user = self._parse_user(resp.json())
        self._set_state(AuthStatus.AUTHENTICATED, user, token, INITIAL_SESSION)
        logger.info(f"Restored session for {user.email}")
        return user

    async def sign_in_with_password(self, email: str, password: str) -> AuthUser:
        """Password sign-in. Raises InvalidCredential or RemoteUnavailable."""
        try:
            resp = await self._client.post(
                f"{self.base_url}/auth/v1/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise RemoteUnavailable(f"Sign-in request failed: {e}") from e

        if resp.status_code in (400, 401, 403, 422):
            logger.warning(f"Failed sign-in attempt for {email}")
            raise InvalidCredential("Invalid login credentials", notice="Invalid password. Please try again")
        if resp.status_code >= 400:
            raise RemoteUnavailable(f"Sign-in failed with HTTP {resp.status_code}")

        data = resp.json()
        user = self._parse_user(data["user"])
        token = data["access_token"]
        try:
            await self._store.set(SESSION_KEY, json.dumps({
                "access_token": token,
                "refresh_token": data.get("refresh_token"),
            }))
        except LocalStorageError as e:
            logger.warning(f"Signed in but could not persist the session: {e}")

        self._set_state(AuthStatus.AUTHENTICATED, user, token, SIGNED_IN)
        logger.info(f"Signed in as {user.email}")
        return user

    async def sign_out(self) -> None:
        """End the session locally; the server-side logout is best-effort."""
        token = self._access_token
        if token:
            try:
                await self._client.post(
                    f"{self.base_url}/auth/v1/logout",
                    headers=self._headers(token),
                    timeout=5.0,
                )
            except httpx.HTTPError as e:
                logger.debug(f"Logout request failed (best-effort): {e}")
        await self._forget_session()
        self._set_state(AuthStatus.UNAUTHENTICATED, None, None, SIGNED_OUT)
        logger.info("Signed out")

    async def _forget_session(self) -> None:
        try:
            await self._store.remove(SESSION_KEY)
        except LocalStorageError as e:
            logger.warning(f"Could not remove stored session: {e}")

    def _set_state(
        self,
        status: AuthStatus,
        user: Optional[AuthUser],
        token: Optional[str],
        event: str,
    ) -> None:
        self._status = status
        self._user = user
        self._access_token = token
        self._state_changed.emit(event, user)
