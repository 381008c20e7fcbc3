"""Collaborators the app lock consumes but does not implement."""

from collections.abc import Callable
from enum import Enum
from typing import Any, Optional, Protocol

from .models import AuthUser, Profile


class AuthStatus(str, Enum):
    """Where the auth provider is in resolving the session."""
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class ProfileStore(Protocol):
    """Remote profile records keyed by user id."""

    async def get_profile(self, user_id: str) -> Optional[Profile]: ...

    async def update_profile(self, user_id: str, **fields: Any) -> Profile: ...


class AuthProvider(Protocol):
    """Account authentication."""

    @property
    def status(self) -> AuthStatus: ...

    @property
    def current_user(self) -> Optional[AuthUser]: ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthUser: ...

    async def sign_out(self) -> None: ...

    def on_auth_state_change(self, listener: Callable[[str, Optional[AuthUser]], Any]) -> Callable[[], None]: ...


class ActivityLog(Protocol):
    """Best-effort audit trail of security events."""

    async def log(self, user_id: str, action_type: str, details: Optional[dict] = None) -> None: ...
