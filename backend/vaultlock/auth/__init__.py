"""Authentication provider client."""

from .client import AuthClient, SIGNED_IN, SIGNED_OUT, INITIAL_SESSION

__all__ = [
    "AuthClient",
    "SIGNED_IN",
    "SIGNED_OUT",
    "INITIAL_SESSION",
]
