"""Shared helpers for the route modules."""

from fastapi import HTTPException, Request

from ..errors import (
    AppLocked,
    AuthenticationRequired,
    BiometricUnavailable,
    InvalidCredential,
    LocalStorageError,
    LockError,
    RemoteUnavailable,
    TooManyAttempts,
    VerificationInProgress,
)
from ..lock.service import LockService

# Most specific first
ERROR_STATUS = (
    (TooManyAttempts, 429),
    (InvalidCredential, 401),
    (AuthenticationRequired, 401),
    (VerificationInProgress, 409),
    (AppLocked, 423),
    (BiometricUnavailable, 422),
    (RemoteUnavailable, 503),
    (LocalStorageError, 500),
)


def get_service(request: Request) -> LockService:
    """The LockService created by the app lifespan."""
    return request.app.state.lock_service


def http_error(error: LockError) -> HTTPException:
    """Turn a LockError into the HTTPException the shell expects."""
    status_code = 400
    for error_type, code in ERROR_STATUS:
        if isinstance(error, error_type):
            status_code = code
            break
    headers = None
    if isinstance(error, TooManyAttempts):
        headers = {"Retry-After": str(max(1, int(round(error.retry_after))))}
    return HTTPException(
        status_code=status_code,
        detail={"error": type(error).__name__, "notice": error.notice},
        headers=headers,
    )
