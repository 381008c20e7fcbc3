"""API endpoints for account sign-in and sign-out."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..errors import LockError
from ..lock.service import LockService
from ..logging import get_logger
from .deps import get_service, http_error

logger = get_logger("api.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


class SignInRequest(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: str
    email: str


class SessionResponse(BaseModel):
    status: str
    user: Optional[UserResponse] = None


def _session(service: LockService) -> SessionResponse:
    user = service.auth.current_user
    return SessionResponse(
        status=service.auth.status.value,
        user=UserResponse(id=user.id, email=user.email) if user else None,
    )


@router.post("/sign-in", response_model=SessionResponse)
async def sign_in(request: SignInRequest, service: LockService = Depends(get_service)):
    """Password sign-in. Counts as proof of identity for this session."""
    try:
        await service.sign_in(request.email, request.password)
    except LockError as e:
        logger.warning(f"Sign-in failed for {request.email}: {type(e).__name__}")
        raise http_error(e)
    return _session(service)


@router.post("/sign-out", response_model=SessionResponse)
async def sign_out(service: LockService = Depends(get_service)):
    """Sign out and forget the lock preference cached on this device."""
    await service.sign_out()
    return _session(service)


@router.get("/session", response_model=SessionResponse)
async def get_session(service: LockService = Depends(get_service)):
    return _session(service)
