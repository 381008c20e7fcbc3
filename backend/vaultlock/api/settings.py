"""API endpoints for the app lock settings screen."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..config import AUTO_LOCK_OPTIONS, option_label
from ..errors import LockError
from ..lock.models import LockMethod
from ..lock.service import LockService
from ..logging import get_logger
from .deps import get_service, http_error

logger = get_logger("api.settings")

router = APIRouter(prefix="/settings/lock", tags=["settings"])


# --- Request/Response Models ---

class LockSettingsResponse(BaseModel):
    method: str
    auto_lock_seconds: int
    auto_lock_label: Optional[str] = None
    biometric_available: bool


class MethodRequest(BaseModel):
    """Switch to biometric or password, or ``none`` to turn the lock off."""
    method: LockMethod


class PinEnrollRequest(BaseModel):
    pin: str = Field(..., description="New six-digit PIN")
    confirm_pin: str = Field(..., description="The same PIN again")


class AutoLockRequest(BaseModel):
    seconds: int = Field(..., ge=0, description="Idle timeout in seconds, 0 turns it off")


class AutoLockResponse(BaseModel):
    seconds: int
    label: Optional[str] = None


class AutoLockOption(BaseModel):
    label: str
    seconds: int


# --- Endpoints ---

async def _settings(service: LockService) -> LockSettingsResponse:
    try:
        method = await service.preferences.resolve()
    except LockError as e:
        raise http_error(e)
    seconds = service.settings.seconds
    return LockSettingsResponse(
        method=method.value,
        auto_lock_seconds=seconds,
        auto_lock_label=option_label(seconds),
        biometric_available=await service.biometric.is_available(),
    )


@router.get("", response_model=LockSettingsResponse)
async def get_lock_settings(service: LockService = Depends(get_service)):
    return await _settings(service)


@router.put("/method", response_model=LockSettingsResponse)
async def set_lock_method(request: MethodRequest, service: LockService = Depends(get_service)):
    """
    Choose the lock method.

    PIN locks go through ``POST /settings/lock/pin`` because they need a
    confirmed PIN. Biometric needs a device with a biometric authenticator.
    """
    try:
        await service.enable_lock(request.method)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LockError as e:
        raise http_error(e)
    logger.info(f"Lock method changed to {request.method.value}")
    return await _settings(service)


@router.post("/pin", response_model=LockSettingsResponse)
async def enroll_pin(request: PinEnrollRequest, service: LockService = Depends(get_service)):
    """Create a PIN (entered twice) and make it the lock method."""
    try:
        await service.enroll_pin(request.pin, request.confirm_pin)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LockError as e:
        raise http_error(e)
    return await _settings(service)


@router.delete("", response_model=LockSettingsResponse)
async def disable_lock(service: LockService = Depends(get_service)):
    """Turn the app lock off. Applies immediately, no reload needed."""
    try:
        await service.disable_lock()
    except LockError as e:
        raise http_error(e)
    logger.info("App lock turned off")
    return await _settings(service)


@router.get("/auto-lock", response_model=AutoLockResponse)
async def get_auto_lock(service: LockService = Depends(get_service)):
    seconds = service.settings.seconds
    return AutoLockResponse(seconds=seconds, label=option_label(seconds))


@router.put("/auto-lock", response_model=AutoLockResponse)
async def set_auto_lock(request: AutoLockRequest, service: LockService = Depends(get_service)):
    """Change the idle timeout; running idle monitors pick it up on their next reset."""
    try:
        await service.set_auto_lock(request.seconds)
    except LockError as e:
        raise http_error(e)
    seconds = service.settings.seconds
    return AutoLockResponse(seconds=seconds, label=option_label(seconds))


@router.get("/auto-lock/options", response_model=list[AutoLockOption])
async def list_auto_lock_options():
    return [AutoLockOption(label=label, seconds=seconds) for label, seconds in AUTO_LOCK_OPTIONS.items()]
