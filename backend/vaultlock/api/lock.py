"""API endpoints for the lock screen: status, keypad, password, biometric and activity."""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field

from ..errors import LockError
from ..lock.gate import LockGate
from ..lock.guard import GateDecision
from ..lock.lifecycle import AppState
from ..lock.models import LockMethod
from ..lock.service import LockService
from ..logging import get_logger
from .deps import get_service, http_error

logger = get_logger("api.lock")

router = APIRouter(prefix="/lock", tags=["lock"])


# --- Request/Response Models ---

class DigitRequest(BaseModel):
    """One keypad press."""
    digit: str = Field(..., min_length=1, max_length=1, pattern=r"^[0-9]$")


class PinRequest(BaseModel):
    pin: str = Field(..., description="Six-digit PIN")


class PasswordRequest(BaseModel):
    password: str


class ActivityRequest(BaseModel):
    """An input event seen by the shell (e.g. pointer, key, touch, scroll)."""
    event: str


class LifecycleRequest(BaseModel):
    state: AppState


class UnlockResponse(BaseModel):
    success: bool
    method: str
    notice: str
    error: Optional[str] = None
    retry_after: Optional[float] = None


class KeypadResponse(BaseModel):
    """Keypad state after a press; ``result`` is set once the sixth digit submits."""
    pin_length: int
    result: Optional[UnlockResponse] = None


# --- Helpers ---

async def _require_gate(service: LockService, method: LockMethod) -> LockGate:
    view = await service.status()
    gate = view.gate if view.decision is GateDecision.LOCKED else None
    if gate is None:
        raise HTTPException(status_code=409, detail="App is not locked")
    if gate.lock_type is not method:
        raise HTTPException(
            status_code=400,
            detail=f"The app unlocks with {gate.lock_type.value}, not {method.value}",
        )
    return gate


def _idle_status(service: LockService) -> dict:
    monitor = service.idle_clock.monitor
    return {
        "active": service.idle_guard.active,
        "timeout_seconds": monitor.timeout,
        "remaining_seconds": monitor.remaining(),
        "dormant": monitor.is_dormant,
    }


# --- Endpoints ---

@router.get("/status")
async def get_status(background: BackgroundTasks, service: LockService = Depends(get_service)):
    """
    What the shell should render right now.

    ``decision`` is one of loading, sign_in, locked or open. A newly shown
    gate is mounted after the response, which starts the biometric prompt
    for biometric locks.
    """
    view = await service.status()
    if view.gate is not None and not view.gate.mounted:
        background.add_task(view.gate.mount)
    return {
        **view.to_dict(),
        "state": service.state.state.to_dict(),
        "idle": _idle_status(service),
    }


@router.post("/lock")
async def lock_now(service: LockService = Depends(get_service)):
    """Lock immediately with the configured method."""
    try:
        locked = await service.lock_now()
    except LockError as e:
        raise http_error(e)
    if not locked:
        raise HTTPException(status_code=409, detail="No app lock is configured")
    logger.info("Locked on request")
    return service.state.state.to_dict()


@router.post("/pin/digit", response_model=KeypadResponse)
async def press_digit(request: DigitRequest, service: LockService = Depends(get_service)):
    """Add a keypad digit; the sixth digit submits the PIN."""
    gate = await _require_gate(service, LockMethod.PIN)
    result = await gate.press_digit(request.digit)
    return KeypadResponse(
        pin_length=len(gate.pin),
        result=UnlockResponse(**result.to_dict()) if result else None,
    )


@router.delete("/pin/digit", response_model=KeypadResponse)
async def delete_digit(service: LockService = Depends(get_service)):
    """Backspace on the keypad."""
    gate = await _require_gate(service, LockMethod.PIN)
    gate.delete_digit()
    return KeypadResponse(pin_length=len(gate.pin))


@router.post("/pin", response_model=UnlockResponse)
async def submit_pin(request: PinRequest, service: LockService = Depends(get_service)):
    gate = await _require_gate(service, LockMethod.PIN)
    result = await gate.submit_pin(request.pin)
    return UnlockResponse(**result.to_dict())


@router.post("/password", response_model=UnlockResponse)
async def submit_password(request: PasswordRequest, service: LockService = Depends(get_service)):
    gate = await _require_gate(service, LockMethod.PASSWORD)
    result = await gate.submit_password(request.password)
    return UnlockResponse(**result.to_dict())


@router.post("/biometric", response_model=UnlockResponse)
async def attempt_biometric(service: LockService = Depends(get_service)):
    """Prompt for a biometric check (also the retry button)."""
    gate = await _require_gate(service, LockMethod.BIOMETRIC)
    gate.mounted = True
    result = await gate.attempt_biometric()
    return UnlockResponse(**result.to_dict())


@router.post("/activity")
async def post_activity(request: ActivityRequest, service: LockService = Depends(get_service)):
    """Report user input so the idle countdown restarts."""
    accepted = service.activity.post(request.event)
    return {"accepted": accepted, "idle": _idle_status(service)}


@router.post("/lifecycle")
async def post_lifecycle(request: LifecycleRequest, service: LockService = Depends(get_service)):
    """Foreground/background transition of the app shell."""
    changed = service.lifecycle.emit(request.state)
    await service.lifecycle.drain()
    return {"changed": changed, "state": service.lifecycle.state.value}
