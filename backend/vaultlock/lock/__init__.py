"""App lock: lock state, idle detection, credential gate and route guards."""

from .models import LockMethod, LockPreference, LockState, Profile, AuthUser, UnlockResult
from .state import LockStateMachine, SessionUnlockedFlag
from .idle import ActivitySource, IdleMonitor, IdleClock
from .gate import AttemptPolicy, LockGate
from .guard import AppLockGate, RouteGuard, IdleLockGuard, GateDecision, GateView
from .lifecycle import AppLifecycle, AppState
from .preferences import LockPreferenceStore

__all__ = [
    'LockMethod',
    'LockPreference',
    'LockState',
    'Profile',
    'AuthUser',
    'UnlockResult',
    'LockStateMachine',
    'SessionUnlockedFlag',
    'ActivitySource',
    'IdleMonitor',
    'IdleClock',
    'AttemptPolicy',
    'LockGate',
    'AppLockGate',
    'RouteGuard',
    'IdleLockGuard',
    'GateDecision',
    'GateView',
    'AppLifecycle',
    'AppState',
    'LockPreferenceStore',
]
