"""PIN hashing and keypad entry.

PINs are hashed with Argon2id. Profiles created by older clients hold an
unsalted SHA-256 hex digest; those still verify.
"""

import hashlib
import hmac
import re
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from ..errors import InvalidCredential

PIN_LENGTH = 6

_PIN_RE = re.compile(rf"^\d{{{PIN_LENGTH}}}$")
_LEGACY_HASH_RE = re.compile(r"^[0-9a-f]{64}$")

_hasher = PasswordHasher()


def validate_pin(pin: str) -> str:
    """Return ``pin`` if it is exactly six digits, else raise ValueError."""
    if not isinstance(pin, str) or not _PIN_RE.match(pin):
        raise ValueError(f"PIN must be exactly {PIN_LENGTH} digits")
    return pin


def hash_pin(pin: str) -> str:
    """Hash a six-digit PIN with Argon2id."""
    return _hasher.hash(validate_pin(pin))


def verify_pin_hash(pin_hash: Optional[str], pin: str) -> bool:
    """Check ``pin`` against a stored hash. A missing hash never matches."""
    if not pin_hash or not _PIN_RE.match(pin or ""):
        return False

    if _LEGACY_HASH_RE.match(pin_hash):
        digest = hashlib.sha256(pin.encode("utf-8")).hexdigest()
        return hmac.compare_digest(digest, pin_hash)

    try:
        return _hasher.verify(pin_hash, pin)
    except VerifyMismatchError:
        return False
    except (VerificationError, InvalidHashError):
        # Corrupt or foreign hash format
        return False


def needs_rehash(pin_hash: str) -> bool:
    """Whether a stored hash should be replaced by a fresh Argon2id hash."""
    if _LEGACY_HASH_RE.match(pin_hash):
        return True
    try:
        return _hasher.check_needs_rehash(pin_hash)
    except InvalidHashError:
        return True


class PinBuffer:
    """Digits entered on the keypad so far.

    ``press`` returns the complete PIN when the sixth digit lands, so the
    caller can submit it right away.
    """

    def __init__(self, length: int = PIN_LENGTH):
        self.length = length
        self._digits: list[str] = []

    def __len__(self) -> int:
        return len(self._digits)

    @property
    def is_complete(self) -> bool:
        return len(self._digits) == self.length

    def press(self, digit: str) -> Optional[str]:
        if len(digit) != 1 or not digit.isdigit():
            raise ValueError(f"Not a keypad digit: {digit!r}")
        if self.is_complete:
            return None
        self._digits.append(digit)
        if self.is_complete:
            return "".join(self._digits)
        return None

    def delete(self) -> None:
        if self._digits:
            self._digits.pop()

    def clear(self) -> None:
        self._digits.clear()


def confirm_pin(pin: str, confirmation: str) -> str:
    """Create/confirm step of PIN setup. Returns the validated PIN."""
    validate_pin(pin)
    if pin != confirmation:
        raise InvalidCredential("PIN confirmation mismatch", notice="PINs don't match. Please try again")
    return pin
