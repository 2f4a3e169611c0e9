# Overview: PIN hashing, verification and format validation.

"""
Credential verifier for 4-6 digit PINs.

SECURITY NOTES:
- PINs hashed with bcrypt (cost factor 10, random salt per hash)
- Format is checked before hashing; a malformed PIN never reaches bcrypt
- Verification is timing-safe (bcrypt.checkpw) and never raises
"""

import re

import bcrypt

from .errors import ValidationError


PIN_HASH_ROUNDS = 10

# ASCII digits only: \d would also accept other Unicode digits
_PIN_RE = re.compile(r"[0-9]{4,6}")


def validate_pin_format(pin) -> bool:
    """True if pin is a string of 4 to 6 ASCII digits."""
    return isinstance(pin, str) and _PIN_RE.fullmatch(pin) is not None


def hash_pin(pin: str, rounds: int = PIN_HASH_ROUNDS) -> str:
    """
    Hash a PIN with bcrypt.

    Raises ValidationError if the PIN is not 4-6 digits.
    """
    if not validate_pin_format(pin):
        raise ValidationError("PIN must contain 4 to 6 digits")
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(pin.encode("utf-8"), salt)
    return hashed.decode("utf-8")  # Store as string in database


def verify_pin(pin, pin_hash) -> bool:
    """
    Verify PIN against bcrypt hash.

    Returns False for malformed input or a hash bcrypt cannot read.
    """
    if not isinstance(pin, str) or not isinstance(pin_hash, str) or not pin_hash:
        return False
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        # Invalid salt / not a bcrypt hash
        return False
