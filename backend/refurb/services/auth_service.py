# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Email + PIN authentication.

- The bcrypt PIN hash on the user is the only credential; session tokens
  are issued separately by session_service
- Unknown email (NotFoundError) and wrong PIN (InvalidCredentialError) are
  distinct: the UI offers sign-up for the first and a retry for the second
"""

import re

from ..extensions import db
from ..models import User
from refurb.time_utils import utcnow
from .errors import InvalidCredentialError, NotFoundError, ValidationError
from .pin_service import hash_pin, validate_pin_format, verify_pin
from .audit_service import append_audit_event


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email) -> str:
    if not isinstance(email, str):
        raise ValidationError("email is required")
    normalized = email.strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise ValidationError("email is not valid")
    return normalized


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_user_by_email(email: str) -> User:
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def create_user(email: str, pin: str, display_name: str = "") -> User:
    """
    Create a user with a hashed PIN.

    Raises ValidationError on a malformed email/PIN or a duplicate email.
    """
    normalized = normalize_email(email)
    if not validate_pin_format(pin):
        raise ValidationError("PIN must contain 4 to 6 digits")

    existing = db.session.query(User).filter_by(email=normalized).first()
    if existing:
        raise ValidationError("A user with this email already exists")

    user = User(
        email=normalized,
        pin_hash=hash_pin(pin),
        display_name=(display_name or "").strip() or normalized.split("@")[0],
    )
    db.session.add(user)
    db.session.commit()

    append_audit_event(user_id=user.id, action="signup", metadata={"email": normalized})
    return user


def authenticate(email: str, pin: str) -> User:
    """
    Look up the user by email and check the PIN.

    Raises NotFoundError if no user has this email and InvalidCredentialError
    if the PIN is malformed or does not match.
    """
    user = get_user_by_email(email)
    check_pin(user, pin)
    return user


def check_pin(user: User, pin: str) -> None:
    if not validate_pin_format(pin):
        raise InvalidCredentialError("Invalid PIN")
    if not verify_pin(pin, user.pin_hash):
        raise InvalidCredentialError("Invalid PIN")


def change_pin(user_id: int, current_pin: str, new_pin: str, confirm_pin: str) -> User:
    """
    Replace a user's PIN after re-checking the current one.

    Raises InvalidCredentialError if current_pin is wrong and ValidationError
    if the new PIN is malformed or the confirmation does not match.
    """
    user = get_user(user_id)
    check_pin(user, current_pin)

    if not validate_pin_format(new_pin):
        raise ValidationError("PIN must contain 4 to 6 digits")
    if new_pin != confirm_pin:
        raise ValidationError("PINs do not match")

    user.pin_hash = hash_pin(new_pin)
    db.session.commit()

    append_audit_event(user_id=user.id, action="pin_changed")
    return user


def record_activity(user_id: int, at=None) -> None:
    """Persist users.last_activity."""
    user = get_user(user_id)
    user.last_activity = at or utcnow()
    db.session.commit()
