# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Backend sessions issued after a PIN login.

- The client holds a 64-char hex bearer token; only its SHA-256 is stored
- A session dies SESSION_ABSOLUTE_TIMEOUT after creation, or on logout
- A session idle for INACTIVITY_TIMEOUT is locked, not revoked; the PIN
  unlocks it and the idle clock restarts
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from ..extensions import db
from ..models import SessionToken, User
from refurb.time_utils import utcnow
from .errors import NotFoundError


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
INACTIVITY_TIMEOUT = timedelta(minutes=30)

# Revoked or expired rows are kept this long for the audit trail
SESSION_RETENTION = timedelta(days=30)


@dataclass
class SessionContext:
    """What require_auth needs about the caller: who, which token row, locked or not."""
    user: User
    session: SessionToken

    @property
    def is_locked(self) -> bool:
        return self.session.is_locked


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """Lookup key for a bearer token. Tokens are random, so an unsalted digest is enough."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find_active(token: str) -> SessionToken | None:
    if not token:
        return None
    return (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )


def create_session(
    user_id: int,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> tuple[SessionToken, str]:
    """
    Open a session for a user who just proved their PIN.

    Returns (row, plaintext token). The plaintext leaves this function once
    and is never stored. Unknown user -> NotFoundError.
    """
    if db.session.get(User, user_id) is None:
        raise NotFoundError("User not found")

    token = generate_token()
    now = now or utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str, now: datetime | None = None) -> SessionContext | None:
    """
    Resolve a bearer token to its SessionContext.

    None if the token is unknown, revoked or past its absolute
    lifetime. A session idle longer than INACTIVITY_TIMEOUT is locked here
    (and stays valid); callers decide which endpoints a locked session may use.

    Does not refresh last_used_at: only touch_session counts as activity.
    """
    now = now or utcnow()
    session = _find_active(token)
    if session is None or session.expires_at < now or session.user is None:
        return None

    if session.locked_at is None and now - session.last_used_at > INACTIVITY_TIMEOUT:
        session.locked_at = session.last_used_at + INACTIVITY_TIMEOUT
        db.session.commit()

    return SessionContext(user=session.user, session=session)


def touch_session(token: str, now: datetime | None = None) -> bool:
    """Record activity on an unlocked session. Returns False if unknown or locked."""
    session = _find_active(token)
    if not session or session.locked_at is not None:
        return False
    session.last_used_at = now or utcnow()
    db.session.commit()
    return True


def lock_session(token: str) -> bool:
    """Lock a session. Idempotent: locking a locked session is a no-op."""
    session = _find_active(token)
    if not session:
        return False
    if session.locked_at is None:
        session.locked_at = utcnow()
        db.session.commit()
    return True


def unlock_session(token: str) -> bool:
    """Clear the lock and restart the idle clock. PIN check is the caller's job."""
    session = _find_active(token)
    if not session:
        return False
    session.locked_at = None
    session.last_used_at = utcnow()
    db.session.commit()
    return True


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """End a session for good. False if the token was unknown or already revoked."""
    session = _find_active(token)
    if session is None:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()
    return True


def cleanup_expired_sessions(now: datetime | None = None) -> int:
    """Delete dead sessions (expired or revoked) created before the retention window. Returns the count."""
    now = now or utcnow()
    deleted = (
        db.session.query(SessionToken)
        .filter(
            db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
            SessionToken.created_at < now - SESSION_RETENTION,
        )
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
