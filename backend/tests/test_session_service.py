"""
Backend session tokens: issuance, idle lock, unlock, revocation.
"""

from datetime import timedelta

from refurb.models import SessionToken
from refurb.services import session_service
from refurb.time_utils import utcnow


def test_token_is_stored_hashed(db_session, user_a):
    session, token = session_service.create_session(user_a.id, user_agent="pytest", ip_address="127.0.0.1")

    assert len(token) == 64
    assert session.token_hash == session_service.hash_token(token)
    assert db_session.query(SessionToken).filter_by(token_hash=token).first() is None
    assert session.expires_at - session.created_at == session_service.SESSION_ABSOLUTE_TIMEOUT


def test_validate_returns_context(db_session, user_a):
    _session, token = session_service.create_session(user_a.id)

    context = session_service.validate_session(token)
    assert context is not None
    assert context.user.id == user_a.id
    assert context.is_locked is False


def test_unknown_token(db_session, user_a):
    assert session_service.validate_session("f" * 64) is None
    assert session_service.validate_session("") is None


def test_expired_session_is_invalid(db_session, user_a):
    session, token = session_service.create_session(user_a.id)
    later = session.expires_at + timedelta(seconds=1)
    assert session_service.validate_session(token, now=later) is None


def test_idle_session_locks_once(db_session, user_a):
    session, token = session_service.create_session(user_a.id)
    last_used = session.last_used_at
    idle = last_used + session_service.INACTIVITY_TIMEOUT + timedelta(minutes=1)

    context = session_service.validate_session(token, now=idle)
    assert context.is_locked
    assert context.session.locked_at == last_used + session_service.INACTIVITY_TIMEOUT

    # A second check does not move the lock time
    again = session_service.validate_session(token, now=idle + timedelta(minutes=5))
    assert again.session.locked_at == last_used + session_service.INACTIVITY_TIMEOUT


def test_recent_activity_keeps_session_unlocked(db_session, user_a):
    session, token = session_service.create_session(user_a.id)
    almost = session.last_used_at + session_service.INACTIVITY_TIMEOUT - timedelta(seconds=1)
    assert not session_service.validate_session(token, now=almost).is_locked


def test_touch_ignored_while_locked(db_session, user_a):
    session, token = session_service.create_session(user_a.id)
    assert session_service.lock_session(token)
    before = session.last_used_at

    assert session_service.touch_session(token, now=utcnow() + timedelta(minutes=1)) is False
    db_session.refresh(session)
    assert session.last_used_at == before


def test_lock_is_idempotent(db_session, user_a):
    session, token = session_service.create_session(user_a.id)
    session_service.lock_session(token)
    first = session.locked_at
    session_service.lock_session(token)
    db_session.refresh(session)
    assert session.locked_at == first


def test_unlock_clears_lock(db_session, user_a):
    _session, token = session_service.create_session(user_a.id)
    session_service.lock_session(token)
    assert session_service.validate_session(token).is_locked

    assert session_service.unlock_session(token)
    assert not session_service.validate_session(token).is_locked


def test_revoke(db_session, user_a):
    _session, token = session_service.create_session(user_a.id)
    assert session_service.revoke_session(token)
    assert session_service.validate_session(token) is None
    assert session_service.revoke_session(token) is False


def test_cleanup_deletes_old_revoked_sessions(db_session, user_a):
    old, old_token = session_service.create_session(user_a.id)
    _fresh, fresh_token = session_service.create_session(user_a.id)
    session_service.revoke_session(old_token)
    old.created_at = utcnow() - timedelta(days=31)
    db_session.commit()

    assert session_service.cleanup_expired_sessions() == 1
    assert session_service.validate_session(fresh_token) is not None
