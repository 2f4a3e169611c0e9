"""
Per-device session state machine and its inactivity timer.
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from refurb.models import SessionToken
from refurb.services import auth_service, session_service
from refurb.services.audit_service import list_audit_events
from refurb.services.session_lifecycle import (
    InactivityTimer,
    SessionLifecycleManager,
    STATE_LOADING,
    STATE_LOCKED,
    STATE_UNAUTHENTICATED,
    STATE_UNLOCKED,
)
from refurb.time_utils import utcnow


@pytest.fixture
def manager(db_session, timer_factory):
    mgr = SessionLifecycleManager(timer_factory=timer_factory)
    yield mgr
    mgr.close()


@pytest.fixture
def logged_in(manager, user_a):
    result = manager.login(user_a.email, "1234")
    assert result.success, result.error
    return manager


class TestInactivityTimer:
    def test_reset_replaces_pending_timer(self, timer_factory):
        fired = []
        timer = InactivityTimer(1800, lambda: fired.append(True), timer_factory)

        timer.reset()
        timer.reset()

        assert len(timer_factory.timers) == 2
        assert timer_factory.timers[0].cancelled
        assert timer_factory.live == [timer_factory.last]
        assert timer_factory.last.interval == 1800

    def test_cancelled_timer_does_not_fire(self, timer_factory):
        fired = []
        timer = InactivityTimer(1800, lambda: fired.append(True), timer_factory)

        timer.reset()
        stale = timer_factory.last
        timer.reset()
        stale.fire()

        assert fired == []
        timer_factory.last.fire()
        assert fired == [True]
        assert not timer.is_pending


class TestLogin:
    def test_starts_in_loading(self, manager):
        assert manager.state == STATE_LOADING

    def test_successful_login(self, logged_in, user_a, timer_factory):
        assert logged_in.state == STATE_UNLOCKED
        assert logged_in.user_id == user_a.id
        assert logged_in.email == user_a.email
        assert session_service.validate_session(logged_in.token) is not None
        assert len(timer_factory.live) == 1
        assert timer_factory.last.interval == session_service.INACTIVITY_TIMEOUT.total_seconds()
        assert [e.action for e in list_audit_events(user_a.id)] == ["login"]

    def test_login_records_last_activity(self, logged_in, user_a, db_session):
        db_session.refresh(user_a)
        assert user_a.last_activity is not None

    def test_wrong_pin(self, manager, user_a, timer_factory):
        result = manager.login(user_a.email, "9999")

        assert not result.success
        assert result.code == "invalid_credential"
        assert manager.state == STATE_UNAUTHENTICATED
        assert timer_factory.timers == []
        assert manager.token is None

    def test_unknown_email(self, manager, user_a):
        result = manager.login("nobody@atelier.test", "1234")
        assert result.code == "not_found"
        assert result.error
        assert manager.state == STATE_UNAUTHENTICATED

    def test_second_login_revokes_previous_token(self, logged_in, user_a):
        first = logged_in.token
        assert logged_in.login(user_a.email, "1234").success
        assert logged_in.token != first
        assert session_service.validate_session(first) is None

    def test_logout_during_login_discards_result(self, manager, user_a, db_session, monkeypatch):
        real_authenticate = auth_service.authenticate

        def authenticate_then_logout(email, pin):
            user = real_authenticate(email, pin)
            manager.logout()
            return user

        monkeypatch.setattr(auth_service, "authenticate", authenticate_then_logout)

        result = manager.login(user_a.email, "1234")

        assert not result.success
        assert result.code == "not_authenticated"
        assert manager.state == STATE_UNAUTHENTICATED
        assert manager.token is None
        tokens = db_session.query(SessionToken).filter_by(user_id=user_a.id).all()
        assert tokens and all(t.is_revoked for t in tokens)


class TestLock:
    def test_lock_twice_is_idempotent(self, logged_in, user_a, timer_factory):
        logged_in.lock()
        logged_in.lock()

        assert logged_in.state == STATE_LOCKED
        assert timer_factory.live == []
        assert [e.action for e in list_audit_events(user_a.id)] == ["login"]

    def test_lock_when_unauthenticated_is_noop(self, manager):
        manager.restore(None)
        manager.lock()
        assert manager.state == STATE_UNAUTHENTICATED

    def test_activity_rejected_while_locked(self, logged_in):
        logged_in.lock()
        result = logged_in.update_last_activity()
        assert result.code == "session_locked"
        assert logged_in.state == STATE_LOCKED


class TestInactivity:
    def test_consecutive_activity_leaves_one_pending_timer(self, logged_in, timer_factory):
        for _ in range(5):
            assert logged_in.update_last_activity().success

        assert len(timer_factory.live) == 1
        assert timer_factory.live[0] is timer_factory.last
        assert len(timer_factory.timers) == 6

    def test_idle_threshold_locks_once_then_unlock_restarts_timer(self, logged_in, timer_factory):
        transitions = []
        logged_in.add_listener(transitions.append)

        idle_timer = timer_factory.last
        idle_timer.fire()
        idle_timer.fire()

        assert logged_in.state == STATE_LOCKED
        assert transitions == [STATE_LOCKED]
        assert timer_factory.live == []
        assert not logged_in.has_pending_timer

        result = logged_in.unlock("1234")
        assert result.success
        assert logged_in.state == STATE_UNLOCKED
        assert transitions == [STATE_LOCKED, STATE_UNLOCKED]
        assert len(timer_factory.live) == 1
        assert timer_factory.last is not idle_timer

    def test_activity_timer_survives_store_failure(self, logged_in, timer_factory, monkeypatch):
        def broken(user_id, at=None):
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(auth_service, "record_activity", broken)

        result = logged_in.update_last_activity()
        assert result.code == "transient_store_error"
        assert len(timer_factory.live) == 1


class TestUnlock:
    def test_wrong_pin_keeps_lock(self, logged_in):
        logged_in.lock()
        result = logged_in.unlock("0000")
        assert result.code == "invalid_credential"
        assert logged_in.state == STATE_LOCKED

    def test_unlock_without_session(self, manager):
        manager.restore(None)
        assert manager.unlock("1234").code == "not_authenticated"

    def test_unlock_clears_server_lock(self, logged_in):
        session_service.lock_session(logged_in.token)
        logged_in.lock()

        assert logged_in.unlock("1234").success
        assert not session_service.validate_session(logged_in.token).is_locked


class TestLogout:
    def test_logout_from_locked(self, logged_in, user_a, timer_factory):
        token = logged_in.token
        logged_in.lock()

        result = logged_in.logout()

        assert result.success
        assert logged_in.state == STATE_UNAUTHENTICATED
        assert logged_in.user_id is None
        assert timer_factory.live == []
        assert session_service.validate_session(token) is None
        assert sorted(e.action for e in list_audit_events(user_a.id)) == ["login", "logout"]

    def test_activity_after_logout(self, logged_in):
        logged_in.logout()
        assert logged_in.update_last_activity().code == "not_authenticated"


class TestRestore:
    def test_no_token(self, manager):
        assert manager.restore(None).success
        assert manager.state == STATE_UNAUTHENTICATED

    def test_valid_token(self, manager, user_a, timer_factory):
        _session, token = session_service.create_session(user_a.id)
        assert manager.restore(token).success
        assert manager.state == STATE_UNLOCKED
        assert manager.user_id == user_a.id
        assert len(timer_factory.live) == 1

    def test_idle_token_restores_locked(self, manager, user_a, db_session, timer_factory):
        session, token = session_service.create_session(user_a.id)
        session.last_used_at = utcnow() - session_service.INACTIVITY_TIMEOUT - timedelta(minutes=1)
        db_session.commit()

        manager.restore(token)
        assert manager.state == STATE_LOCKED
        assert timer_factory.live == []

    def test_revoked_token(self, manager, user_a):
        _session, token = session_service.create_session(user_a.id)
        session_service.revoke_session(token)
        manager.restore(token)
        assert manager.state == STATE_UNAUTHENTICATED


class TestListeners:
    def test_detach(self, manager, user_a):
        seen = []
        detach = manager.add_listener(seen.append)
        detach()
        manager.login(user_a.email, "1234")
        assert seen == []

    def test_failing_listener_does_not_break_transition(self, manager, user_a):
        def boom(state):
            raise RuntimeError("listener failed")

        manager.add_listener(boom)
        assert manager.login(user_a.email, "1234").success
        assert manager.state == STATE_UNLOCKED

    def test_close_cancels_timer_and_listeners(self, logged_in, timer_factory):
        seen = []
        logged_in.add_listener(seen.append)
        logged_in.close()

        assert timer_factory.live == []
        logged_in.lock()
        assert seen == []
