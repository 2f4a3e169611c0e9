# Overview: Per-device session state machine with inactivity auto-lock.

"""
Session lifecycle for one client/device.

States:
    loading -> unauthenticated | unlocked | locked

- login(email, pin)      unauthenticated/any -> unlocked, starts the idle timer
- unlock(pin)            locked/unlocked -> unlocked, restarts the idle timer
- lock()                 unlocked -> locked (idempotent, no audit entry)
- logout()               any -> unauthenticated, cancels the idle timer
- update_last_activity() unlocked only; persists last_activity and replaces
                         the pending idle timer (debounce-to-last)

Every operation returns a ServiceResult; nothing raises to the caller.
Store calls run in the caller's app context. The idle timer only calls
lock(), which touches in-memory state only, so it never needs one.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from refurb.time_utils import utcnow
from . import auth_service, session_service
from .audit_service import append_audit_event
from .errors import (
    NotAuthenticatedError,
    ServiceError,
    ServiceResult,
    SessionLockedError,
    TransientStoreError,
)

logger = logging.getLogger(__name__)


STATE_LOADING = "loading"
STATE_UNAUTHENTICATED = "unauthenticated"
STATE_UNLOCKED = "authenticated-unlocked"
STATE_LOCKED = "authenticated-locked"


def _daemon_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


class InactivityTimer:
    """
    A single cancel-and-replace timer.

    At most one timer is pending. reset() cancels the pending one before
    scheduling the next; a cancelled timer that already started running is
    ignored through the generation check.
    """

    def __init__(self, timeout_seconds: float, on_fire: Callable[[], None], timer_factory=None):
        self._timeout = timeout_seconds
        self._on_fire = on_fire
        self._factory = timer_factory or _daemon_timer
        self._lock = threading.Lock()
        self._pending = None
        self._generation = 0

    @property
    def is_pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def reset(self) -> None:
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            self._generation += 1
            generation = self._generation
            timer = self._factory(self._timeout, lambda: self._fire(generation))
            self._pending = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
            self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._pending is None:
                return
            self._pending = None
        self._on_fire()


class SessionLifecycleManager:
    """Owns current-user state, the backend token and the inactivity timer."""

    def __init__(
        self,
        *,
        inactivity_timeout: timedelta = session_service.INACTIVITY_TIMEOUT,
        timer_factory=None,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ):
        self._lock = threading.RLock()
        self._state = STATE_LOADING
        self._user_id: int | None = None
        self._email: str | None = None
        self._token: str | None = None
        # Bumped on logout so in-flight login/unlock results are discarded
        self._generation = 0
        self._listeners: list[Callable[[str], None]] = []
        self._user_agent = user_agent
        self._ip_address = ip_address
        self._timer = InactivityTimer(inactivity_timeout.total_seconds(), self.lock, timer_factory)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> str:
        return self._state

    @property
    def user_id(self) -> int | None:
        return self._user_id

    @property
    def email(self) -> str | None:
        return self._email

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._state in (STATE_UNLOCKED, STATE_LOCKED)

    @property
    def is_locked(self) -> bool:
        return self._state == STATE_LOCKED

    @property
    def has_pending_timer(self) -> bool:
        return self._timer.is_pending

    def add_listener(self, callback: Callable[[str], None]) -> Callable[[], None]:
        """Register a state-change callback. Returns a function that detaches it."""
        with self._lock:
            self._listeners.append(callback)

        def detach() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return detach

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def restore(self, token: str | None) -> ServiceResult:
        """Resolve the loading state from a previously issued backend token."""
        if not token:
            self._set_state(STATE_UNAUTHENTICATED)
            return ServiceResult.ok({"state": self._state})

        try:
            context = session_service.validate_session(token)
        except SQLAlchemyError:
            db.session.rollback()
            logger.warning("Session restore failed", exc_info=True)
            self._set_state(STATE_UNAUTHENTICATED)
            return ServiceResult.fail(TransientStoreError("Could not reach the data store"))

        if context is None:
            self._set_state(STATE_UNAUTHENTICATED)
            return ServiceResult.ok({"state": self._state})

        with self._lock:
            self._user_id = context.user.id
            self._email = context.user.email
            self._token = token
        if context.is_locked:
            self._set_state(STATE_LOCKED)
        else:
            self._set_state(STATE_UNLOCKED)
            self.update_last_activity()
        return ServiceResult.ok({"state": self._state, "user_id": self._user_id})

    def login(self, email: str, pin: str) -> ServiceResult:
        with self._lock:
            generation = self._generation

        try:
            user = auth_service.authenticate(email, pin)
            _session, token = session_service.create_session(
                user.id, user_agent=self._user_agent, ip_address=self._ip_address
            )
        except ServiceError as exc:
            self._settle_loading()
            return ServiceResult.fail(exc)
        except SQLAlchemyError:
            db.session.rollback()
            logger.warning("Login failed on store access", exc_info=True)
            self._settle_loading()
            return ServiceResult.fail(TransientStoreError("Could not reach the data store"))

        with self._lock:
            if generation != self._generation:
                stale = True
            else:
                stale = False
                previous_token = self._token
                self._user_id = user.id
                self._email = user.email
                self._token = token

        if stale:
            self._revoke_quietly(token, "Discarded after logout")
            return ServiceResult.fail(NotAuthenticatedError("Session was cleared during login"))

        if previous_token and previous_token != token:
            self._revoke_quietly(previous_token, "Replaced by new login")

        append_audit_event(
            user_id=user.id,
            action="login",
            ip_address=self._ip_address,
            user_agent=self._user_agent,
        )

        self._set_state(STATE_UNLOCKED)
        self.update_last_activity()
        return ServiceResult.ok({"user": user.to_dict(), "token": token})

    def unlock(self, pin: str) -> ServiceResult:
        with self._lock:
            if self._state not in (STATE_UNLOCKED, STATE_LOCKED) or self._user_id is None:
                return ServiceResult.fail(NotAuthenticatedError("No user session"))
            generation = self._generation
            user_id = self._user_id
            token = self._token

        try:
            user = auth_service.get_user(user_id)
            auth_service.check_pin(user, pin)
        except ServiceError as exc:
            return ServiceResult.fail(exc)
        except SQLAlchemyError:
            db.session.rollback()
            logger.warning("Unlock failed on store access", exc_info=True)
            return ServiceResult.fail(TransientStoreError("Could not reach the data store"))

        with self._lock:
            if generation != self._generation:
                return ServiceResult.fail(NotAuthenticatedError("Session was cleared during unlock"))

        self._set_state(STATE_UNLOCKED)
        if token:
            try:
                session_service.unlock_session(token)
            except SQLAlchemyError:
                db.session.rollback()
                logger.warning("Could not clear backend lock", exc_info=True)
        self.update_last_activity()
        return ServiceResult.ok({"state": self._state})

    def lock(self) -> None:
        """Lock now. Safe from any thread; no-op unless unlocked."""
        with self._lock:
            if self._state != STATE_UNLOCKED:
                return
            self._state = STATE_LOCKED
            self._timer.cancel()
            listeners = list(self._listeners)
        logger.info("Session locked for user_id=%s", self._user_id)
        self._notify(listeners, STATE_LOCKED)

    def logout(self) -> ServiceResult:
        with self._lock:
            user_id = self._user_id
            token = self._token
            self._generation += 1
            self._user_id = None
            self._email = None
            self._token = None
            self._timer.cancel()
        self._set_state(STATE_UNAUTHENTICATED)

        if user_id is not None:
            append_audit_event(
                user_id=user_id,
                action="logout",
                ip_address=self._ip_address,
                user_agent=self._user_agent,
            )
        if token:
            self._revoke_quietly(token, "User logout")
        return ServiceResult.ok({"state": self._state})

    def update_last_activity(self) -> ServiceResult:
        """
        Record user interaction and restart the idle countdown.

        The timer is restarted even if persisting last_activity fails.
        """
        with self._lock:
            if self._state == STATE_LOCKED:
                return ServiceResult.fail(SessionLockedError("Session is locked"))
            if self._state != STATE_UNLOCKED or self._user_id is None:
                return ServiceResult.fail(NotAuthenticatedError("No user session"))
            user_id = self._user_id
            token = self._token
            self._timer.reset()

        now = utcnow()
        try:
            auth_service.record_activity(user_id, at=now)
            if token:
                session_service.touch_session(token, now=now)
        except ServiceError as exc:
            return ServiceResult.fail(exc)
        except SQLAlchemyError:
            db.session.rollback()
            logger.warning("Could not persist last_activity for user_id=%s", user_id, exc_info=True)
            return ServiceResult.fail(TransientStoreError("Could not reach the data store"))
        return ServiceResult.ok({"last_activity": now})

    def close(self) -> None:
        """Cancel the idle timer and detach listeners (client going away)."""
        with self._lock:
            self._timer.cancel()
            self._listeners.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _settle_loading(self) -> None:
        with self._lock:
            if self._state != STATE_LOADING:
                return
        self._set_state(STATE_UNAUTHENTICATED)

    def _set_state(self, state: str) -> None:
        with self._lock:
            if self._state == state:
                return
            self._state = state
            listeners = list(self._listeners)
        self._notify(listeners, state)

    @staticmethod
    def _notify(listeners, state: str) -> None:
        for callback in listeners:
            try:
                callback(state)
            except Exception:
                logger.exception("Session listener failed")

    @staticmethod
    def _revoke_quietly(token: str, reason: str) -> None:
        try:
            session_service.revoke_session(token, reason=reason)
        except SQLAlchemyError:
            db.session.rollback()
            logger.warning("Could not revoke backend session", exc_info=True)
