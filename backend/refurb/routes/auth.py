# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/refurb/routes/auth.py
"""
Authentication API routes

- Email + PIN sign-up and login, each issuing a bearer session token
- A session idle for 30 minutes is locked; unlock takes the PIN again
- Locked sessions may only call /unlock, /lock, /logout and /session
"""

from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy.exc import SQLAlchemyError

from ..services import auth_service
from ..services import session_service
from ..services.audit_service import append_audit_event
from ..services.errors import InvalidCredentialError, ServiceError
from ..decorators import require_auth, error_response
from ..extensions import db


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _client_info() -> dict:
    return {
        "user_agent": request.headers.get("User-Agent"),
        "ip_address": request.remote_addr,
    }


def _record_activity(user_id: int) -> None:
    """last_activity is best-effort once the session exists."""
    try:
        auth_service.record_activity(user_id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Could not persist last_activity for user_id=%s", user_id, exc_info=True)


@auth_bp.post("/signup")
def signup_route():
    """Create an account and log it in."""
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            email=data.get("email"),
            pin=data.get("pin"),
            display_name=data.get("display_name") or data.get("name") or "",
        )
        session, token = session_service.create_session(user_id=user.id, **_client_info())
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to sign up user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
    }), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email + PIN and create a session token.

    Unknown email is 404 (the UI offers sign-up), wrong PIN is 401.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    pin = data.get("pin")

    if not email or not pin:
        return jsonify({"error": "email and pin required"}), 400

    try:
        user = auth_service.authenticate(email, pin)
        session, token = session_service.create_session(user_id=user.id, **_client_info())
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500

    append_audit_event(user_id=user.id, action="login", **_client_info())
    _record_activity(user.id)

    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    }), 200


@auth_bp.post("/unlock")
@require_auth(allow_locked=True)
def unlock_route():
    data = request.get_json(silent=True) or {}
    try:
        auth_service.check_pin(g.current_user, data.get("pin"))
    except InvalidCredentialError as e:
        return error_response(e)

    session_service.unlock_session(g.token)
    _record_activity(g.user_id)
    return jsonify({"locked": False, "message": "Session unlocked"}), 200


@auth_bp.post("/lock")
@require_auth(allow_locked=True)
def lock_route():
    session_service.lock_session(g.token)
    return jsonify({"locked": True}), 200


@auth_bp.post("/logout")
@require_auth(allow_locked=True)
def logout_route():
    """Revoke the current session token."""
    append_audit_event(user_id=g.user_id, action="logout", **_client_info())
    session_service.revoke_session(g.token, reason="User logout")
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.post("/activity")
@require_auth
def activity_route():
    """Record user interaction; restarts the idle countdown server-side."""
    session_service.touch_session(g.token)
    _record_activity(g.user_id)
    return jsonify({"ok": True}), 200


@auth_bp.get("/session")
@require_auth(allow_locked=True)
def session_route():
    context = g.session_context
    return jsonify({
        "user": context.user.to_dict(),
        "session": context.session.to_dict(),
        "locked": context.is_locked,
    }), 200


@auth_bp.post("/pin")
@require_auth
def change_pin_route():
    data = request.get_json(silent=True) or {}
    try:
        auth_service.change_pin(
            g.user_id,
            current_pin=data.get("current_pin"),
            new_pin=data.get("new_pin"),
            confirm_pin=data.get("confirm_pin"),
        )
    except ServiceError as e:
        return error_response(e)
    return jsonify({"message": "PIN updated"}), 200
