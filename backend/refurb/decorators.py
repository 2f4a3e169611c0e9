# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service
from .services import errors


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f=None, *, allow_locked: bool = False):
    """
    Require a valid session token and establish the caller's context.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.user_id: Owner id every service call is scoped by
    - g.token: The plaintext bearer token of this request
    - g.session_context: The full SessionContext object

    Returns 401 if the header is missing or the token is unknown, revoked or
    expired. Returns 423 if the session is locked, unless the route was
    declared with allow_locked=True (unlock, lock, logout, session status).
    """
    def decorator(func):
        @wraps(func)
        def decorated_function(*args, **kwargs):
            token = _bearer_token()
            if token is None:
                return jsonify({"error": "Authentication required"}), 401

            context = session_service.validate_session(token)
            if not context:
                return jsonify({"error": "Invalid or expired token"}), 401

            if context.is_locked and not allow_locked:
                return jsonify({"error": "Session is locked", "code": "session_locked", "locked": True}), 423

            g.current_user = context.user
            g.user_id = context.user.id
            g.token = token
            g.session_context = context

            return func(*args, **kwargs)

        return decorated_function

    if f is not None:
        return decorator(f)
    return decorator


def error_response(exc):
    """JSON body and status for a ServiceError."""
    payload = {"error": exc.message, "code": exc.code}
    if exc.details:
        payload["details"] = exc.details
    return jsonify(payload), exc.http_status


_STATUS_BY_CODE = {
    cls.code: cls.http_status
    for cls in (
        errors.NotFoundError,
        errors.InvalidCredentialError,
        errors.InsufficientStockError,
        errors.ValidationError,
        errors.ConflictError,
        errors.NotAuthenticatedError,
        errors.SessionLockedError,
        errors.TransientStoreError,
    )
}


def result_response(result, success_status: int = 200):
    """JSON body and status for a ServiceResult."""
    if result.success:
        return jsonify(result.data), success_status
    status = _STATUS_BY_CODE.get(result.code, errors.ServiceError.http_status)
    return jsonify(result.to_dict()), status
