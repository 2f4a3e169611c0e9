"""
Authorization tests for the refurb API.

Verifies:
- Unauthenticated requests return 401
- Locked sessions return 423 except on unlock/lock/logout/session
- Login, unlock and logout over HTTP
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from refurb.services import auth_service, session_service
from refurb.services.audit_service import list_audit_events
from refurb.time_utils import utcnow


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/phones"),
            ("POST", "/api/phones"),
            ("GET", "/api/repairs"),
            ("POST", "/api/repairs/1/parts"),
            ("DELETE", "/api/repairs/1/parts/1"),
            ("GET", "/api/stock"),
            ("GET", "/api/materiel"),
            ("GET", "/api/purchase-accounts"),
            ("GET", "/api/analytics"),
            ("GET", "/api/auth/session"),
            ("POST", "/api/auth/unlock"),
            ("POST", "/api/auth/logout"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_unknown_token(self, client, db_session):
        resp = client.get("/api/phones", headers={"Authorization": "Bearer " + "0" * 64})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid or expired token"

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/system/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"


# =============================================================================
# LOGIN / SIGNUP
# =============================================================================


class TestLogin:
    def test_signup_then_login(self, client, db_session):
        resp = client.post("/api/auth/signup", json={"email": "Nora@Atelier.test", "pin": "8642"})
        assert resp.status_code == 201
        assert resp.get_json()["user"]["email"] == "nora@atelier.test"

        resp = client.post("/api/auth/login", json={"email": "nora@atelier.test", "pin": "8642"})
        assert resp.status_code == 200
        body = resp.get_json()
        assert len(body["token"]) == 64
        assert body["session"]["is_locked"] is False

    def test_signup_rejects_bad_pin(self, client, db_session):
        resp = client.post("/api/auth/signup", json={"email": "nora@atelier.test", "pin": "12ab"})
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

    def test_wrong_pin(self, client, user_a):
        resp = client.post("/api/auth/login", json={"email": user_a.email, "pin": "0000"})
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "invalid_credential"

    def test_unknown_email(self, client, user_a):
        resp = client.post("/api/auth/login", json={"email": "ghost@atelier.test", "pin": "1234"})
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "not_found"

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={"email": "x@y.z"}).status_code == 400

    def test_login_is_audited(self, client, user_a):
        client.post("/api/auth/login", json={"email": user_a.email, "pin": "1234"})
        assert [e.action for e in list_audit_events(user_a.id)] == ["login"]

    def test_login_survives_activity_store_failure(self, client, user_a, monkeypatch):
        def broken(user_id, at=None):
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(auth_service, "record_activity", broken)

        resp = client.post("/api/auth/login", json={"email": user_a.email, "pin": "1234"})
        assert resp.status_code == 200
        headers = {"Authorization": f"Bearer {resp.get_json()['token']}"}
        assert client.get("/api/phones", headers=headers).status_code == 200
        assert client.post("/api/auth/activity", headers=headers).get_json() == {"ok": True}


# =============================================================================
# LOCKED SESSIONS: 423
# =============================================================================


class TestLockedSession:
    def test_manual_lock_blocks_data_routes(self, client, auth_headers):
        assert client.post("/api/auth/lock", headers=auth_headers).status_code == 200

        resp = client.get("/api/phones", headers=auth_headers)
        assert resp.status_code == 423
        assert resp.get_json() == {"error": "Session is locked", "code": "session_locked", "locked": True}

        resp = client.get("/api/auth/session", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.get_json()["locked"] is True

    def test_unlock_requires_correct_pin(self, client, auth_headers):
        client.post("/api/auth/lock", headers=auth_headers)

        resp = client.post("/api/auth/unlock", json={"pin": "9999"}, headers=auth_headers)
        assert resp.status_code == 401
        assert client.get("/api/phones", headers=auth_headers).status_code == 423

        resp = client.post("/api/auth/unlock", json={"pin": "1234"}, headers=auth_headers)
        assert resp.status_code == 200
        assert client.get("/api/phones", headers=auth_headers).status_code == 200

    def test_idle_session_is_locked(self, client, db_session, user_a):
        session, token = session_service.create_session(user_a.id)
        session.last_used_at = utcnow() - session_service.INACTIVITY_TIMEOUT - timedelta(minutes=5)
        db_session.commit()
        headers = {"Authorization": f"Bearer {token}"}

        assert client.get("/api/repairs", headers=headers).status_code == 423
        assert client.post("/api/auth/activity", headers=headers).status_code == 423

    def test_activity_keeps_session_open(self, client, auth_headers):
        assert client.post("/api/auth/activity", headers=auth_headers).get_json() == {"ok": True}
        assert client.get("/api/auth/session", headers=auth_headers).get_json()["locked"] is False

    def test_logout_from_locked_session(self, client, auth_headers):
        client.post("/api/auth/lock", headers=auth_headers)

        assert client.post("/api/auth/logout", headers=auth_headers).status_code == 200
        assert client.get("/api/auth/session", headers=auth_headers).status_code == 401


class TestChangePin:
    def test_change_pin_over_http(self, client, auth_headers, user_a):
        resp = client.post(
            "/api/auth/pin",
            json={"current_pin": "1234", "new_pin": "4321", "confirm_pin": "4321"},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert client.post("/api/auth/login", json={"email": user_a.email, "pin": "4321"}).status_code == 200

    def test_wrong_current_pin(self, client, auth_headers):
        resp = client.post(
            "/api/auth/pin",
            json={"current_pin": "0000", "new_pin": "4321", "confirm_pin": "4321"},
            headers=auth_headers,
        )
        assert resp.status_code == 401
