"""
User Isolation Tests

Every record belongs to exactly one user. These tests log in as user B and
verify that user A's phones, repairs, parts and stock are invisible:
foreign ids answer 404 (never 403, which would reveal existence) and lists
only contain the caller's rows.
"""

import pytest

from refurb.models import StockPiece
from refurb.services import ledger_service, session_service


@pytest.fixture
def headers_b(user_b):
    _session, token = session_service.create_session(user_b.id)
    return {"Authorization": f"Bearer {token}"}


class TestForeignIdsAreNotFound:
    @pytest.mark.parametrize(
        "method,path_template",
        [
            ("GET", "/api/phones/{phone}"),
            ("PUT", "/api/phones/{phone}"),
            ("DELETE", "/api/phones/{phone}"),
            ("POST", "/api/phones/{phone}/sell"),
            ("POST", "/api/phones/{phone}/duplicate"),
            ("GET", "/api/repairs/{repair}"),
            ("POST", "/api/repairs/{repair}/status"),
            ("DELETE", "/api/repairs/{repair}"),
            ("GET", "/api/repairs/{repair}/parts"),
            ("GET", "/api/stock/{piece}"),
            ("DELETE", "/api/stock/{piece}"),
        ],
    )
    def test_foreign_record(self, client, headers_b, phone_a, repair_a, screen_piece, method, path_template):
        path = path_template.format(phone=phone_a.id, repair=repair_a.id, piece=screen_piece.id)
        resp = getattr(client, method.lower())(path, json={"status": "completed"}, headers=headers_b)
        assert resp.status_code == 404, f"{method} {path} returned {resp.status_code}"

    def test_cannot_consume_foreign_stock(self, client, db_session, headers_b, user_b, repair_a, screen_piece):
        resp = client.post(
            f"/api/repairs/{repair_a.id}/parts",
            json={"stock_piece_id": screen_piece.id, "quantity": 1},
            headers=headers_b,
        )
        assert resp.status_code == 404
        assert db_session.get(StockPiece, screen_piece.id).quantity == 4

    def test_cannot_release_foreign_part(self, client, db_session, headers_b, user_a, repair_a, screen_piece):
        part_id = ledger_service.consume(repair_a.id, screen_piece.id, 2, user_id=user_a.id).data["repair_part"]["id"]

        resp = client.delete(f"/api/repairs/{repair_a.id}/parts/{part_id}", headers=headers_b)
        assert resp.status_code == 404
        assert db_session.get(StockPiece, screen_piece.id).quantity == 2

    def test_cannot_attach_repair_to_foreign_phone(self, client, headers_b, phone_a):
        resp = client.post("/api/repairs", json={"phone_id": phone_a.id, "description": "x"}, headers=headers_b)
        assert resp.status_code == 404


class TestListsAreScoped:
    def test_lists_are_empty_for_other_user(self, client, headers_b, phone_a, repair_a, screen_piece):
        assert client.get("/api/phones", headers=headers_b).get_json()["count"] == 0
        assert client.get("/api/repairs", headers=headers_b).get_json()["count"] == 0
        assert client.get("/api/stock", headers=headers_b).get_json()["count"] == 0
        assert client.get("/api/stock/available", headers=headers_b).get_json()["items"] == []

    def test_analytics_only_counts_own_records(self, client, headers_b, auth_headers, phone_a, screen_piece):
        mine = client.get("/api/analytics?range=all", headers=auth_headers).get_json()
        theirs = client.get("/api/analytics?range=all", headers=headers_b).get_json()

        assert mine["stats"]["total_purchased"] == 1
        assert mine["stock_summary"]["total_value"] == 60.0
        assert theirs["stats"]["total_purchased"] == 0
        assert theirs["stock_summary"]["total_value"] == 0.0
