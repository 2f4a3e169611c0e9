"""
HTTP round trips through the inventory, repair, stock and analytics routes.
"""

import pytest

from refurb.time_utils import today


def _create_phone(client, headers, **overrides):
    payload = {
        "model": "Pixel 7",
        "imei": "358240051111110",
        "purchase_price": 150,
        "purchase_date": today().isoformat(),
    }
    payload.update(overrides)
    resp = client.post("/api/phones", json=payload, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


class TestPhoneRoutes:
    def test_lifecycle(self, client, auth_headers):
        phone = _create_phone(client, auth_headers)

        resp = client.post(f"/api/phones/{phone['id']}/sell", json={"sale_price": 260}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale_price"] == 260.0

        resp = client.post(f"/api/phones/{phone['id']}/archive", json={}, headers=auth_headers)
        assert resp.get_json()["archived"] is True
        assert client.get("/api/phones", headers=auth_headers).get_json()["count"] == 0
        assert client.get("/api/phones?include_archived=1", headers=auth_headers).get_json()["count"] == 1

        copy = client.post(f"/api/phones/{phone['id']}/duplicate", headers=auth_headers)
        assert copy.status_code == 201
        assert copy.get_json()["is_sold"] is False

        assert client.delete(f"/api/phones/{phone['id']}", headers=auth_headers).get_json() == {"ok": True}
        assert client.get(f"/api/phones/{phone['id']}", headers=auth_headers).status_code == 404

    def test_validation_error_shape(self, client, auth_headers):
        resp = client.post("/api/phones", json={"model": "Pixel 7"}, headers=auth_headers)
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "validation_error"
        assert "imei" in body["error"]

    def test_bad_status_filter(self, client, auth_headers):
        assert client.get("/api/phones?status=lost", headers=auth_headers).status_code == 400


class TestRepairPartRoutes:
    def test_consume_and_release(self, client, auth_headers, repair_a, screen_piece):
        resp = client.post(
            f"/api/repairs/{repair_a.id}/parts",
            json={"stock_piece_id": screen_piece.id, "quantity": 2},
            headers=auth_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["stock_quantity"] == 2
        assert body["repair_total_cost"] == 50.0
        part_id = body["repair_part"]["id"]

        listing = client.get(f"/api/repairs/{repair_a.id}/parts", headers=auth_headers).get_json()
        assert [p["id"] for p in listing["parts"]] == [part_id]
        assert listing["total_cost"] == 50.0

        resp = client.delete(f"/api/repairs/{repair_a.id}/parts/{part_id}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.get_json()["stock_quantity"] == 4

        resp = client.delete(f"/api/repairs/{repair_a.id}/parts/{part_id}", headers=auth_headers)
        assert resp.status_code == 404

    def test_insufficient_stock_is_409(self, client, auth_headers, repair_a, screen_piece):
        resp = client.post(
            f"/api/repairs/{repair_a.id}/parts",
            json={"stock_piece_id": screen_piece.id, "quantity": 5},
            headers=auth_headers,
        )
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["success"] is False
        assert body["code"] == "insufficient_stock"
        assert body["details"]["available"] == 4

    def test_stock_piece_id_must_be_int(self, client, auth_headers, repair_a, screen_piece):
        resp = client.post(
            f"/api/repairs/{repair_a.id}/parts",
            json={"stock_piece_id": str(screen_piece.id)},
            headers=auth_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

    def test_part_must_belong_to_repair(self, client, auth_headers, user_a, phone_a, repair_a, screen_piece):
        other = client.post(
            "/api/repairs", json={"phone_id": phone_a.id, "description": "Camera"}, headers=auth_headers
        ).get_json()
        part_id = client.post(
            f"/api/repairs/{repair_a.id}/parts",
            json={"stock_piece_id": screen_piece.id},
            headers=auth_headers,
        ).get_json()["repair_part"]["id"]

        resp = client.delete(f"/api/repairs/{other['id']}/parts/{part_id}", headers=auth_headers)
        assert resp.status_code == 404
        assert client.get(f"/api/stock/{screen_piece.id}", headers=auth_headers).get_json()["quantity"] == 3

    def test_status_and_delete(self, client, auth_headers, repair_a, screen_piece):
        client.post(
            f"/api/repairs/{repair_a.id}/parts",
            json={"stock_piece_id": screen_piece.id, "quantity": 3},
            headers=auth_headers,
        )

        resp = client.post(f"/api/repairs/{repair_a.id}/status", json={"status": "in_progress"}, headers=auth_headers)
        assert resp.get_json()["started_at"] is not None
        resp = client.post(f"/api/repairs/{repair_a.id}/status", json={"status": "pending"}, headers=auth_headers)
        assert resp.status_code == 400

        resp = client.delete(f"/api/repairs/{repair_a.id}", headers=auth_headers)
        assert resp.get_json() == {"ok": True, "released_parts": 1}
        assert client.get(f"/api/stock/{screen_piece.id}", headers=auth_headers).get_json()["quantity"] == 4


class TestStockAndExpenseRoutes:
    def test_stock_delete_blocked_by_parts(self, client, auth_headers, repair_a, screen_piece):
        client.post(
            f"/api/repairs/{repair_a.id}/parts",
            json={"stock_piece_id": screen_piece.id},
            headers=auth_headers,
        )
        resp = client.delete(f"/api/stock/{screen_piece.id}", headers=auth_headers)
        assert resp.status_code == 400
        assert resp.get_json()["details"] == {"repair_parts": 1}

    @pytest.mark.parametrize("quantity", ["²", 9000000000000000000])
    def test_stock_create_rejects_bad_quantity(self, client, auth_headers, quantity):
        resp = client.post(
            "/api/stock",
            json={"name": "Battery", "quantity": quantity, "purchase_price": "99999999.99"},
            headers=auth_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"
        assert client.get("/api/stock", headers=auth_headers).status_code == 200

    def test_stock_summary_and_available(self, client, auth_headers, screen_piece):
        client.post("/api/stock", json={"name": "Battery", "quantity": 0}, headers=auth_headers)

        summary = client.get("/api/stock/summary", headers=auth_headers).get_json()
        assert summary == {
            "total_value": 60.0,
            "total_pieces": 4,
            "low_stock_count": 2,
            "low_stock_threshold": 5,
        }
        items = client.get("/api/stock/available", headers=auth_headers).get_json()["items"]
        assert [i["id"] for i in items] == [screen_piece.id]

    def test_materiel(self, client, auth_headers):
        resp = client.post(
            "/api/materiel", json={"description": "Spudger set", "amount": 12.9, "category": "Outils"},
            headers=auth_headers,
        )
        assert resp.status_code == 201

        listing = client.get("/api/materiel", headers=auth_headers).get_json()
        assert listing["total"] == 12.9
        assert listing["total_display"] == "12,90 €"
        assert client.get("/api/materiel?category=Nope", headers=auth_headers).status_code == 400

        totals = client.get("/api/materiel/totals", headers=auth_headers).get_json()["items"]
        assert totals[0] == {"category": "Outils", "total": 12.9}

    def test_purchase_accounts(self, client, auth_headers):
        resp = client.post("/api/purchase-accounts", json={"name": "Back Market"}, headers=auth_headers)
        assert resp.status_code == 201
        account_id = resp.get_json()["id"]

        assert client.post("/api/purchase-accounts", json={"name": "Back Market"}, headers=auth_headers).status_code == 400
        assert client.delete(f"/api/purchase-accounts/{account_id}", headers=auth_headers).status_code == 200
        assert client.get("/api/purchase-accounts", headers=auth_headers).get_json() == {"items": []}


class TestAnalyticsRoute:
    def test_default_range(self, client, auth_headers):
        body = client.get("/api/analytics", headers=auth_headers).get_json()
        assert body["time_range"] == "30days"
        assert body["stats"]["total_purchased"] == 0
        assert body["series"] == []

    def test_unknown_range(self, client, auth_headers):
        resp = client.get("/api/analytics?range=decade", headers=auth_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

    def test_sale_shows_up_in_report(self, client, auth_headers):
        phone = _create_phone(client, auth_headers)
        client.post(f"/api/phones/{phone['id']}/sell", json={"sale_price": 230}, headers=auth_headers)
        client.post(
            "/api/materiel", json={"description": "Boxes", "amount": 10, "category": "Emballage"},
            headers=auth_headers,
        )

        body = client.get("/api/analytics?range=7days", headers=auth_headers).get_json()
        stats = body["stats"]
        assert stats["total_purchased"] == 1
        assert stats["total_sold"] == 1
        assert stats["ca"] == 230.0
        assert stats["revenue"] == 70.0
        assert stats["sales_margin"] == 80.0
        assert body["stock_summary"]["total_pieces"] == 0
