# Overview: Pytest coverage for the HTTP surface (identity, error mapping, end-to-end rider day).

"""
API Route Tests

Verifies:
1. Identity headers are required and roles are enforced (401/403)
2. Riders can only act on their own records
3. Named engine failures come back as {"error": CODE, "message", "details"}
4. A full rider day works over HTTP: send, receive, sell, return, submit, verify
"""

from datetime import timedelta

import pytest

from conftest import branch_headers, rider_headers
from riderops.time_utils import local_today

RIDER = 41


def _send(client, rider_id=RIDER, items=None):
    resp = client.post("/api/stock/send", json={
        "rider_id": rider_id,
        "items": items or [{"product_id": 1, "quantity": 10}],
    }, headers=branch_headers())
    assert resp.status_code == 201, resp.json
    return resp.json


class TestIdentity:

    @pytest.mark.parametrize("method,path", [
        ("POST", "/api/stock/receive"),
        ("POST", "/api/stock/sell"),
        ("POST", "/api/stock/return"),
        ("POST", "/api/stock/adjust"),
        ("GET", "/api/stock/balances?rider_id=1"),
        ("GET", "/api/sales/aggregate?rider_id=1"),
        ("POST", "/api/shifts/submit"),
        ("POST", "/api/verification/verify"),
        ("POST", "/api/verification/notes"),
    ])
    def test_requires_identity(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401

    def test_malformed_actor_id(self, client, db_session):
        resp = client.get("/api/stock/balances?rider_id=1", headers={
            "X-Actor-Id": "abc",
            "X-Actor-Role": "rider",
        })
        assert resp.status_code == 401

    def test_rider_cannot_send_stock(self, client, db_session):
        resp = client.post("/api/stock/send", json={
            "rider_id": RIDER, "items": [{"product_id": 1, "quantity": 1}],
        }, headers=rider_headers(RIDER))
        assert resp.status_code == 403

    def test_branch_cannot_submit_for_rider(self, client, db_session):
        resp = client.post("/api/shifts/submit", json={"rider_id": RIDER}, headers=branch_headers())
        assert resp.status_code == 403

    def test_rider_cannot_read_other_rider(self, client, db_session):
        resp = client.get(f"/api/stock/balances?rider_id={RIDER + 1}", headers=rider_headers(RIDER))
        assert resp.status_code == 403

    def test_rider_cannot_confirm_other_riders_delivery(self, client, db_session):
        sent = _send(client, rider_id=RIDER + 1)
        resp = client.post("/api/stock/receive", json={
            "movement_id": sent["movements"][0]["id"],
        }, headers=rider_headers(RIDER))
        assert resp.status_code == 403

    def test_admin_passes_role_checks(self, client, db_session):
        resp = client.post("/api/stock/send", json={
            "rider_id": RIDER, "branch_id": 2, "items": [{"product_id": 1, "quantity": 1}],
        }, headers={"X-Actor-Id": "1", "X-Actor-Role": "admin"})
        assert resp.status_code == 201


class TestErrorMapping:

    def test_validation_error_shape(self, client, db_session):
        resp = client.post("/api/stock/sell", json={
            "rider_id": RIDER, "items": [{"product_id": 1, "quantity": 0}],
        }, headers=rider_headers(RIDER))

        assert resp.status_code == 400
        assert resp.json["error"] == "VALIDATION_ERROR"
        assert resp.json["details"] == {"field": "quantity"}

    def test_non_integer_rejected(self, client, db_session):
        resp = client.post("/api/stock/adjust", json={
            "rider_id": RIDER, "product_id": 1, "real_count": "1.5",
        }, headers=rider_headers(RIDER))
        assert resp.status_code == 400

    def test_insufficient_stock(self, client, db_session):
        resp = client.post("/api/stock/sell", json={
            "rider_id": RIDER, "items": [{"product_id": 1, "quantity": 2}],
        }, headers=rider_headers(RIDER))

        assert resp.status_code == 409
        assert resp.json["error"] == "INSUFFICIENT_STOCK"
        assert resp.json["details"] == {"product_id": 1, "available": 0, "requested": 2}

    def test_not_found(self, client, db_session):
        resp = client.post("/api/stock/receive", json={"movement_id": 12345}, headers=rider_headers(RIDER))
        assert resp.status_code == 404
        assert resp.json["error"] == "NOT_FOUND"

    def test_return_proof_must_be_real_text(self, client, db_session):
        sent = _send(client)
        client.post("/api/stock/receive", json={"movement_id": sent["movements"][0]["id"]}, headers=rider_headers(RIDER))
        balance_id = client.get(
            f"/api/stock/balances?rider_id={RIDER}", headers=rider_headers(RIDER)
        ).json["balances"][0]["id"]

        resp = client.post("/api/stock/return", json={
            "balance_ids": [balance_id], "proof_refs": [123],
        }, headers=rider_headers(RIDER))
        assert resp.status_code == 400
        assert resp.json["details"] == {"field": "proof_refs"}

        resp = client.post("/api/stock/return", json={
            "balance_ids": [balance_id], "proof_refs": ["   "],
        }, headers=rider_headers(RIDER))
        assert resp.status_code == 200
        assert resp.json["failed"] == 1
        assert resp.json["results"][0]["error"]["error"] == "PROOF_REQUIRED"

        balances = client.get(f"/api/stock/balances?rider_id={RIDER}", headers=rider_headers(RIDER)).json
        assert balances["balances"][0]["stock_quantity"] == 10

    def test_non_object_body(self, client, db_session):
        resp = client.post("/api/stock/sell", json=[1, 2], headers=rider_headers(RIDER))
        assert resp.status_code == 400

    def test_unexpected_error_is_generic_500(self, client, db_session, monkeypatch):
        from riderops.services import stock_service

        def boom(*args, **kwargs):
            raise RuntimeError("db exploded")

        monkeypatch.setattr(stock_service, "record_sales", boom)
        resp = client.post("/api/stock/sell", json={
            "rider_id": RIDER, "items": [{"product_id": 1, "quantity": 1}],
        }, headers=rider_headers(RIDER))

        assert resp.status_code == 500
        assert resp.json == {"error": "INTERNAL_ERROR", "message": "Unexpected error"}


class TestRiderDay:

    def test_full_day_over_http(self, client, db_session):
        sent = _send(client, items=[
            {"product_id": 1, "quantity": 10},
            {"product_id": 2, "quantity": 4},
        ])
        movement_ids = [m["id"] for m in sent["movements"]]

        # Receive both lines; first receipt opens the shift
        resp = client.post("/api/stock/receive", json={"movement_ids": movement_ids}, headers=rider_headers(RIDER))
        assert resp.status_code == 200
        assert all(r["ok"] for r in resp.json["results"])
        assert resp.json["results"][0]["shift_created"] is True

        # Double tap is harmless
        resp = client.post("/api/stock/receive", json={"movement_id": movement_ids[0]}, headers=rider_headers(RIDER))
        assert resp.status_code == 200
        assert resp.json["already_received"] is True
        assert resp.json["balance"]["stock_quantity"] == 10

        # Sell 8 of product 1 and record the payments
        resp = client.post("/api/stock/sell", json={
            "rider_id": RIDER, "items": [{"product_id": 1, "quantity": 8}],
        }, headers=rider_headers(RIDER))
        assert resp.status_code == 200
        for amount, method in [(60000, "cash"), (20000, "qris"), (15000, "bank_transfer")]:
            resp = client.post("/api/sales/transactions", json={
                "rider_id": RIDER, "final_amount": amount, "payment_method": method,
            }, headers=rider_headers(RIDER))
            assert resp.status_code == 201

        # Closing is blocked while stock is held
        resp = client.post("/api/shifts/submit", json={"rider_id": RIDER}, headers=rider_headers(RIDER))
        assert resp.status_code == 409
        assert resp.json["error"] == "STOCK_NOT_RETURNED"
        assert resp.json["details"]["outstanding_lines"] == 2

        # Return everything; the line without proof fails on its own
        balances = client.get(f"/api/stock/balances?rider_id={RIDER}", headers=rider_headers(RIDER)).json
        by_product = {b["product_id"]: b["id"] for b in balances["balances"]}
        resp = client.post("/api/stock/return", json={
            "balance_ids": [by_product[1], by_product[2]],
            "proof_refs": ["blob://p1"],
        }, headers=rider_headers(RIDER))
        assert resp.status_code == 200
        assert resp.json["succeeded"] == 1
        assert resp.json["results"][1]["error"]["error"] == "PROOF_REQUIRED"

        resp = client.post("/api/stock/return", json={
            "balance_ids": [by_product[2]],
            "proof_photos": ["aGVsbG8="],
        }, headers=rider_headers(RIDER))
        assert resp.json["succeeded"] == 1

        # Running totals before closing
        summary = client.get(f"/api/shifts/summary?rider_id={RIDER}", headers=rider_headers(RIDER)).json
        assert summary["outstanding_lines"] == 0
        assert summary["expected_deposit"] == 60000

        # Submit the report
        resp = client.post("/api/shifts/submit", json={
            "rider_id": RIDER,
            "expenses": [{"expense_type": "fuel", "amount": 25000, "description": "Bensin"}],
            "deposit_proof_ref": "blob://deposit",
        }, headers=rider_headers(RIDER))
        assert resp.status_code == 201, resp.json
        body = resp.json
        assert body["totals"]["deposit"] == 35000
        assert body["report"]["cash_collected"] == 35000
        assert body["report"]["qris_sales"] == 20000
        assert body["report"]["transfer_sales"] == 15000
        assert body["shift"]["status"] == "completed"
        shift_id = body["shift"]["id"]

        # Second submit is a named no-op
        resp = client.post("/api/shifts/submit", json={"rider_id": RIDER}, headers=rider_headers(RIDER))
        assert resp.status_code == 409
        assert resp.json["error"] == "ALREADY_SUBMITTED"

        # Branch side: verify return, approve deposit, tick the checklist
        movements = client.get(
            f"/api/stock/movements?rider_id={RIDER}&kind=returned", headers=branch_headers()
        ).json["movements"]
        resp = client.post(
            f"/api/stock/movements/{movements[0]['id']}/verify-return",
            json={"verified_quantity": movements[0]["quantity"]},
            headers=branch_headers(),
        )
        assert resp.status_code == 200

        resp = client.post(f"/api/shifts/{shift_id}/approve", headers=branch_headers())
        assert resp.status_code == 200
        assert resp.json["shift"]["report_verified"] is True

        day = local_today().isoformat()
        resp = client.post("/api/verification/verify", json={
            "rider_id": RIDER, "date": day, "field": "verified_cash_deposit", "value": True,
        }, headers=branch_headers())
        assert resp.status_code == 200
        resp = client.post("/api/verification/notes", json={
            "rider_id": RIDER, "date": day, "text": "Counted twice",
        }, headers=branch_headers())
        assert resp.status_code == 200

        checklist = client.get(f"/api/verification?rider_id={RIDER}&date={day}", headers=rider_headers(RIDER)).json
        assert checklist["verified_cash_deposit"] is True
        assert checklist["verified_cash_sales"] is False
        assert checklist["notes"] == "Counted twice"

        # Ledger still balances
        audit = client.get(f"/api/stock/audit?rider_id={RIDER}", headers=branch_headers()).json
        assert audit["drifted"] == []

        detail = client.get(f"/api/shifts/{shift_id}", headers=rider_headers(RIDER)).json
        assert detail["report"]["total_expenses"] == 25000
        assert len(detail["expenses"]) == 1

        history = client.get(f"/api/shifts?rider_id={RIDER}", headers=branch_headers()).json
        assert history["total"] == 1


class TestSalesRoutes:

    def test_aggregate_by_date_and_void(self, client, db_session):
        resp = client.post("/api/sales/transactions", json={
            "rider_id": RIDER, "final_amount": 10000, "payment_method": "CASH",
        }, headers=rider_headers(RIDER))
        tx_id = resp.json["id"]
        day = local_today().isoformat()

        agg = client.get(f"/api/sales/aggregate?rider_id={RIDER}&from={day}&to={day}", headers=rider_headers(RIDER)).json
        assert agg["cash"] == 10000
        assert agg["count"] == 1

        resp = client.post(f"/api/sales/transactions/{tx_id}/void", json={"reason": "Refund"}, headers=branch_headers())
        assert resp.status_code == 200

        agg = client.get(f"/api/sales/aggregate?rider_id={RIDER}", headers=rider_headers(RIDER)).json
        assert agg["total"] == 0

    def test_aggregate_rejects_inverted_window(self, client, db_session):
        today = local_today()
        resp = client.get(
            f"/api/sales/aggregate?rider_id={RIDER}&from={today.isoformat()}&to={(today - timedelta(days=2)).isoformat()}",
            headers=rider_headers(RIDER),
        )
        assert resp.status_code == 400

    def test_verification_rejects_non_boolean(self, client, db_session):
        resp = client.post("/api/verification/verify", json={
            "rider_id": RIDER, "date": local_today().isoformat(), "field": "verified_cash_sales", "value": "true",
        }, headers=branch_headers())
        assert resp.status_code == 400


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"
