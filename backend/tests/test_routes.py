# Overview: Pytest coverage for the HTTP surface: authorization gate, JSON shapes and error mapping.

"""
API route tests

Drive the blueprints through Flask's test client and check:
1. The authorization gate (headers, membership, roles)
2. Success responses carry camelCase to_dict() shapes
3. LedgerError subclasses map to their status codes with {"error", "details"}
4. Unexpected exceptions become a generic 500
"""

import pytest
from conftest import COLUMNS, headers, reload
from stockledger.services import operation_service


SALE_BODY = {
    "date": "2026-03-01T10:00:00Z",
    "paymentMethod": "CASH",
    "subtotal": 30,
    "totalDiscount": 3,
    "taxRate": 0,
    "taxAmount": 0,
    "grandTotal": 27,
}


def sale_body(item, quantity=3, **overrides):
    body = dict(SALE_BODY, items=[{"itemId": item.id, "quantity": quantity, "discount": 10, "discountType": "percent"}])
    body.update(overrides)
    return body


class TestAuthorizationGate:

    def test_missing_headers(self, client, db_session):
        response = client.get("/api/inventory")
        assert response.status_code == 401

    def test_non_member(self, client, business, other_business, owner):
        response = client.get("/api/inventory", headers=headers(owner, other_business))
        assert response.status_code == 403

    def test_employee_cannot_receive(self, client, business, employee, widget):
        response = client.post(
            "/api/operations/receiving",
            json={"date": "2026-03-01", "items": [{"itemId": widget.id, "quantity": 1}]},
            headers=headers(employee, business),
        )
        assert response.status_code == 403
        assert response.get_json()["details"]["role"] == "EMPLOYEE"

    def test_boss_cannot_edit_schema(self, client, business, boss):
        response = client.put("/api/schema", json={"columns": COLUMNS}, headers=headers(boss, business))
        assert response.status_code == 403


class TestSchemaRoutes:

    def test_owner_sets_and_reads_schema(self, client, business, owner):
        response = client.put("/api/schema", json={"columns": COLUMNS}, headers=headers(owner, business))
        assert response.status_code == 200

        response = client.get("/api/schema", headers=headers(owner, business))
        assert [c["id"] for c in response.get_json()["columns"]] == [c["id"] for c in COLUMNS]

    def test_invalid_schema_is_400(self, client, business, owner):
        response = client.put("/api/schema", json={"columns": "nope"}, headers=headers(owner, business))
        assert response.status_code == 400
        assert response.get_json() == {"error": "columns must be a list"}


class TestInventoryRoutes:

    def test_crud_round_trip(self, client, business, boss, schema):
        h = headers(boss, business)
        response = client.post("/api/inventory", json={"data": {"c_name": "Bolt", "c_qty": 3}}, headers=h)
        assert response.status_code == 201
        item_id = response.get_json()["item"]["id"]

        response = client.put(f"/api/inventory/{item_id}", json={"data": {"c_name": "Bolt", "c_qty": 4}}, headers=h)
        assert response.get_json()["item"]["data"]["c_qty"] == 4

        response = client.delete(f"/api/inventory/{item_id}", headers=h)
        assert response.status_code == 200
        log_id = response.get_json()["log"]["id"]

        response = client.get(f"/api/inventory/{item_id}", headers=h)
        assert response.status_code == 404

        response = client.post(f"/api/log/{log_id}/undo", headers=h)
        assert response.status_code == 200
        assert response.get_json()["log"]["undoneAt"] is not None

        response = client.get(f"/api/inventory/{item_id}", headers=h)
        assert response.get_json()["item"]["data"] == {"c_name": "Bolt", "c_qty": 4}

    def test_validation_errors_listed(self, client, business, boss, schema):
        response = client.post("/api/inventory", json={"data": {"c_qty": "x"}}, headers=headers(boss, business))
        assert response.status_code == 400
        assert response.get_json()["details"]["errors"] == ["Name: Required", "Quantity: Expected a number"]

    def test_coerce_accepts_form_strings(self, client, business, boss, schema):
        h = headers(boss, business)
        data = {"c_name": "Bolt", "c_qty": "1,200", "c_price": "$4.50"}

        response = client.post("/api/inventory", json={"data": data}, headers=h)
        assert response.status_code == 400

        response = client.post("/api/inventory", json={"data": data, "coerce": True}, headers=h)
        assert response.status_code == 201
        item = response.get_json()["item"]
        assert item["data"]["c_qty"] == 1200
        assert item["data"]["c_price"] == 4.5

        response = client.put(
            f"/api/inventory/{item['id']}",
            json={"data": dict(data, c_price="€5"), "coerce": True},
            headers=h,
        )
        assert response.status_code == 200
        assert response.get_json()["item"]["data"]["c_price"] == 5

    def test_list_pagination(self, client, business, employee, widget, gadget):
        response = client.get("/api/inventory?limit=1", headers=headers(employee, business))
        body = response.get_json()
        assert len(body["items"]) == 1
        assert body["pagination"] == {"page": 1, "limit": 1, "total": 2, "totalPages": 2}

    def test_limit_over_maximum(self, client, business, employee, widget):
        response = client.get("/api/inventory?limit=1000", headers=headers(employee, business))
        assert response.status_code == 400


class TestOperationRoutes:

    def test_sale_then_return_then_returnable(self, client, business, employee, widget):
        h = headers(employee, business)
        response = client.post("/api/operations/sale", json=sale_body(widget), headers=h)
        assert response.status_code == 201
        sale = response.get_json()["operation"]
        assert sale["type"] == "SALE"
        assert sale["grandTotal"] == 27.0
        assert sale["items"][0]["lineTotal"] == 27.0
        assert sale["user"]["name"] == "Eli Employee"

        response = client.post("/api/operations/return", json={
            "originalSaleId": sale["id"],
            "date": "2026-03-02",
            "items": [{"itemId": widget.id, "quantity": 1}],
            "refundMethod": "ORIGINAL_METHOD",
            "returnReason": "Too small",
        }, headers=h)
        assert response.status_code == 201
        assert response.get_json()["operation"]["items"][0]["refundAmount"] == 9.0

        response = client.get(f"/api/operations/{sale['id']}/returnable-items", headers=h)
        assert response.get_json()["items"][0]["availableQty"] == 2

        response = client.get(f"/api/operations/{sale['id']}/returns", headers=h)
        assert response.get_json()["summary"]["returnedQty"] == 1

    def test_insufficient_stock_is_400_with_details(self, client, business, employee, widget):
        response = client.post(
            "/api/operations/sale",
            json=sale_body(widget, quantity=20, subtotal=200, totalDiscount=20, grandTotal=180),
            headers=headers(employee, business),
        )
        assert response.status_code == 400
        body = response.get_json()
        assert body["details"] == {"item_id": widget.id, "item_name": "Widget", "available": 10, "requested": 20}

    def test_financial_mismatch_is_400(self, client, business, employee, widget):
        response = client.post(
            "/api/operations/sale", json=sale_body(widget, grandTotal=1), headers=headers(employee, business),
        )
        assert response.status_code == 400
        assert "mismatch" in response.get_json()["error"]

    def test_receiving_and_double_undo(self, client, business, boss, widget):
        h = headers(boss, business)
        response = client.post("/api/operations/receiving", json={
            "date": "2026-03-01",
            "items": [{"itemId": widget.id, "quantity": 5, "costPerItem": 5}],
        }, headers=h)
        assert response.status_code == 201
        operation_id = response.get_json()["operation"]["id"]
        assert reload(widget).data["c_cost"] == pytest.approx(3.0)

        assert client.post(f"/api/operations/{operation_id}/undo", headers=h).status_code == 200
        response = client.post(f"/api/operations/{operation_id}/undo", headers=h)
        assert response.status_code == 409

    def test_list_and_get(self, client, business, boss, widget):
        h = headers(boss, business)
        client.post("/api/operations/receiving", json={
            "date": "2026-03-01", "items": [{"itemId": widget.id, "quantity": 1}],
        }, headers=h)
        body = client.get("/api/operations?type=RECEIVING", headers=h).get_json()
        assert body["pagination"]["total"] == 1

        operation_id = body["operations"][0]["id"]
        assert client.get(f"/api/operations/{operation_id}", headers=h).status_code == 200
        assert client.get("/api/operations/999999", headers=h).status_code == 404

    def test_unexpected_error_is_generic_500(self, client, business, boss, widget, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(operation_service, "create_receiving", explode)
        response = client.post("/api/operations/receiving", json={}, headers=headers(boss, business))
        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error"}


class TestLogRoutes:

    def test_list_get_and_conflicts(self, client, business, boss, widget):
        h = headers(boss, business)
        client.put(
            f"/api/inventory/{widget.id}",
            json={"data": dict(reload(widget).data, c_price=12.0)},
            headers=h,
        )
        body = client.get(f"/api/log?action=ITEM_UPDATED&itemId={widget.id}", headers=h).get_json()
        assert body["pagination"]["total"] == 1
        log_id = body["logs"][0]["id"]

        assert client.get(f"/api/log/{log_id}", headers=h).get_json()["log"]["changes"][0]["newValue"] == 12.0
        conflicts = client.get(f"/api/log/{log_id}/check-conflicts", headers=h).get_json()
        assert conflicts["hasConflicts"] is False

    def test_schema_log_not_undoable(self, client, business, boss, schema):
        h = headers(boss, business)
        log_id = client.get("/api/log?action=SCHEMA_UPDATED", headers=h).get_json()["logs"][0]["id"]
        response = client.post(f"/api/log/{log_id}/undo", headers=h)
        assert response.status_code == 400
        assert response.get_json()["error"] == "This record cannot be undone"
