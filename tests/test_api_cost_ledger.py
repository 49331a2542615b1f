"""
HTTP surface of the cost ledger.

Tests cover:
  - Actor header resolution (401 / 403)
  - Ledger results mapped to status codes (201 / 200 / 409 / 403)
  - Exception mapping (404 / 422 / 415)
  - Read endpoints (cost items, summary, modifications, approvers)
"""
import pytest

from app.models.auth import Role


def _headers(user):
    return {"X-User-Id": str(user.id)}


# ═════════════════════════════════════════════════════════════════════════
# HEALTH
# ═════════════════════════════════════════════════════════════════════════

class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.headers.get("X-Request-ID")


# ═════════════════════════════════════════════════════════════════════════
# COST ITEMS
# ═════════════════════════════════════════════════════════════════════════

class TestCostItemsAPI:
    def test_create_requires_actor(self, client, project):
        res = client.post(f"/api/v1/projects/{project.id}/cost-items", json={"name": "X", "amount": 1, "price": 1})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_unknown_actor_is_unauthenticated(self, client, project):
        res = client.post(
            f"/api/v1/projects/{project.id}/cost-items",
            json={"name": "X", "amount": 1, "price": 1},
            headers={"X-User-Id": "9999"},
        )
        assert res.status_code == 401

    def test_create_child(self, client, project, parent, users):
        res = client.post(
            f"/api/v1/projects/{project.id}/cost-items",
            json={"name": "Formwork", "amount": 2, "price": 20, "parent_id": parent.id},
            headers=_headers(users[Role.PURCHASING]),
        )
        assert res.status_code == 201
        body = res.get_json()
        assert body["cost_item"]["parent_id"] == parent.id
        assert body["modification"]["status"] == "VALID"
        assert body["allocation"]["running_total"] == 40

    def test_list_and_filter(self, client, project, parent, users):
        client.post(
            f"/api/v1/projects/{project.id}/cost-items",
            json={"name": "Formwork", "amount": 1, "price": 20, "parent_id": parent.id},
            headers=_headers(users[Role.PURCHASING]),
        )
        res = client.get(f"/api/v1/projects/{project.id}/cost-items")
        assert res.get_json()["total"] == 2

        res = client.get(f"/api/v1/projects/{project.id}/cost-items?parent_id={parent.id}")
        assert [i["name"] for i in res.get_json()["items"]] == ["Formwork"]

        res = client.get(f"/api/v1/projects/{project.id}/cost-items?extra=false")
        assert [i["id"] for i in res.get_json()["items"]] == [parent.id]

    def test_unknown_project_is_404(self, client):
        res = client.get("/api/v1/projects/9999/cost-items")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_negative_price_is_422(self, client, project, parent, users):
        res = client.post(
            f"/api/v1/projects/{project.id}/cost-items",
            json={"name": "Bad", "amount": 1, "price": -5, "parent_id": parent.id},
            headers=_headers(users[Role.PURCHASING]),
        )
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"

    def test_non_json_body_is_415(self, client, project, users):
        res = client.post(
            f"/api/v1/projects/{project.id}/cost-items",
            data="name=x",
            content_type="text/plain",
            headers=_headers(users[Role.PURCHASING]),
        )
        assert res.status_code == 415

    def test_delete_baseline_is_conflict(self, client, parent, users):
        res = client.delete(f"/api/v1/cost-items/{parent.id}", headers=_headers(users[Role.PURCHASING]))
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_update_vendor(self, client, parent, vendor, users):
        res = client.put(
            f"/api/v1/cost-items/{parent.id}/vendor",
            json={"vendor_id": vendor.id},
            headers=_headers(users[Role.PURCHASING]),
        )
        assert res.status_code == 200
        assert res.get_json()["cost_item"]["vendor_id"] == vendor.id

    def test_cost_summary(self, client, project, parent):
        res = client.get(f"/api/v1/projects/{project.id}/cost-summary")
        assert res.status_code == 200
        assert res.get_json() == {"base": 100.0, "modified": 100.0, "has_po": 0.0, "no_po": 100.0}


# ═════════════════════════════════════════════════════════════════════════
# MODIFICATIONS
# ═════════════════════════════════════════════════════════════════════════

class TestModificationsAPI:
    @pytest.fixture()
    def waiting_id(self, client, project, parent, users):
        headers = _headers(users[Role.PURCHASING])
        for price in (40, 50, 20):
            res = client.post(
                f"/api/v1/projects/{project.id}/cost-items",
                json={"name": f"Child {price}", "amount": 1, "price": price, "parent_id": parent.id},
                headers=headers,
            )
        body = res.get_json()
        assert body["modification"]["status"] == "WAITING"
        return body["modification"]["id"]

    def test_modify_cost_role_check(self, client, parent, users):
        res = client.put(
            f"/api/v1/cost-items/{parent.id}/modify-cost",
            json={"amount": 1, "price": 105},
            headers=_headers(users[Role.QS]),
        )
        assert res.status_code == 403
        assert res.get_json()["details"]["required_any"] == ["PROCUREMENT_MANAGER", "PURCHASING"]

    def test_modify_cost_requires_values(self, client, parent, users):
        res = client.put(
            f"/api/v1/cost-items/{parent.id}/modify-cost",
            json={"amount": 1},
            headers=_headers(users[Role.PURCHASING]),
        )
        assert res.status_code == 400
        assert res.get_json()["details"] == {"price": "required"}

    def test_list_waiting(self, client, project, waiting_id):
        res = client.get(f"/api/v1/projects/{project.id}/cost-modifications?status=WAITING")
        assert res.status_code == 200
        assert [m["id"] for m in res.get_json()["items"]] == [waiting_id]

    def test_list_unknown_status(self, client, project):
        res = client.get(f"/api/v1/projects/{project.id}/cost-modifications?status=DONE")
        assert res.status_code == 400

    def test_cap_bound_approval_is_409(self, client, waiting_id, users):
        res = client.put(
            f"/api/v1/cost-modifications/{waiting_id}/status",
            json={"status": "APPROVED"},
            headers=_headers(users[Role.PROCUREMENT_MANAGER]),
        )
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CAPACITY_EXCEEDED"
        assert body["details"] == {"projected": 10.0, "cap": 0.0}

    def test_ceo_approval(self, client, waiting_id, users):
        res = client.put(
            f"/api/v1/cost-modifications/{waiting_id}/status",
            json={"status": "approved"},
            headers=_headers(users[Role.CEO]),
        )
        assert res.status_code == 200
        assert res.get_json()["modification"]["status"] == "APPROVED"

    def test_decision_role_check(self, client, waiting_id, users):
        res = client.put(
            f"/api/v1/cost-modifications/{waiting_id}/status",
            json={"status": "APPROVED"},
            headers=_headers(users[Role.PURCHASING]),
        )
        assert res.status_code == 403

    def test_invalid_decision_is_422(self, client, waiting_id, users):
        res = client.put(
            f"/api/v1/cost-modifications/{waiting_id}/status",
            json={"status": "VALID"},
            headers=_headers(users[Role.CEO]),
        )
        assert res.status_code == 422


# ═════════════════════════════════════════════════════════════════════════
# PURCHASE ORDERS / VARIATION ORDERS
# ═════════════════════════════════════════════════════════════════════════

class TestApprovalsAPI:
    def test_purchase_order_round_trip(self, client, project, parent, users):
        headers = _headers(users[Role.PURCHASING])
        res = client.post(f"/api/v1/projects/{project.id}/purchase-orders", json={"name": "PO-1"}, headers=headers)
        assert res.status_code == 201
        po_id = res.get_json()["purchase_order"]["id"]

        res = client.post(f"/api/v1/purchase-orders/{po_id}/cost-items", json={"cost_item_ids": [parent.id]}, headers=headers)
        assert res.status_code == 200

        res = client.put(f"/api/v1/purchase-orders/{po_id}/status", json={"status": "WAITING_APPROVAL"}, headers=headers)
        assert res.status_code == 200

        approvers = client.get(f"/api/v1/purchase-orders/{po_id}/approvers").get_json()["items"]
        assert [a["role_key"] for a in approvers] == ["PM", "PROCUREMENT_MANAGER"]

        res = client.put(
            f"/api/v1/purchase-order-approvers/{approvers[0]['id']}",
            json={"status": "APPROVED"},
            headers=_headers(users[Role.PM]),
        )
        assert res.status_code == 200

        res = client.get(f"/api/v1/projects/{project.id}/purchase-orders")
        assert res.get_json()["items"][0]["status"] == "WAITING_APPROVAL"

    def test_attach_rejects_malformed_ids(self, client, project, users):
        headers = _headers(users[Role.PURCHASING])
        po_id = client.post(
            f"/api/v1/projects/{project.id}/purchase-orders", json={"name": "PO-1"}, headers=headers,
        ).get_json()["purchase_order"]["id"]
        res = client.post(f"/api/v1/purchase-orders/{po_id}/cost-items", json={"cost_item_ids": "1"}, headers=headers)
        assert res.status_code == 400

    def test_variation_order_round_trip(self, client, project, parent, users):
        headers = _headers(users[Role.QS])
        res = client.post(f"/api/v1/projects/{project.id}/vos", json={"name": "VO-1"}, headers=headers)
        assert res.status_code == 201
        vo_id = res.get_json()["vo"]["id"]

        res = client.put(f"/api/v1/vos/{vo_id}/remove-cost", json={"cost_item_id": parent.id}, headers=headers)
        assert res.status_code == 200

        res = client.put(f"/api/v1/vos/{vo_id}/submit", headers=headers)
        assert res.status_code == 200
        assert len(client.get(f"/api/v1/vos/{vo_id}/approvers").get_json()["items"]) == 4

        res = client.put(f"/api/v1/vos/{vo_id}/approve", json={"status": "APPROVED"}, headers=_headers(users[Role.CEO]))
        assert res.status_code == 200
        body = res.get_json()["vo"]
        assert body["status"] == "APPROVED"
        assert body["diff_total"] == -100.0

    def test_unknown_vo_is_404(self, client, users):
        res = client.put("/api/v1/vos/9999/submit", headers=_headers(users[Role.QS]))
        assert res.status_code == 404
