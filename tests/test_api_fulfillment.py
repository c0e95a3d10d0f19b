"""
Fulfillment and pool API tests.

Tests cover:
  - GET /api/v1/fulfillment/queue, /fulfillment/my-tasks, /fulfillment/assignees
  - POST /api/v1/requests/<id>/assign, /complete
  - GET /api/v1/pools/<id>/availability, POST /api/v1/resources/availability
  - POST /api/v1/pools/reconcile
"""

import pytest

import factories as f
from factories import auth
from app.models import db


@pytest.fixture()
def approved(org, vm_pool):
    req = f.make_request(org.requester, vm_pool, qty=2, status="APPROVED")
    vm_pool.committed_qty = 2
    db.session.commit()
    return req


# ═════════════════════════════════════════════════════════════════════════
# FULFILLMENT
# ═════════════════════════════════════════════════════════════════════════

class TestFulfillmentApi:
    def test_queue_staff_only(self, client, org, approved):
        assert client.get("/api/v1/fulfillment/queue", headers=auth(org.requester)).status_code == 403
        res = client.get("/api/v1/fulfillment/queue", headers=auth(org.it_team))
        assert res.status_code == 200
        assert [r["id"] for r in res.get_json()["items"]] == [approved.id]

    def test_assign_and_complete(self, client, org, approved):
        res = client.post(f"/api/v1/requests/{approved.id}/assign", headers=auth(org.it_head),
                          json={"assignee_id": org.operator.id})
        assert res.status_code == 200
        assert res.get_json()["status"] == "ASSIGNED_TO_IT"
        assert res.get_json()["assigned_to"] == "Omar Operator"

        tasks = client.get("/api/v1/fulfillment/my-tasks", headers=auth(org.operator)).get_json()
        assert [t["id"] for t in tasks["items"]] == [approved.id]

        res = client.post(f"/api/v1/requests/{approved.id}/complete", headers=auth(org.operator),
                          json={"notes": "VM ready", "credentials": {"host": "vm-7", "user": "rita"}})
        data = res.get_json()
        assert res.status_code == 200
        assert data["status"] == "COMPLETED"
        assert data["credentials"] == {"host": "vm-7", "user": "rita"}

        tasks = client.get("/api/v1/fulfillment/my-tasks", headers=auth(org.operator)).get_json()
        assert tasks["total"] == 0
        tasks = client.get("/api/v1/fulfillment/my-tasks?include_completed=true",
                           headers=auth(org.operator)).get_json()
        assert tasks["total"] == 1

    def test_assign_requires_assignee(self, client, org, approved):
        res = client.post(f"/api/v1/requests/{approved.id}/assign", headers=auth(org.it_head), json={})
        assert res.status_code == 422

    def test_assign_to_it_staff_rejected(self, client, org, approved):
        res = client.post(f"/api/v1/requests/{approved.id}/assign", headers=auth(org.it_head),
                          json={"assignee_id": org.it_team.id})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_NOT_ASSIGNABLE"

    def test_assign_by_member_forbidden(self, client, org, approved):
        res = client.post(f"/api/v1/requests/{approved.id}/assign", headers=auth(org.requester),
                          json={"assignee_id": org.operator.id})
        assert res.status_code == 403

    def test_complete_unassigned(self, client, org, approved):
        res = client.post(f"/api/v1/requests/{approved.id}/complete", headers=auth(org.admin),
                          json={"notes": "done"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_complete_without_notes(self, client, org, approved):
        client.post(f"/api/v1/requests/{approved.id}/assign", headers=auth(org.it_head),
                    json={"assignee_id": org.operator.id})
        res = client.post(f"/api/v1/requests/{approved.id}/complete", headers=auth(org.operator),
                          json={"credentials": {"user": "x"}})
        assert res.status_code == 422

    def test_assignees(self, client, org):
        assert client.get("/api/v1/fulfillment/assignees",
                          headers=auth(org.requester)).status_code == 403
        res = client.get("/api/v1/fulfillment/assignees", headers=auth(org.it_team))
        data = res.get_json()
        assert res.status_code == 200
        assert data["total"] == 2
        assert [m["full_name"] for m in data["items"]] == ["Omar Operator", "Rita Requester"]
        assert data["items"][0]["department"] == "Operations"

    def test_assignee_may_view_request(self, client, org, approved):
        client.post(f"/api/v1/requests/{approved.id}/assign", headers=auth(org.it_head),
                    json={"assignee_id": org.operator.id})
        res = client.get(f"/api/v1/requests/{approved.id}", headers=auth(org.operator))
        assert res.status_code == 200


# ═════════════════════════════════════════════════════════════════════════
# POOLS
# ═════════════════════════════════════════════════════════════════════════

class TestPoolApi:
    def test_availability(self, client, org, approved, vm_pool):
        res = client.get(f"/api/v1/pools/{vm_pool.id}/availability", headers=auth(org.requester))
        data = res.get_json()
        assert res.status_code == 200
        assert (data["total"], data["committed"], data["available"]) == (5, 2, 3)
        assert data["allocated_to"][0]["request_id"] == approved.id

    def test_availability_unknown_pool(self, client, org):
        res = client.get("/api/v1/pools/999/availability", headers=auth(org.requester))
        assert res.status_code == 404

    def test_lookup_by_template(self, client, org, phase, vm_template, approved):
        res = client.post("/api/v1/resources/availability", headers=auth(org.requester),
                          json={"phase_id": phase.id, "resource_template_id": vm_template.id})
        assert res.status_code == 200
        assert res.get_json()["available"] == 3

    def test_lookup_by_type(self, client, org, phase):
        f.make_pool(phase, resource_type="Rack space", total_qty=10, cost_per_unit=99)
        db.session.commit()
        res = client.post("/api/v1/resources/availability", headers=auth(org.requester),
                          json={"phase_id": phase.id, "resource_type": "Rack space"})
        data = res.get_json()
        assert res.status_code == 200
        assert data["label"] == "Rack space"
        assert data["available"] == 10
        assert data["cost_per_unit"] == 99.0

    def test_lookup_needs_identity(self, client, org, phase):
        res = client.post("/api/v1/resources/availability", headers=auth(org.requester),
                          json={"phase_id": phase.id})
        assert res.status_code == 422

    def test_reconcile_admin_only(self, client, org):
        res = client.post("/api/v1/pools/reconcile", headers=auth(org.it_head))
        assert res.status_code == 403

    def test_reconcile(self, client, org, approved, vm_pool):
        vm_pool.committed_qty = 0
        db.session.commit()
        res = client.post("/api/v1/pools/reconcile", headers=auth(org.admin))
        data = res.get_json()
        assert res.status_code == 200
        assert data["checked"] == 1
        assert data["corrected"] == 1
        assert data["corrections"][0]["recomputed"] == 2

    def test_reconcile_selected_pools(self, client, org, vm_pool):
        res = client.post("/api/v1/pools/reconcile", headers=auth(org.admin),
                          json={"pool_ids": [vm_pool.id]})
        assert res.status_code == 200
        assert res.get_json()["corrected"] == 0

    @pytest.mark.parametrize("pool_ids", ["1", [1, "2"], [True]])
    def test_reconcile_bad_pool_ids(self, client, org, pool_ids):
        res = client.post("/api/v1/pools/reconcile", headers=auth(org.admin),
                          json={"pool_ids": pool_ids})
        assert res.status_code == 422

    def test_reconcile_unknown_pool(self, client, org):
        res = client.post("/api/v1/pools/reconcile", headers=auth(org.admin),
                          json={"pool_ids": [4040]})
        assert res.status_code == 404
