"""
Request / approval API tests.

Tests cover:
  - X-User-Id authentication
  - POST/GET/PUT /api/v1/requests
  - POST /api/v1/requests/<id>/decisions and the error body contract
  - GET /api/v1/approvals/pending
"""

import pytest

import factories as f
from factories import auth
from app.models import db


@pytest.fixture()
def submitted(client, org, phase, vm_template, vm_pool):
    res = client.post("/api/v1/requests", headers=auth(org.requester), json={
        "phase_id": phase.id,
        "resource_template_id": vm_template.id,
        "requested_qty": 2,
        "requested_config": {"cpu": 2, "ram_gb": 8},
        "justification": "Integration test landscape",
    })
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def two_level_pool(phase):
    template = f.make_template("Managed Database", approval_levels=2)
    pool = f.make_pool(phase, template=template, total_qty=4)
    db.session.commit()
    return template, pool


# ═════════════════════════════════════════════════════════════════════════
# AUTHENTICATION
# ═════════════════════════════════════════════════════════════════════════

class TestAuthentication:
    def test_missing_header(self, client):
        res = client.get("/api/v1/requests")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    @pytest.mark.parametrize("value", ["abc", "99999"])
    def test_bad_or_unknown_user(self, client, org, value):
        res = client.get("/api/v1/requests", headers={"X-User-Id": value})
        assert res.status_code == 401

    def test_inactive_user(self, client, org):
        org.requester.is_active = False
        db.session.commit()
        res = client.get("/api/v1/requests", headers=auth(org.requester))
        assert res.status_code == 401


# ═════════════════════════════════════════════════════════════════════════
# SUBMIT / LIST / GET
# ═════════════════════════════════════════════════════════════════════════

class TestSubmitApi:
    def test_submit(self, submitted, org, vm_pool):
        assert submitted["status"] == "PENDING"
        assert submitted["requester_id"] == org.requester.id
        assert submitted["pool_id"] == vm_pool.id
        assert submitted["requested_config"] == {"cpu": 2, "ram_gb": 8}
        assert submitted["required_levels"] == 1
        assert submitted["resource_label"] == "Standard VM"

    def test_submit_free_form_type(self, client, org, phase):
        f.make_pool(phase, resource_type="Rack space", total_qty=10)
        db.session.commit()
        res = client.post("/api/v1/requests", headers=auth(org.requester), json={
            "phase_id": phase.id, "resource_type": "Rack space", "requested_qty": 1,
        })
        assert res.status_code == 201
        assert res.get_json()["resource_type"] == "Rack space"

    @pytest.mark.parametrize("qty", [0, -2, "3", 2.5, True])
    def test_submit_bad_quantity(self, client, org, phase, vm_template, vm_pool, qty):
        res = client.post("/api/v1/requests", headers=auth(org.requester), json={
            "phase_id": phase.id, "resource_template_id": vm_template.id, "requested_qty": qty,
        })
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert "requested_qty" in body["details"]

    def test_submit_missing_phase(self, client, org, vm_template, vm_pool):
        res = client.post("/api/v1/requests", headers=auth(org.requester), json={
            "resource_template_id": vm_template.id, "requested_qty": 1,
        })
        assert res.status_code == 422
        assert res.get_json()["details"] == {"phase_id": "required"}

    def test_submit_both_identities(self, client, org, phase, vm_template, vm_pool):
        res = client.post("/api/v1/requests", headers=auth(org.requester), json={
            "phase_id": phase.id, "resource_template_id": vm_template.id,
            "resource_type": "Rack space", "requested_qty": 1,
        })
        assert res.status_code == 422

    def test_submit_unknown_pool(self, client, org, phase):
        res = client.post("/api/v1/requests", headers=auth(org.requester), json={
            "phase_id": phase.id, "resource_type": "Quantum computer", "requested_qty": 1,
        })
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_body_must_be_object(self, client, org):
        res = client.post("/api/v1/requests", headers=auth(org.requester), json=[1, 2])
        assert res.status_code == 422

    def test_non_json_content_type(self, client, org):
        res = client.post("/api/v1/requests", headers=auth(org.requester),
                          data="qty=1", content_type="text/plain")
        assert res.status_code == 415


class TestListAndGet:
    def test_member_sees_only_own(self, client, org, vm_pool):
        f.make_request(org.requester, vm_pool)
        f.make_request(org.operator, vm_pool)
        db.session.commit()

        res = client.get(f"/api/v1/requests?requester_id={org.operator.id}",
                         headers=auth(org.requester))
        data = res.get_json()
        assert res.status_code == 200
        assert data["total"] == 1
        assert data["items"][0]["requester_id"] == org.requester.id

    def test_staff_sees_all_and_filters(self, client, org, vm_pool):
        f.make_request(org.requester, vm_pool)
        f.make_request(org.operator, vm_pool, status="REJECTED")
        db.session.commit()

        assert client.get("/api/v1/requests", headers=auth(org.it_team)).get_json()["total"] == 2
        res = client.get(f"/api/v1/requests?requester_id={org.operator.id}",
                         headers=auth(org.dept_head))
        assert res.get_json()["total"] == 1
        res = client.get("/api/v1/requests?status=PENDING", headers=auth(org.admin))
        assert [r["requester_id"] for r in res.get_json()["items"]] == [org.requester.id]

    def test_unknown_status_filter(self, client, org):
        res = client.get("/api/v1/requests?status=LOST", headers=auth(org.admin))
        assert res.status_code == 422

    def test_get_own_request(self, client, org, submitted):
        res = client.get(f"/api/v1/requests/{submitted['id']}", headers=auth(org.requester))
        data = res.get_json()
        assert res.status_code == 200
        assert data["decisions"] == []
        assert data["chain"]["required_level"] == 1
        assert data["pool"]["total_qty"] == 5

    def test_other_member_forbidden(self, client, org, submitted):
        res = client.get(f"/api/v1/requests/{submitted['id']}", headers=auth(org.operator))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_approver_may_view(self, client, org, submitted):
        res = client.get(f"/api/v1/requests/{submitted['id']}", headers=auth(org.dept_head))
        assert res.status_code == 200

    def test_unknown_request(self, client, org):
        res = client.get("/api/v1/requests/5555", headers=auth(org.admin))
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════
# DECISIONS
# ═════════════════════════════════════════════════════════════════════════

class TestDecisionsApi:
    def _decide(self, client, user, request_id, **body):
        return client.post(f"/api/v1/requests/{request_id}/decisions",
                           headers=auth(user), json=body)

    def test_final_approval(self, client, org, submitted, vm_pool):
        res = self._decide(client, org.dept_head, submitted["id"], level=1,
                           decision="APPROVED", comments="go ahead")
        data = res.get_json()
        assert res.status_code == 200
        assert data["status"] == "APPROVED"
        assert data["routed_to_fulfillment"] is True
        assert data["chain"]["outcome"] == "APPROVED"
        assert data["decisions"][0]["comments"] == "go ahead"
        assert data["pool"]["committed_qty"] == 2

    def test_insufficient_capacity(self, client, org, submitted, vm_pool):
        f.make_request(org.operator, vm_pool, qty=4, status="APPROVED")
        vm_pool.committed_qty = 4
        db.session.commit()

        res = self._decide(client, org.dept_head, submitted["id"], level=1, decision="APPROVED")
        body = res.get_json()
        assert res.status_code == 409
        assert body["code"] == "ERR_INSUFFICIENT_CAPACITY"
        assert body["details"] == {
            "pool_id": vm_pool.id,
            "available": 1,
            "total": 5,
            "committed": 4,
            "requested": 2,
            "shortfall": 1,
        }
        snap = client.get(f"/api/v1/requests/{submitted['id']}", headers=auth(org.requester))
        assert snap.get_json()["status"] == "IN_PROGRESS"

    def test_reject_requires_reason(self, client, org, submitted):
        res = self._decide(client, org.dept_head, submitted["id"], level=1, decision="REJECTED")
        assert res.status_code == 422

    def test_reject(self, client, org, submitted):
        res = self._decide(client, org.dept_head, submitted["id"], level=1,
                           decision="REJECTED", reason="no budget")
        assert res.status_code == 200
        assert res.get_json()["rejection_reason"] == "no budget"

    def test_wrong_level(self, client, org, two_level_pool):
        _, pool = two_level_pool
        req = f.make_request(org.requester, pool, qty=1, required_levels=2)
        db.session.commit()
        res = self._decide(client, org.admin, req.id, level=2, decision="APPROVED")
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_WRONG_LEVEL"
        assert res.get_json()["details"] == {"level": 2, "required_level": 1}

    def test_duplicate(self, client, org, two_level_pool):
        _, pool = two_level_pool
        req = f.make_request(org.requester, pool, qty=1, required_levels=2)
        db.session.commit()
        assert self._decide(client, org.dept_head, req.id, level=1, decision="APPROVED").status_code == 200
        res = self._decide(client, org.admin, req.id, level=1, decision="APPROVED")
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_DUPLICATE_APPROVAL"

    def test_approver_not_authorized(self, client, org, two_level_pool):
        _, pool = two_level_pool
        req = f.make_request(org.requester, pool, qty=1, required_levels=2)
        db.session.commit()
        self._decide(client, org.dept_head, req.id, level=1, decision="APPROVED")
        res = self._decide(client, org.dept_head, req.id, level=2, decision="APPROVED")
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_APPROVER_NOT_AUTHORIZED"

    def test_already_terminal(self, client, org, submitted):
        self._decide(client, org.dept_head, submitted["id"], level=1, decision="APPROVED")
        res = self._decide(client, org.dept_head, submitted["id"], level=1, decision="APPROVED")
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_ALREADY_TERMINAL"

    def test_missing_level(self, client, org, submitted):
        res = self._decide(client, org.dept_head, submitted["id"], decision="APPROVED")
        assert res.status_code == 422


# ═════════════════════════════════════════════════════════════════════════
# EDIT / INBOX
# ═════════════════════════════════════════════════════════════════════════

class TestEditApi:
    def test_edit(self, client, org, submitted):
        res = client.put(f"/api/v1/requests/{submitted['id']}", headers=auth(org.requester),
                         json={"requested_qty": 1, "justification": "smaller"})
        assert res.status_code == 200
        assert res.get_json()["requested_qty"] == 1
        assert res.get_json()["justification"] == "smaller"

    def test_edit_by_someone_else(self, client, org, submitted):
        res = client.put(f"/api/v1/requests/{submitted['id']}", headers=auth(org.admin),
                         json={"requested_qty": 1})
        assert res.status_code == 403

    def test_edit_after_level_one(self, client, org, two_level_pool):
        _, pool = two_level_pool
        req = f.make_request(org.requester, pool, qty=1, required_levels=2)
        db.session.commit()
        client.post(f"/api/v1/requests/{req.id}/decisions", headers=auth(org.dept_head),
                    json={"level": 1, "decision": "APPROVED"})

        res = client.put(f"/api/v1/requests/{req.id}", headers=auth(org.requester),
                         json={"requested_qty": 3})
        body = res.get_json()
        assert res.status_code == 409
        assert body["code"] == "ERR_NOT_EDITABLE"
        assert body["details"]["decided_level"] == 1


class TestPendingApprovals:
    def test_inbox(self, client, org, submitted):
        res = client.get("/api/v1/approvals/pending", headers=auth(org.dept_head))
        data = res.get_json()
        assert res.status_code == 200
        assert data["authority_level"] == 1
        assert [r["id"] for r in data["items"]] == [submitted["id"]]

    def test_member_inbox_empty(self, client, org, submitted):
        data = client.get("/api/v1/approvals/pending", headers=auth(org.requester)).get_json()
        assert data == {"items": [], "total": 0, "authority_level": 0}
