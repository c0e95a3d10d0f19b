"""
Notification dispatch and API tests.

Tests cover:
  - Who is notified for each request lifecycle event
  - Credentials handed to the requester on completion
  - GET/POST /api/v1/notifications endpoints
"""

import pytest

import factories as f
from factories import auth
from app.models import db
from app.models.notification import Notification
from app.services import fulfillment_service as fulfillment
from app.services import request_lifecycle as lifecycle
from app.services.notification import (
    EVENT_APPROVED,
    EVENT_ASSIGNED,
    EVENT_COMPLETED,
    EVENT_PENDING_APPROVAL,
    EVENT_REJECTED,
    NotificationService,
    emit_request_event,
)


def _recipients(event_type):
    rows = Notification.query.filter_by(event_type=event_type).order_by(Notification.id).all()
    return [n.recipient_id for n in rows]


@pytest.fixture()
def two_level(phase):
    template = f.make_template("Managed Database", approval_levels=2)
    f.make_pool(phase, template=template, total_qty=4)
    db.session.commit()
    return template


class TestDispatch:
    def test_submit_notifies_level_one_approvers(self, org, phase, vm_template, vm_pool):
        lifecycle.submit(org.requester.id, phase.id, 1, {}, "UAT",
                         resource_template_id=vm_template.id)
        assert _recipients(EVENT_PENDING_APPROVAL) == [org.dept_head.id]

    def test_partial_approval_notifies_next_level(self, org, phase, two_level):
        req = lifecycle.submit(org.requester.id, phase.id, 1, {}, "UAT",
                               resource_template_id=two_level.id)
        lifecycle.decide(req.id, org.dept_head.id, 1, "APPROVED")
        assert _recipients(EVENT_PENDING_APPROVAL) == [org.dept_head.id, org.it_head.id]

    def test_final_approval_notifies_requester_and_staff(self, org, phase, vm_template, vm_pool):
        req = lifecycle.submit(org.requester.id, phase.id, 1, {}, "UAT",
                               resource_template_id=vm_template.id)
        lifecycle.decide(req.id, org.dept_head.id, 1, "APPROVED")

        recipients = _recipients(EVENT_APPROVED)
        assert recipients[0] == org.requester.id
        assert sorted(recipients[1:]) == sorted([org.it_head.id, org.it_team.id, org.admin.id])

    def test_rejection_notifies_requester_with_reason(self, org, phase, vm_template, vm_pool):
        req = lifecycle.submit(org.requester.id, phase.id, 1, {}, "UAT",
                               resource_template_id=vm_template.id)
        lifecycle.decide(req.id, org.dept_head.id, 1, "REJECTED", reason="use the shared VM")

        notif = Notification.query.filter_by(event_type=EVENT_REJECTED).one()
        assert notif.recipient_id == org.requester.id
        assert notif.message == "use the shared VM"
        assert notif.severity == "error"

    def test_assign_and_complete_notifications(self, org, vm_pool):
        req = f.make_request(org.requester, vm_pool, qty=1, status="APPROVED")
        db.session.commit()
        fulfillment.assign(req.id, org.it_head.id, org.operator.id)
        fulfillment.complete(req.id, org.operator.id, "ready", {"password": "s3cret"})

        assert _recipients(EVENT_ASSIGNED) == [org.operator.id]
        done = Notification.query.filter_by(event_type=EVENT_COMPLETED).one()
        assert done.recipient_id == org.requester.id
        assert done.payload == {"credentials": {"password": "s3cret"}}
        assert done.entity_type == "resource_request"
        assert done.entity_id == req.id

    def test_unknown_event_is_swallowed(self, org, vm_pool, caplog):
        req = f.make_request(org.requester, vm_pool, qty=1)
        db.session.commit()
        assert emit_request_event("request.exploded", req) == []
        assert "Notification dispatch failed" in caplog.text

    def test_dispatch_rejects_unknown_event(self, org, vm_pool):
        req = f.make_request(org.requester, vm_pool, qty=1)
        with pytest.raises(ValueError):
            NotificationService.dispatch("request.exploded", req)

    def test_completion_survives_notification_failure(self, org, vm_pool, monkeypatch):
        req = f.make_request(org.requester, vm_pool, qty=1, status="APPROVED")
        db.session.commit()
        fulfillment.assign(req.id, org.it_head.id, org.operator.id)

        def boom(event, request):
            raise RuntimeError("notification store offline")

        monkeypatch.setattr(NotificationService, "dispatch", staticmethod(boom))
        fulfillment.complete(req.id, org.operator.id, "ready")

        db.session.expire_all()
        assert db.session.get(type(req), req.id).status == "COMPLETED"


class TestNotificationApi:
    @pytest.fixture()
    def inbox(self, org):
        first = NotificationService.create(title="Request #1 approved", recipient_id=org.requester.id)
        second = NotificationService.create(title="Request #2 rejected", recipient_id=org.requester.id)
        NotificationService.create(title="Someone else's", recipient_id=org.operator.id)
        NotificationService.create(title="Maintenance tonight")
        return first, second

    def test_list(self, client, org, inbox):
        res = client.get("/api/v1/notifications", headers=auth(org.requester))
        data = res.get_json()
        assert res.status_code == 200
        assert data["total"] == 3
        assert data["unread_count"] == 3
        assert {n["title"] for n in data["items"]} == {
            "Request #1 approved", "Request #2 rejected", "Maintenance tonight",
        }

    def test_list_paging(self, client, org, inbox):
        data = client.get("/api/v1/notifications?limit=1&offset=1",
                          headers=auth(org.requester)).get_json()
        assert data["total"] == 3
        assert len(data["items"]) == 1

    def test_mark_read(self, client, org, inbox):
        first, _ = inbox
        res = client.post(f"/api/v1/notifications/{first.id}/read", headers=auth(org.requester))
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

        count = client.get("/api/v1/notifications/unread-count", headers=auth(org.requester))
        assert count.get_json() == {"unread_count": 2}
        unread = client.get("/api/v1/notifications?unread_only=true",
                            headers=auth(org.requester)).get_json()
        assert first.id not in [n["id"] for n in unread["items"]]

    def test_cannot_read_someone_elses(self, client, org, inbox):
        first, _ = inbox
        res = client.post(f"/api/v1/notifications/{first.id}/read", headers=auth(org.operator))
        assert res.status_code == 404

    def test_mark_all_read(self, client, org, inbox):
        res = client.post("/api/v1/notifications/read-all", headers=auth(org.requester))
        assert res.get_json() == {"marked": 2}
        count = client.get("/api/v1/notifications/unread-count", headers=auth(org.requester))
        assert count.get_json() == {"unread_count": 1}
