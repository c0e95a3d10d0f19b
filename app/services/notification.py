"""
Resource Allocation Platform
Notification Service.

Central service for creating and querying in-app notifications, and the
dispatcher that turns request lifecycle events into notifications.

The lifecycle never depends on notification delivery: it calls
``emit_request_event`` after its own commit, and that wrapper logs and
swallows every failure.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select

from app.models import db
from app.models.notification import Notification
from app.services import identity

logger = logging.getLogger(__name__)

# ── Event types ──────────────────────────────────────────────────────────────

EVENT_PENDING_APPROVAL = "request.pending_approval"
EVENT_APPROVED = "request.approved"
EVENT_REJECTED = "request.rejected"
EVENT_ASSIGNED = "request.assigned"
EVENT_COMPLETED = "request.completed"

REQUEST_EVENTS = frozenset({
    EVENT_PENDING_APPROVAL,
    EVENT_APPROVED,
    EVENT_REJECTED,
    EVENT_ASSIGNED,
    EVENT_COMPLETED,
})


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, title, recipient_id=None, message="", category="system", severity="info",
               event_type="", entity_type="", entity_id=None, payload=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        notif = Notification(
            recipient_id=recipient_id,
            title=title,
            message=message,
            category=category,
            severity=severity,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    def broadcast(*, title, recipient_ids, message="", category="system", severity="info",
                  event_type="", entity_type="", entity_id=None, payload=None):
        """
        Send the same notification to several users (one row each).

        Duplicate ids are collapsed. Returns the created Notification instances.
        """
        notifications = []
        for rid in dict.fromkeys(recipient_ids):
            notif = Notification(
                recipient_id=rid,
                title=title,
                message=message,
                category=category,
                severity=severity,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                payload=payload,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.commit()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a user (plus broadcasts), newest first.
        """
        where = [
            (Notification.recipient_id == recipient_id) | (Notification.recipient_id.is_(None)),
        ]
        if unread_only:
            where.append(Notification.is_read.is_(False))
        total = db.session.execute(
            select(func.count(Notification.id)).where(*where)
        ).scalar_one()
        items = db.session.execute(
            select(Notification)
            .where(*where)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return items, total

    @staticmethod
    def unread_count(recipient_id):
        """Return count of unread notifications."""
        return db.session.execute(
            select(func.count(Notification.id)).where(
                (Notification.recipient_id == recipient_id) | (Notification.recipient_id.is_(None)),
                Notification.is_read.is_(False),
            )
        ).scalar_one()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient_id):
        """Mark one of the user's notifications as read; None if not theirs."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient_id not in (recipient_id, None):
            return None
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient_id):
        """Mark all of the user's notifications as read."""
        now = datetime.now(timezone.utc)
        items = db.session.execute(
            select(Notification).where(
                Notification.recipient_id == recipient_id,
                Notification.is_read.is_(False),
            )
        ).scalars().all()
        for notif in items:
            notif.is_read = True
            notif.read_at = now
        db.session.commit()
        return len(items)

    # ── Request lifecycle dispatch ────────────────────────────────────────

    @staticmethod
    def dispatch(event, request):
        """Write the notifications for one request lifecycle event.

        Returns the created notifications.
        """
        if event not in REQUEST_EVENTS:
            raise ValueError(f"Unknown request event: {event}")

        label = f"#{request.id} ({request.requested_qty} x {request.resource_label})"
        common = {
            "event_type": event,
            "entity_type": "resource_request",
            "entity_id": request.id,
        }

        if event == EVENT_PENDING_APPROVAL:
            level = request.current_level + 1
            approvers = identity.approvers_for_level(level)
            return NotificationService.broadcast(
                title=f"Request {label} awaits level {level} approval",
                message=request.justification or "",
                recipient_ids=[u.id for u in approvers],
                category="approval",
                **common,
            )

        if event == EVENT_APPROVED:
            created = NotificationService.broadcast(
                title=f"Request {label} approved",
                message="All approval levels signed off; routed to fulfillment.",
                recipient_ids=[request.requester_id],
                category="approval",
                severity="success",
                **common,
            )
            staff = [u.id for u in identity.fulfillment_staff() if u.id != request.requester_id]
            created += NotificationService.broadcast(
                title=f"Request {label} ready for assignment",
                recipient_ids=staff,
                category="fulfillment",
                **common,
            )
            return created

        if event == EVENT_REJECTED:
            return NotificationService.broadcast(
                title=f"Request {label} rejected",
                message=request.rejection_reason or "",
                recipient_ids=[request.requester_id],
                category="approval",
                severity="error",
                **common,
            )

        if event == EVENT_ASSIGNED:
            return NotificationService.broadcast(
                title=f"Request {label} assigned",
                message="You have been assigned a fulfillment task.",
                recipient_ids=[request.assigned_to_id],
                category="fulfillment",
                **common,
            )

        # EVENT_COMPLETED
        return NotificationService.broadcast(
            title=f"Request {label} completed",
            message=request.completion_notes or "",
            recipient_ids=[request.requester_id],
            category="fulfillment",
            severity="success",
            payload={"credentials": request.credentials} if request.credentials else None,
            **common,
        )


def emit_request_event(event, request):
    """Dispatch a lifecycle event; never raises.

    Runs after the caller's commit.  A failure only rolls back the
    notification rows and is logged.
    """
    try:
        return NotificationService.dispatch(event, request)
    except Exception:
        db.session.rollback()
        logger.exception(
            "Notification dispatch failed for %s", event,
            extra={"event_type": event, "resource_request_id": getattr(request, "id", None)},
        )
        return []
