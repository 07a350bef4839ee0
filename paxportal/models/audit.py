"""
World Cup 2026 Passenger Capture Portal
Audit domain model.

Models:
    - AuditLog: append-only trail of sync runs, dispatches, saves and admin edits.

``record_audit`` is fire-and-forget: the row is written inside a SAVEPOINT
and committed on its own, so a failing audit write can never undo or
block the business operation that triggered it.
"""

import logging
from datetime import datetime, timezone

from paxportal.models import db
from paxportal.utils.helpers import iso

logger = logging.getLogger(__name__)


# ── Constants ────────────────────────────────────────────────────────────────

class AuditAction:
    SYNC_STARTED = "SYNC_STARTED"
    SYNC_COMPLETED = "SYNC_COMPLETED"
    SYNC_FAILED = "SYNC_FAILED"
    FORMS_EXPIRED = "FORMS_EXPIRED"
    CAPTURE_DISPATCHED = "CAPTURE_DISPATCHED"
    CAPTURE_LINK_GENERATED = "CAPTURE_LINK_GENERATED"
    FORM_SAVED = "FORM_SAVED"
    FORM_COMPLETED = "FORM_COMPLETED"
    ADMIN_EDITED = "ADMIN_EDITED"
    CLIENT_DEACTIVATED = "CLIENT_DEACTIVATED"
    CLIENT_DELETED = "CLIENT_DELETED"
    CLIENT_PASSWORD_RESET = "CLIENT_PASSWORD_RESET"
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_entity", "entity", "entity_id"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Actor; NULL for system jobs or after the user was deleted",
    )
    user_role = db.Column(db.String(20), nullable=True)
    action = db.Column(db.String(60), nullable=False)
    entity = db.Column(db.String(60), nullable=True,
                       comment="SyncLog | Proposal | PassengerSlot | User …")
    entity_id = db.Column(db.String(64), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_role": self.user_role,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "ip_address": self.ip_address,
            "payload": self.payload or {},
            "timestamp": iso(self.timestamp),
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def record_audit(
    action: str,
    *,
    entity: str | None = None,
    entity_id=None,
    payload: dict | None = None,
    user_id: int | None = None,
    user_role: str | None = None,
) -> AuditLog | None:
    """
    Append one audit row and commit it.

    Actor and IP are taken from the request context when not given.
    Failures are logged and swallowed; returns None in that case.
    """
    ip_address = None
    try:
        from flask import g, has_request_context, request
        if has_request_context():
            current = getattr(g, "current_user", None)
            if current is not None:
                if user_id is None:
                    user_id = current.id
                if user_role is None:
                    user_role = current.role
            ip_address = request.headers.get("X-Forwarded-For", request.remote_addr)
    except RuntimeError:
        # Outside an app context (CLI / scheduler)
        pass

    try:
        with db.session.begin_nested():
            log = AuditLog(
                user_id=user_id,
                user_role=user_role,
                action=action,
                entity=entity,
                entity_id=str(entity_id) if entity_id is not None else None,
                ip_address=ip_address,
                payload=payload or {},
            )
            db.session.add(log)
        db.session.commit()
        return log
    except Exception:
        logger.exception("Audit write failed: action=%s entity=%s/%s", action, entity, entity_id)
        db.session.rollback()
        return None
