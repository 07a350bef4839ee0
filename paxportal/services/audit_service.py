"""Audit trail listing, scoped by the viewer's role."""

from flask import current_app

from paxportal.core.exceptions import ForbiddenError
from paxportal.models.audit import AuditLog
from paxportal.models.auth import User
from paxportal.services.access_policy import audit_scope

DEFAULT_AUDIT_PAGE_SIZE = 30


def list_audit_logs(viewer, *, action=None, user_id=None, page=1, page_size=DEFAULT_AUDIT_PAGE_SIZE):
    """Return (entries, total), newest first.

    MASTER sees every entry; ADMIN only its own (unless
    AUDIT_ADMIN_SEES_OWN_ONLY is off); CLIENT nothing.
    """
    scope = audit_scope(viewer.role, current_app.config.get("AUDIT_ADMIN_SEES_OWN_ONLY", True))
    if scope == "none":
        raise ForbiddenError("Audit log is not available for this role")

    q = AuditLog.query
    if action:
        q = q.filter(AuditLog.action == action)
    if user_id:
        q = q.filter(AuditLog.user_id == user_id)
    if scope == "own":
        q = q.filter(AuditLog.user_id == viewer.id)

    total = q.count()
    logs = (
        q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size).limit(page_size).all()
    )

    user_ids = {log.user_id for log in logs if log.user_id}
    users = {u.id: u for u in User.query.filter(User.id.in_(user_ids))} if user_ids else {}
    entries = []
    for log in logs:
        d = log.to_dict()
        actor = users.get(log.user_id)
        d["user"] = {"name": actor.name, "email": actor.email} if actor else None
        entries.append(d)
    return entries, total
