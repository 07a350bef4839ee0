"""
Client Service — CLIENT accounts as seen by staff.

Deletion removes everything the client owns in dependency order inside one
transaction:

    form_responses → passenger_slots → form_instances
                   → client_proposal_accesses → users

Audit rows that reference the client are detached (user_id set to NULL)
rather than deleted. Sales log lines are never touched.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from paxportal.core.exceptions import NotFoundError
from paxportal.models import db
from paxportal.models.audit import AuditAction, AuditLog, record_audit
from paxportal.models.auth import Role, User
from paxportal.models.capture import (
    CaptureStatus,
    ClientProposalAccess,
    FormInstance,
    FormResponse,
    PassengerSlot,
)
from paxportal.models.sales_order import SalesOrder
from paxportal.services.proposal_service import NOT_DISPATCHED
from paxportal.utils.crypto import generate_temp_password, hash_password
from paxportal.utils.helpers import iso, paginated, progress_percent

logger = logging.getLogger(__name__)


def _get_client(client_id: int) -> User:
    user = db.session.get(User, client_id)
    if user is None or user.role != Role.CLIENT:
        raise NotFoundError(resource="Client", resource_id=client_id)
    return user


def _accesses_of(user_id: int) -> list[ClientProposalAccess]:
    return (
        ClientProposalAccess.query.filter_by(user_id=user_id)
        .order_by(ClientProposalAccess.dispatched_at.desc())
        .all()
    )


def list_clients(page: int = 1, page_size: int = 20, search: str | None = None) -> dict:
    """Paginated CLIENT users with aggregate capture progress."""
    q = User.query.filter(User.role == Role.CLIENT)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    total = q.count()
    users = (
        q.order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * page_size).limit(page_size).all()
    )

    data = []
    for user in users:
        accesses = _accesses_of(user.id)
        total_slots = sum(a.form_instance.total_slots for a in accesses if a.form_instance)
        filled_slots = sum(a.form_instance.filled_slots for a in accesses if a.form_instance)
        data.append({
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "is_active": user.is_active,
            "created_at": iso(user.created_at),
            "total_proposals": len(accesses),
            "total_slots": total_slots,
            "filled_slots": filled_slots,
            "progress_percent": progress_percent(filled_slots, total_slots),
            "last_access_at": iso(accesses[0].dispatched_at) if accesses else None,
        })
    return paginated(data, total, page, page_size)


def get_client_by_id(client_id: int) -> dict:
    """Client profile with one row per dispatched proposal plus totals."""
    user = _get_client(client_id)

    proposals = []
    stats = {
        "total_proposals": 0,
        "total_slots": 0,
        "filled_slots": 0,
        "completed_proposals": 0,
        "in_progress_proposals": 0,
        "pending_proposals": 0,
    }
    for access in _accesses_of(user.id):
        order = (
            SalesOrder.query.filter_by(proposal=access.proposal)
            .order_by(SalesOrder.line_number.asc())
            .first()
        )
        instance = access.form_instance
        total = instance.total_slots if instance else 0
        filled = instance.filled_slots if instance else 0
        status = instance.capture_status if instance else NOT_DISPATCHED

        stats["total_proposals"] += 1
        stats["total_slots"] += total
        stats["filled_slots"] += filled
        if status == CaptureStatus.COMPLETED:
            stats["completed_proposals"] += 1
        elif status == CaptureStatus.IN_PROGRESS:
            stats["in_progress_proposals"] += 1
        else:
            stats["pending_proposals"] += 1

        proposals.append({
            "access_id": access.id,
            "access_token": access.access_token,
            "proposal": access.proposal,
            "game": order.game if order else "",
            "hotel": order.hotel if order else "",
            "seller": order.seller if order else "",
            "capture_status": status,
            "total_slots": total,
            "filled_slots": filled,
            "progress_percent": progress_percent(filled, total),
            "deadline": iso(access.deadline),
            "dispatched_at": iso(access.dispatched_at),
        })
    stats["progress_percent"] = progress_percent(stats["filled_slots"], stats["total_slots"])

    return {
        **user.to_dict(),
        "proposals": proposals,
        "stats": stats,
    }


def deactivate_client(client_id: int) -> User:
    user = _get_client(client_id)
    user.is_active = False
    db.session.commit()
    logger.info("Client deactivated: %s", user.email)
    record_audit(AuditAction.CLIENT_DEACTIVATED, entity="User", entity_id=user.id)
    return user


def delete_client(client_id: int) -> None:
    """Delete a client and everything hanging off its accesses."""
    user = _get_client(client_id)
    email = user.email

    access_ids = [a.id for a in ClientProposalAccess.query.with_entities(ClientProposalAccess.id)
                  .filter_by(user_id=user.id)]
    instance_ids = [i.id for i in FormInstance.query.with_entities(FormInstance.id)
                    .filter(FormInstance.access_id.in_(access_ids))] if access_ids else []
    slot_ids = [s.id for s in PassengerSlot.query.with_entities(PassengerSlot.id)
                .filter(PassengerSlot.form_instance_id.in_(instance_ids))] if instance_ids else []

    try:
        if slot_ids:
            FormResponse.query.filter(FormResponse.passenger_slot_id.in_(slot_ids)) \
                .delete(synchronize_session=False)
            PassengerSlot.query.filter(PassengerSlot.id.in_(slot_ids)) \
                .delete(synchronize_session=False)
        if instance_ids:
            FormInstance.query.filter(FormInstance.id.in_(instance_ids)) \
                .delete(synchronize_session=False)
        ClientProposalAccess.query.filter_by(user_id=user.id).delete(synchronize_session=False)
        AuditLog.query.filter_by(user_id=user.id).update({"user_id": None}, synchronize_session=False)
        db.session.delete(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Client deletion failed: %s", email)
        raise

    logger.info(
        "Client deleted: %s (%d accesses, %d instances, %d slots)",
        email, len(access_ids), len(instance_ids), len(slot_ids),
    )
    record_audit(
        AuditAction.CLIENT_DELETED,
        entity="User",
        entity_id=client_id,
        payload={"email": email, "accesses": len(access_ids), "slots": len(slot_ids)},
    )


def reset_client_password(client_id: int) -> str:
    """Issue a new temporary password; the client must change it on next login."""
    user = _get_client(client_id)
    temp_password = generate_temp_password()
    user.password_hash = hash_password(temp_password)
    user.must_change_password = True
    db.session.commit()
    record_audit(AuditAction.CLIENT_PASSWORD_RESET, entity="User", entity_id=user.id)
    return temp_password
