"""
Capture state machine — passenger response saves and admin-field edits.

Slot lifecycle:   PENDING ──save──▶ FILLED
Instance status:  derived from a fresh COUNT of FILLED slots after every
                  save (never incremented), so concurrent saves on sibling
                  slots converge to the stored truth.

    AWAITING_FILL ──▶ IN_PROGRESS ──▶ COMPLETED
          └──────────────┴─(deadline sweep)──▶ EXPIRED

Also hosts the client-portal read views (instance by access token,
single slot, "my proposals").
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from paxportal.core.exceptions import (
    DeadlineExpiredError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from paxportal.core.fields import ADMIN_FIELD_KEYS
from paxportal.models import db
from paxportal.models.audit import AuditAction, record_audit
from paxportal.models.capture import (
    CaptureStatus,
    ClientProposalAccess,
    FormInstance,
    FormResponse,
    PassengerSlot,
    SlotStatus,
    derive_capture_status,
)
from paxportal.models.sales_order import SalesOrder
from paxportal.services.access_policy import owns_slots
from paxportal.utils.helpers import as_utc, iso, progress_percent, utcnow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Lookups & ownership
# ═══════════════════════════════════════════════════════════════════════════

def _get_slot(slot_id: int) -> PassengerSlot:
    slot = db.session.get(PassengerSlot, slot_id)
    if slot is None:
        raise NotFoundError(resource="PassengerSlot", resource_id=slot_id)
    return slot


def verify_access_ownership(access: ClientProposalAccess, user) -> None:
    """Clients may only touch their own accesses; staff pass."""
    if user is not None and owns_slots(user.role) and access.user_id != user.id:
        logger.warning("User %s denied access %s owned by %s", user.id, access.id, access.user_id)
        raise ForbiddenError("You do not have access to this form")


def verify_slot_ownership(slot_id: int, user) -> PassengerSlot:
    slot = _get_slot(slot_id)
    verify_access_ownership(slot.form_instance.access, user)
    return slot


def is_deadline_passed(access: ClientProposalAccess, now=None) -> bool:
    deadline = as_utc(access.deadline)
    return deadline is not None and deadline < (now or utcnow())


def _first_line(proposal: str) -> SalesOrder | None:
    return (
        SalesOrder.query.filter_by(proposal=proposal)
        .order_by(SalesOrder.line_number.asc())
        .first()
    )


def count_filled_slots(form_instance_id: int) -> int:
    return (
        db.session.query(func.count(PassengerSlot.id))
        .filter(
            PassengerSlot.form_instance_id == form_instance_id,
            PassengerSlot.status == SlotStatus.FILLED,
        )
        .scalar()
    ) or 0


# ═══════════════════════════════════════════════════════════════════════════
#  Response save (client path)
# ═══════════════════════════════════════════════════════════════════════════

def save_passenger_response(slot_id: int, answers, submitted_by: int | None = None) -> dict:
    """Save one passenger's answers and re-derive the instance status.

    Order of checks: slot exists → deadline not passed → answers is an
    object. No row is touched when any of them fails.

    Client-owned answers are fully replaced. Admin-owned keys already
    stored are carried over, and admin keys in ``answers`` are ignored;
    those are written through ``update_admin_fields`` only.

    Raises:
        NotFoundError: slot does not exist.
        DeadlineExpiredError: the owning access's deadline has passed.
        ValidationError: ``answers`` is not a JSON object.
    """
    slot = _get_slot(slot_id)
    instance = slot.form_instance
    access = instance.access

    if is_deadline_passed(access):
        logger.info("Save rejected after deadline: slot=%s", slot_id,
                    extra={"slot_id": slot_id, "proposal": instance.proposal})
        raise DeadlineExpiredError()

    if not isinstance(answers, dict):
        raise ValidationError("answers must be an object", details={"answers": "expected object"})

    previous_status = instance.capture_status
    cleaned = {k: v for k, v in answers.items() if k not in ADMIN_FIELD_KEYS}

    response = slot.response
    if response is None:
        response = FormResponse(passenger_slot_id=slot.id, answers=cleaned, submitted_by=submitted_by)
        db.session.add(response)
    else:
        kept_admin = {k: v for k, v in (response.answers or {}).items() if k in ADMIN_FIELD_KEYS}
        response.answers = {**cleaned, **kept_admin}
        response.submitted_by = submitted_by
        response.submitted_at = utcnow()

    slot.status = SlotStatus.FILLED
    db.session.flush()

    filled = count_filled_slots(instance.id)
    instance.filled_slots = filled
    instance.capture_status = derive_capture_status(filled, instance.total_slots)
    db.session.commit()

    logger.info(
        "Passenger response saved: slot=%s filled=%d/%d status=%s",
        slot.id, filled, instance.total_slots, instance.capture_status,
        extra={"slot_id": slot.id, "form_instance_id": instance.id, "proposal": instance.proposal},
    )

    record_audit(
        AuditAction.FORM_SAVED,
        entity="PassengerSlot",
        entity_id=slot.id,
        payload={"filled_slots": filled, "total_slots": instance.total_slots},
        user_id=submitted_by,
    )
    if (
        instance.capture_status == CaptureStatus.COMPLETED
        and previous_status != CaptureStatus.COMPLETED
    ):
        record_audit(
            AuditAction.FORM_COMPLETED,
            entity="FormInstance",
            entity_id=instance.id,
            payload={"proposal": instance.proposal, "total_slots": instance.total_slots},
            user_id=submitted_by,
        )

    return {
        "status": "saved",
        "filled_slots": filled,
        "total_slots": instance.total_slots,
        "capture_status": instance.capture_status,
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Admin-field edit (staff path)
# ═══════════════════════════════════════════════════════════════════════════

def update_admin_fields(slot_id: int, fields, edited_by: int | None = None) -> dict:
    """Merge admin-owned keys into a slot's answers.

    Field-level merge; slot status and instance aggregates are untouched.
    Unknown or client-owned keys are ignored.

    Raises:
        NotFoundError: slot does not exist.
        ValidationError: ``fields`` is not an object or holds no admin key.
    """
    slot = _get_slot(slot_id)
    if not isinstance(fields, dict):
        raise ValidationError("fields must be an object")

    updates = {k: v for k, v in fields.items() if k in ADMIN_FIELD_KEYS}
    if not updates:
        raise ValidationError(
            "No admin fields supplied",
            details={"allowed": sorted(ADMIN_FIELD_KEYS)},
        )

    response = slot.response
    if response is None:
        response = FormResponse(passenger_slot_id=slot.id, answers=dict(updates), submitted_by=edited_by)
        db.session.add(response)
    else:
        # Reassign so the JSON column registers the change
        response.answers = {**(response.answers or {}), **updates}
    db.session.commit()

    logger.info("Admin fields updated: slot=%s keys=%s", slot.id, sorted(updates),
                extra={"slot_id": slot.id})
    record_audit(
        AuditAction.ADMIN_EDITED,
        entity="PassengerSlot",
        entity_id=slot.id,
        payload={"fields": sorted(updates)},
        user_id=edited_by,
    )
    return {
        "slot_id": slot.id,
        "status": slot.status,
        "answers": dict(response.answers or {}),
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Client portal reads
# ═══════════════════════════════════════════════════════════════════════════

def get_form_instance(access_token: str, viewer=None) -> dict:
    """Form overview for an access token, slots ordered by room then index."""
    access = ClientProposalAccess.query.filter_by(access_token=access_token).first()
    if access is None or access.form_instance is None:
        raise NotFoundError(resource="Form", resource_id=access_token)
    verify_access_ownership(access, viewer)

    instance = access.form_instance
    order = _first_line(access.proposal)
    return {
        "access_token": access.access_token,
        "proposal": access.proposal,
        "game": order.game if order else "",
        "hotel": order.hotel if order else "",
        "capture_status": instance.capture_status,
        "total_slots": instance.total_slots,
        "filled_slots": instance.filled_slots,
        "progress_percent": instance.progress,
        "deadline": iso(access.deadline),
        "deadline_passed": is_deadline_passed(access),
        "slots": [slot.to_dict() for slot in instance.slots],
    }


def get_passenger_slot(slot_id: int, viewer=None) -> dict:
    slot = verify_slot_ownership(slot_id, viewer)
    response = slot.response
    return {
        "id": slot.id,
        "room_label": slot.room_label,
        "slot_index": slot.slot_index,
        "status": slot.status,
        "response": {
            "answers": dict(response.answers or {}),
            "submitted_at": iso(response.submitted_at),
        } if response else None,
    }


def get_client_proposals(user_id: int) -> list[dict]:
    """Every proposal dispatched to a client, newest dispatch first."""
    accesses = (
        ClientProposalAccess.query.filter_by(user_id=user_id)
        .order_by(ClientProposalAccess.dispatched_at.desc())
        .all()
    )
    results = []
    for access in accesses:
        order = _first_line(access.proposal)
        instance: FormInstance | None = access.form_instance
        results.append({
            "access_token": access.access_token,
            "proposal": access.proposal,
            "game": order.game if order else "",
            "hotel": order.hotel if order else "",
            "capture_status": instance.capture_status if instance else CaptureStatus.AWAITING_FILL,
            "total_slots": instance.total_slots if instance else 0,
            "filled_slots": instance.filled_slots if instance else 0,
            "progress_percent": progress_percent(instance.filled_slots, instance.total_slots) if instance else 0,
            "deadline": iso(access.deadline),
        })
    return results
