"""
Capture dispatch — grants a client access to fill a proposal's passenger forms.

Flow:
    1. Preconditions on the proposal's first sales log line
       (status CONFIRMED, client e-mail present)
    2. Resolve or create the CLIENT user (new → temp password)
    3. Resolve or create the access for (client, proposal); re-dispatch
       updates it in place, generating the form instance if missing
    4. Commit
    5. EMAIL mode only: send credentials. A send failure surfaces as
       EmailSendError while everything from step 4 stays committed;
       re-dispatch is the recovery path.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from email_validator import EmailNotValidError, validate_email
from flask import current_app
from sqlalchemy import func

from paxportal.core.exceptions import NotFoundError, PreconditionFailedError, ValidationError
from paxportal.core.fields import get_field_catalog
from paxportal.models import db
from paxportal.models.audit import AuditAction, record_audit
from paxportal.models.auth import Role, User
from paxportal.models.capture import (
    DISPATCH_MODES,
    CaptureStatus,
    ClientProposalAccess,
    DispatchMode,
    derive_capture_status,
)
from paxportal.services.email_service import EmailService, capture_invite_context
from paxportal.services.form_generator import generate_form_instance
from paxportal.services.sales_order_service import get_proposal_lines
from paxportal.utils.crypto import generate_temp_password, hash_password
from paxportal.utils.helpers import parse_datetime, utcnow

logger = logging.getLogger(__name__)

CONFIRMED_STATUS = "CONFIRMED"


def client_portal_link() -> str:
    return f"{current_app.config['FRONTEND_URL'].rstrip('/')}/client"


def _normalise_email(raw: str) -> str:
    try:
        return validate_email(raw, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise PreconditionFailedError("INVALID_EMAIL", f"Client email in Sales Log is invalid: {exc}") from exc


def _coerce_deadline(deadline) -> datetime | None:
    try:
        return parse_datetime(deadline)
    except (TypeError, ValueError) as exc:
        raise ValidationError("deadline must be an ISO-8601 date or datetime",
                              details={"deadline": str(deadline)}) from exc


def _resolve_client(email: str, client_name: str) -> tuple[User, str | None]:
    user = User.query.filter(func.lower(User.email) == email.lower()).first()
    if user is not None:
        return user, None

    temp_password = generate_temp_password()
    user = User(
        email=email,
        name=client_name or "Client",
        password_hash=hash_password(temp_password),
        role=Role.CLIENT,
        must_change_password=True,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()
    logger.info("Client user created: %s", email)
    return user, temp_password


def dispatch_capture(
    proposal: str,
    mode: str,
    dispatched_by: int | None,
    deadline=None,
) -> dict:
    """Dispatch (or re-dispatch) the passenger capture for a proposal.

    Returns:
        {access_token, client_link, client_email, email_sent[, temp_password]}
        ``temp_password`` is present only when the client user was created now.

    Raises:
        ValidationError: unknown mode or unparsable deadline.
        NotFoundError: proposal has no sales log lines.
        PreconditionFailedError: NOT_CONFIRMED / NO_EMAIL / INVALID_EMAIL.
        EmailNotConfiguredError, EmailSendError: EMAIL mode delivery failures.
    """
    if mode not in DISPATCH_MODES:
        raise ValidationError(f"mode must be one of {sorted(DISPATCH_MODES)}", details={"mode": mode})
    deadline_at = _coerce_deadline(deadline)

    lines = get_proposal_lines(proposal)
    if not lines:
        raise NotFoundError(resource="Proposal", resource_id=proposal)

    first = lines[0]
    if (first.status or "").strip().upper() != CONFIRMED_STATUS:
        raise PreconditionFailedError(
            "NOT_CONFIRMED", f"Proposal is not confirmed. Current status: {first.status or '—'}",
        )
    if not (first.client_email or "").strip():
        raise PreconditionFailedError("NO_EMAIL", "Client email is missing from Sales Log")
    client_email = _normalise_email(first.client_email.strip())

    user, temp_password = _resolve_client(client_email, first.client_name)

    access = ClientProposalAccess.query.filter_by(user_id=user.id, proposal=proposal).first()
    now = utcnow()
    if access is not None:
        access.dispatch_mode = mode
        access.dispatched_by = dispatched_by
        access.dispatched_at = now
        if deadline_at is not None:
            access.deadline = deadline_at
        instance = access.form_instance
        if instance is None:
            generate_form_instance(access.id, proposal)
        elif instance.capture_status == CaptureStatus.EXPIRED and deadline_at and deadline_at > now:
            # A new future deadline reopens an expired form
            instance.capture_status = derive_capture_status(instance.filled_slots, instance.total_slots)
        redispatch = True
    else:
        access = ClientProposalAccess(
            user_id=user.id,
            proposal=proposal,
            access_token=str(uuid.uuid4()),
            dispatch_mode=mode,
            dispatched_by=dispatched_by,
            dispatched_at=now,
            deadline=deadline_at,
        )
        db.session.add(access)
        db.session.flush()
        generate_form_instance(access.id, proposal)
        redispatch = False

    db.session.commit()
    logger.info("Capture %s: proposal=%s mode=%s", "re-dispatched" if redispatch else "dispatched",
                proposal, mode, extra={"proposal": proposal})

    link = client_portal_link()
    record_audit(
        AuditAction.CAPTURE_DISPATCHED if mode == DispatchMode.EMAIL else AuditAction.CAPTURE_LINK_GENERATED,
        entity="Proposal",
        entity_id=proposal,
        payload={
            "mode": mode,
            "deadline": deadline_at.isoformat() if deadline_at else None,
            "redispatch": redispatch,
        },
        user_id=dispatched_by,
    )

    email_sent = False
    if mode == DispatchMode.EMAIL:
        EmailService.send_from_template(
            to_email=client_email,
            to_name=first.client_name or None,
            template_name="capture_invite",
            context=capture_invite_context(
                proposal=proposal,
                client_name=first.client_name,
                client_email=client_email,
                client_link=link,
                temp_password=temp_password,
                deadline_text=deadline_at.strftime("%d/%m/%Y") if deadline_at else None,
            ),
        )
        email_sent = True
        logger.info("Capture email sent to %s", client_email, extra={"proposal": proposal})

    result = {
        "access_token": access.access_token,
        "client_link": link,
        "client_email": client_email,
        "email_sent": email_sent,
    }
    if temp_password:
        result["temp_password"] = temp_password
    return result


def get_form_schema() -> list[dict]:
    """Passenger field catalog in display order."""
    return get_field_catalog()
