"""
World Cup 2026 Passenger Capture Portal
Capture domain models.

Models:
    - ClientProposalAccess: a client's grant to fill one proposal (unique per user+proposal)
    - FormInstance: 1:1 with an access; aggregate progress and capture status
    - PassengerSlot: one passenger position inside a room
    - FormResponse: answers for one slot (at most one per slot)

Ownership: User → Access → Instance → Slot → Response. No ORM cascades;
client deletion removes children explicitly in dependency order.
"""

from datetime import datetime, timezone

from paxportal.models import db
from paxportal.utils.helpers import iso, progress_percent


class DispatchMode:
    EMAIL = "EMAIL"
    MANUAL_LINK = "MANUAL_LINK"


DISPATCH_MODES = {DispatchMode.EMAIL, DispatchMode.MANUAL_LINK}


class CaptureStatus:
    AWAITING_FILL = "AWAITING_FILL"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


CAPTURE_STATUSES = (
    CaptureStatus.AWAITING_FILL,
    CaptureStatus.IN_PROGRESS,
    CaptureStatus.COMPLETED,
    CaptureStatus.EXPIRED,
)


class SlotStatus:
    PENDING = "PENDING"
    FILLED = "FILLED"


def derive_capture_status(filled: int, total: int) -> str:
    """Capture status implied by slot counts (never EXPIRED)."""
    if total > 0 and filled >= total:
        return CaptureStatus.COMPLETED
    if filled > 0:
        return CaptureStatus.IN_PROGRESS
    return CaptureStatus.AWAITING_FILL


class ClientProposalAccess(db.Model):
    __tablename__ = "client_proposal_accesses"
    __table_args__ = (
        db.UniqueConstraint("user_id", "proposal", name="uq_access_user_proposal"),
        db.Index("idx_access_proposal", "proposal"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    proposal = db.Column(db.String(64), nullable=False)
    access_token = db.Column(db.String(36), nullable=False, unique=True,
                             comment="uuid4; identifies the form in client links")
    dispatch_mode = db.Column(db.String(20), nullable=False, comment="EMAIL | MANUAL_LINK")
    dispatched_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
                              nullable=True)
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=False,
                              default=lambda: datetime.now(timezone.utc))
    deadline = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])
    form_instance = db.relationship("FormInstance", back_populates="access", uselist=False)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "proposal": self.proposal,
            "access_token": self.access_token,
            "dispatch_mode": self.dispatch_mode,
            "dispatched_by": self.dispatched_by,
            "dispatched_at": iso(self.dispatched_at),
            "deadline": iso(self.deadline),
        }

    def __repr__(self):
        return f"<ClientProposalAccess {self.id}: user={self.user_id} proposal={self.proposal}>"


class FormInstance(db.Model):
    __tablename__ = "form_instances"
    __table_args__ = (
        db.CheckConstraint(
            "filled_slots >= 0 AND filled_slots <= total_slots",
            name="ck_form_instance_filled_range",
        ),
        db.Index("idx_form_instance_proposal", "proposal"),
        db.Index("idx_form_instance_status", "capture_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    proposal = db.Column(db.String(64), nullable=False)
    access_id = db.Column(db.Integer, db.ForeignKey("client_proposal_accesses.id"),
                          nullable=False, unique=True)
    total_slots = db.Column(db.Integer, nullable=False, default=0)
    filled_slots = db.Column(db.Integer, nullable=False, default=0)
    capture_status = db.Column(db.String(20), nullable=False, default=CaptureStatus.AWAITING_FILL,
                               comment="AWAITING_FILL | IN_PROGRESS | COMPLETED | EXPIRED")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    access = db.relationship("ClientProposalAccess", back_populates="form_instance")
    slots = db.relationship(
        "PassengerSlot", back_populates="form_instance",
        order_by=lambda: (PassengerSlot.room_label, PassengerSlot.slot_index),
    )

    @property
    def progress(self) -> int:
        return progress_percent(self.filled_slots, self.total_slots)

    def to_dict(self):
        return {
            "id": self.id,
            "proposal": self.proposal,
            "access_id": self.access_id,
            "total_slots": self.total_slots,
            "filled_slots": self.filled_slots,
            "capture_status": self.capture_status,
            "progress_percent": self.progress,
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<FormInstance {self.id}: {self.proposal} {self.filled_slots}/{self.total_slots}>"


class PassengerSlot(db.Model):
    __tablename__ = "passenger_slots"
    __table_args__ = (
        db.UniqueConstraint("form_instance_id", "room_label", "slot_index",
                            name="uq_slot_instance_room_index"),
    )

    id = db.Column(db.Integer, primary_key=True)
    form_instance_id = db.Column(db.Integer, db.ForeignKey("form_instances.id"),
                                 nullable=False, index=True)
    room_label = db.Column(db.String(300), nullable=False,
                           comment='"{ROOM_TYPE} {n} | {check_in} | {hotel}" or "Ticket Only"')
    slot_index = db.Column(db.Integer, nullable=False, comment="0-based position inside the room")
    status = db.Column(db.String(20), nullable=False, default=SlotStatus.PENDING,
                       comment="PENDING | FILLED")

    form_instance = db.relationship("FormInstance", back_populates="slots")
    response = db.relationship("FormResponse", back_populates="slot", uselist=False)

    def to_dict(self, include_answers: bool = False):
        d = {
            "id": self.id,
            "form_instance_id": self.form_instance_id,
            "room_label": self.room_label,
            "slot_index": self.slot_index,
            "status": self.status,
            "passenger_name": (self.response.answers or {}).get("full_name") if self.response else None,
        }
        if include_answers:
            d["answers"] = dict(self.response.answers or {}) if self.response else {}
        return d

    def __repr__(self):
        return f"<PassengerSlot {self.id}: {self.room_label} #{self.slot_index} {self.status}>"


class FormResponse(db.Model):
    __tablename__ = "form_responses"

    id = db.Column(db.Integer, primary_key=True)
    passenger_slot_id = db.Column(db.Integer, db.ForeignKey("passenger_slots.id"),
                                  nullable=False, unique=True)
    answers = db.Column(db.JSON, nullable=False, default=dict)
    submitted_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
                             nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False,
                             default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    slot = db.relationship("PassengerSlot", back_populates="response")

    def to_dict(self):
        return {
            "id": self.id,
            "passenger_slot_id": self.passenger_slot_id,
            "answers": dict(self.answers or {}),
            "submitted_by": self.submitted_by,
            "submitted_at": iso(self.submitted_at),
            "updated_at": iso(self.updated_at),
        }
