"""
World Cup 2026 Passenger Capture Portal
Sales log models.

Models:
    - SalesOrder: one line of the spreadsheet sales log, keyed by
      (proposal, line_number). Written only by the row reconciler.
    - SyncLog: one row per spreadsheet sync run.
"""

from datetime import datetime, timezone

from paxportal.models import db
from paxportal.utils.helpers import iso


class SyncStatus:
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    ERROR = "ERROR"


class SalesOrder(db.Model):
    __tablename__ = "sales_orders"
    __table_args__ = (
        db.UniqueConstraint("proposal", "line_number", name="uq_sales_order_proposal_line"),
        db.CheckConstraint("number_of_rooms >= 0", name="ck_sales_order_rooms"),
        db.CheckConstraint("number_of_pax >= 0", name="ck_sales_order_pax"),
        db.Index("idx_sales_order_proposal", "proposal"),
    )

    id = db.Column(db.Integer, primary_key=True)
    proposal = db.Column(db.String(64), nullable=False)
    line_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(40), nullable=False, default="",
                       comment="Sales status from the sheet; CONFIRMED enables dispatch")
    client_name = db.Column(db.String(200), nullable=False, default="")
    client_email = db.Column(db.String(200), nullable=False, default="")
    company = db.Column(db.String(200), nullable=False, default="")
    cell_phone = db.Column(db.String(60), nullable=False, default="")
    game = db.Column(db.String(200), nullable=False, default="")
    hotel = db.Column(db.String(200), nullable=False, default="")
    room_type = db.Column(db.String(100), nullable=False, default="")
    number_of_rooms = db.Column(db.Integer, nullable=False, default=0)
    number_of_pax = db.Column(db.Integer, nullable=False, default=0)
    check_in = db.Column(db.String(40), nullable=False, default="", comment="Opaque sheet text")
    check_out = db.Column(db.String(40), nullable=False, default="", comment="Opaque sheet text")
    ticket_category = db.Column(db.String(100), nullable=False, default="")
    seller = db.Column(db.String(200), nullable=False, default="")

    raw_data = db.Column(db.JSON, nullable=False, default=dict)
    raw_hash = db.Column(db.String(64), nullable=False,
                         comment="sha256 of raw_data serialised with sorted keys")
    last_synced_at = db.Column(db.DateTime(timezone=True), nullable=False,
                               default=lambda: datetime.now(timezone.utc))
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "proposal": self.proposal,
            "line_number": self.line_number,
            "status": self.status,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "company": self.company,
            "cell_phone": self.cell_phone,
            "game": self.game,
            "hotel": self.hotel,
            "room_type": self.room_type,
            "number_of_rooms": self.number_of_rooms,
            "number_of_pax": self.number_of_pax,
            "check_in": self.check_in,
            "check_out": self.check_out,
            "ticket_category": self.ticket_category,
            "seller": self.seller,
            "last_synced_at": iso(self.last_synced_at),
        }

    def __repr__(self):
        return f"<SalesOrder {self.proposal}#{self.line_number}>"


class SyncLog(db.Model):
    __tablename__ = "sync_logs"

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(20), nullable=False, default=SyncStatus.RUNNING,
                       comment="RUNNING | SUCCESS | PARTIAL | ERROR")
    started_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rows_read = db.Column(db.Integer, nullable=False, default=0)
    rows_upserted = db.Column(db.Integer, nullable=False, default=0)
    rows_skipped = db.Column(db.Integer, nullable=False, default=0)
    rows_errored = db.Column(db.Integer, nullable=False, default=0)
    error = db.Column(db.Text, nullable=True, comment="Raw failure message; only shown in the staff sync log list")

    def to_dict(self, include_error: bool = False):
        d = {
            "id": self.id,
            "status": self.status,
            "started_at": iso(self.started_at),
            "finished_at": iso(self.finished_at),
            "rows_read": self.rows_read,
            "rows_upserted": self.rows_upserted,
            "rows_skipped": self.rows_skipped,
            "rows_errored": self.rows_errored,
        }
        if include_error:
            d["error"] = self.error
        return d

    def __repr__(self):
        return f"<SyncLog {self.id}: {self.status}>"
