"""initial_capture_schema

Create the passenger capture schema: users, sales log lines, sync runs,
client accesses, form instances, passenger slots, responses and audit logs.

Revision ID: a1c0f2e8b901
Revises:
Create Date: 2026-03-02 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c0f2e8b901"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("password_hash", sa.String(length=256), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="CLIENT"),
            sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("profile_photo_url", sa.String(length=500), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if "sales_orders" not in existing_tables:
        op.create_table(
            "sales_orders",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("proposal", sa.String(length=64), nullable=False),
            sa.Column("line_number", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=40), nullable=False, server_default=""),
            sa.Column("client_name", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("client_email", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("company", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("cell_phone", sa.String(length=60), nullable=False, server_default=""),
            sa.Column("game", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("hotel", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("room_type", sa.String(length=100), nullable=False, server_default=""),
            sa.Column("number_of_rooms", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("number_of_pax", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("check_in", sa.String(length=40), nullable=False, server_default=""),
            sa.Column("check_out", sa.String(length=40), nullable=False, server_default=""),
            sa.Column("ticket_category", sa.String(length=100), nullable=False, server_default=""),
            sa.Column("seller", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("raw_data", sa.JSON(), nullable=False),
            sa.Column("raw_hash", sa.String(length=64), nullable=False),
            sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("proposal", "line_number", name="uq_sales_order_proposal_line"),
            sa.CheckConstraint("number_of_rooms >= 0", name="ck_sales_order_rooms"),
            sa.CheckConstraint("number_of_pax >= 0", name="ck_sales_order_pax"),
        )
        op.create_index("idx_sales_order_proposal", "sales_orders", ["proposal"])

    if "sync_logs" not in existing_tables:
        op.create_table(
            "sync_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="RUNNING"),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("rows_read", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("rows_upserted", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("rows_skipped", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("rows_errored", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("error", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "client_proposal_accesses" not in existing_tables:
        op.create_table(
            "client_proposal_accesses",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("proposal", sa.String(length=64), nullable=False),
            sa.Column("access_token", sa.String(length=36), nullable=False),
            sa.Column("dispatch_mode", sa.String(length=20), nullable=False),
            sa.Column("dispatched_by", sa.Integer(), nullable=True),
            sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
            sa.ForeignKeyConstraint(["dispatched_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("access_token"),
            sa.UniqueConstraint("user_id", "proposal", name="uq_access_user_proposal"),
        )
        op.create_index("ix_client_proposal_accesses_user_id", "client_proposal_accesses", ["user_id"])
        op.create_index("idx_access_proposal", "client_proposal_accesses", ["proposal"])

    if "form_instances" not in existing_tables:
        op.create_table(
            "form_instances",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("proposal", sa.String(length=64), nullable=False),
            sa.Column("access_id", sa.Integer(), nullable=False),
            sa.Column("total_slots", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("filled_slots", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("capture_status", sa.String(length=20), nullable=False,
                      server_default="AWAITING_FILL"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["access_id"], ["client_proposal_accesses.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("access_id"),
            sa.CheckConstraint(
                "filled_slots >= 0 AND filled_slots <= total_slots",
                name="ck_form_instance_filled_range",
            ),
        )
        op.create_index("idx_form_instance_proposal", "form_instances", ["proposal"])
        op.create_index("idx_form_instance_status", "form_instances", ["capture_status"])

    if "passenger_slots" not in existing_tables:
        op.create_table(
            "passenger_slots",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("form_instance_id", sa.Integer(), nullable=False),
            sa.Column("room_label", sa.String(length=300), nullable=False),
            sa.Column("slot_index", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.ForeignKeyConstraint(["form_instance_id"], ["form_instances.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("form_instance_id", "room_label", "slot_index",
                                name="uq_slot_instance_room_index"),
        )
        op.create_index("ix_passenger_slots_form_instance_id", "passenger_slots", ["form_instance_id"])

    if "form_responses" not in existing_tables:
        op.create_table(
            "form_responses",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("passenger_slot_id", sa.Integer(), nullable=False),
            sa.Column("answers", sa.JSON(), nullable=False),
            sa.Column("submitted_by", sa.Integer(), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["passenger_slot_id"], ["passenger_slots.id"]),
            sa.ForeignKeyConstraint(["submitted_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("passenger_slot_id"),
        )

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("user_role", sa.String(length=20), nullable=True),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("entity", sa.String(length=60), nullable=True),
            sa.Column("entity_id", sa.String(length=64), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_entity", "audit_logs", ["entity", "entity_id"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    # Children first
    for table in (
        "audit_logs",
        "form_responses",
        "passenger_slots",
        "form_instances",
        "client_proposal_accesses",
        "sync_logs",
        "sales_orders",
        "users",
    ):
        if table in existing_tables:
            op.drop_table(table)
