"""Users, reservations and Smart Deposit tables.

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = postgresql.JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite")

user_role = sa.Enum("ADMIN", "OWNER", "RENTER", name="userrole")
user_status = sa.Enum("INVITED", "ACTIVE", "SUSPENDED", name="userstatus")
reservation_status = sa.Enum(
    "PENDING",
    "CONFIRMED",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
    name="reservationstatus",
)
deposit_mode = sa.Enum("DIRECT", "GOMONTO", "DIGITAL_GUARANTEE", name="depositmode")
deposit_status = sa.Enum(
    "pending",
    "held",
    "released",
    "captured",
    "failed",
    "expired",
    name="depositstatus",
)
gateway_payment_status = sa.Enum(
    "pending", "completed", "failed", name="gatewaypaymentstatus"
)
notification_type = sa.Enum(
    "DEPOSIT_SECURED",
    "DEPOSIT_PAID",
    "DEPOSIT_RELEASED",
    "DEPOSIT_CAPTURED",
    "DEPOSIT_PARTIAL_CAPTURE",
    "DEPOSIT_FAILED",
    "DEPOSIT_EXPIRED",
    name="notificationtype",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=240), nullable=False),
        sa.Column("phone_number", sa.String(length=32)),
        sa.Column("role", user_role, nullable=False),
        sa.Column("status", user_status, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "reservations",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "owner_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "renter_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", reservation_status, nullable=False),
        sa.Column("deposit_amount", sa.Numeric(12, 0)),
        sa.Column("deposit_mode", deposit_mode, nullable=False),
        sa.Column(
            "deposit_paid", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
    )

    op.create_table(
        "deposit_transactions",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "reservation_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("reservations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", deposit_status, nullable=False),
        sa.Column("amount", sa.Numeric(12, 0), nullable=False),
        sa.Column(
            "service_fee", sa.Numeric(12, 0), nullable=False, server_default="0"
        ),
        sa.Column("refund_amount", sa.Numeric(12, 0)),
        sa.Column("captured_amount", sa.Numeric(12, 0)),
        sa.Column("capture_reason", sa.Text()),
        sa.Column("payment_method", sa.String(length=32)),
        sa.Column("phone_number", sa.String(length=32)),
        sa.Column("payment_status", gateway_payment_status, nullable=False),
        sa.Column("provider_reference", sa.String(length=64), unique=True),
        sa.Column("payment_url", sa.Text()),
        sa.Column("hold_expires_at", sa.DateTime(timezone=True)),
        sa.Column("released_at", sa.DateTime(timezone=True)),
        sa.Column("captured_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index(
        "ix_deposit_transactions_reservation_id",
        "deposit_transactions",
        ["reservation_id"],
    )
    op.create_index(
        "ux_deposit_transactions_active_reservation",
        "deposit_transactions",
        ["reservation_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'held')"),
        sqlite_where=sa.text("status IN ('pending', 'held')"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", JSON_TYPE),
        sa.Column("read_at", sa.DateTime(timezone=True)),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "payment_events",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column(
            "provider_event_id", sa.String(length=255), nullable=False, unique=True
        ),
        sa.Column(
            "received_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("raw", JSON_TYPE, nullable=False),
    )


def downgrade() -> None:
    op.drop_table("payment_events")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index(
        "ux_deposit_transactions_active_reservation", table_name="deposit_transactions"
    )
    op.drop_index(
        "ix_deposit_transactions_reservation_id", table_name="deposit_transactions"
    )
    op.drop_table("deposit_transactions")
    op.drop_table("reservations")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (
        notification_type,
        gateway_payment_status,
        deposit_status,
        deposit_mode,
        reservation_status,
        user_status,
        user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
