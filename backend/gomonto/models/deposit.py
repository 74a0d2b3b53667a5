"""Smart Deposit transactions held against a reservation."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gomonto.db.base import Base
from gomonto.models.mixins import TimestampMixin

if TYPE_CHECKING:
    from gomonto.models.reservation import Reservation


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class DepositStatus(str, enum.Enum):
    """Lifecycle states for a deposit transaction."""

    PENDING = "pending"
    HELD = "held"
    RELEASED = "released"
    CAPTURED = "captured"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self not in ACTIVE_DEPOSIT_STATUSES


ACTIVE_DEPOSIT_STATUSES = frozenset({DepositStatus.PENDING, DepositStatus.HELD})


class GatewayPaymentStatus(str, enum.Enum):
    """Payment state as reported by the gateway."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DepositTransaction(TimestampMixin, Base):
    """One attempt at securing the deposit of a reservation."""

    __tablename__ = "deposit_transactions"

    __table_args__ = (
        Index(
            "ux_deposit_transactions_active_reservation",
            "reservation_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'held')"),
            postgresql_where=text("status IN ('pending', 'held')"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    reservation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[DepositStatus] = mapped_column(
        Enum(DepositStatus, values_callable=_enum_values), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 0), nullable=False)
    service_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 0), nullable=False, default=Decimal("0")
    )
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 0))
    captured_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 0))
    capture_reason: Mapped[str | None] = mapped_column(Text())
    payment_method: Mapped[str | None] = mapped_column(String(32))
    phone_number: Mapped[str | None] = mapped_column(String(32))
    payment_status: Mapped[GatewayPaymentStatus] = mapped_column(
        Enum(GatewayPaymentStatus, values_callable=_enum_values),
        nullable=False,
        default=GatewayPaymentStatus.PENDING,
    )
    provider_reference: Mapped[str | None] = mapped_column(String(64), unique=True)
    payment_url: Mapped[str | None] = mapped_column(Text())
    hold_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    captured_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    reservation: Mapped["Reservation"] = relationship(
        "Reservation", back_populates="deposit_transactions"
    )
