"""Reservation model, limited to the fields the deposit lifecycle reads."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gomonto.db.base import Base
from gomonto.models.mixins import TimestampMixin

if TYPE_CHECKING:
    from gomonto.models.deposit import DepositTransaction
    from gomonto.models.user import User


class ReservationStatus(str, enum.Enum):
    """Lifecycle states for reservations."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DepositMode(str, enum.Enum):
    """How the security deposit of a reservation is handled."""

    DIRECT = "direct"
    GOMONTO = "gomonto"
    DIGITAL_GUARANTEE = "digital_guarantee"


class Reservation(TimestampMixin, Base):
    """A vehicle booked by a renter from an owner."""

    __tablename__ = "reservations"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    renter_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(ReservationStatus), default=ReservationStatus.PENDING, nullable=False
    )
    deposit_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 0))
    deposit_mode: Mapped[DepositMode] = mapped_column(
        Enum(DepositMode), default=DepositMode.GOMONTO, nullable=False
    )
    deposit_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_id])
    renter: Mapped["User"] = relationship("User", foreign_keys=[renter_id])
    deposit_transactions: Mapped[list["DepositTransaction"]] = relationship(
        "DepositTransaction",
        back_populates="reservation",
        order_by="DepositTransaction.created_at",
    )
