"""In-app notifications for renters and owners."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gomonto.db.base import Base
from gomonto.models.mixins import utcnow
from gomonto.models.payment_event import JSONB_TYPE
from gomonto.models.user import User


class NotificationType(str, enum.Enum):
    DEPOSIT_SECURED = "deposit_secured"
    DEPOSIT_PAID = "deposit_paid"
    DEPOSIT_RELEASED = "deposit_released"
    DEPOSIT_CAPTURED = "deposit_captured"
    DEPOSIT_PARTIAL_CAPTURE = "deposit_partial_capture"
    DEPOSIT_FAILED = "deposit_failed"
    DEPOSIT_EXPIRED = "deposit_expired"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONB_TYPE)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    user: Mapped["User"] = relationship("User")
