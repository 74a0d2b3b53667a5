"""ORM models package export."""

from gomonto.models.deposit import (
    ACTIVE_DEPOSIT_STATUSES,
    DepositStatus,
    DepositTransaction,
    GatewayPaymentStatus,
)
from gomonto.models.notification import Notification, NotificationType
from gomonto.models.payment_event import PaymentEvent
from gomonto.models.reservation import DepositMode, Reservation, ReservationStatus
from gomonto.models.user import User, UserRole, UserStatus

__all__ = [
    "ACTIVE_DEPOSIT_STATUSES",
    "DepositMode",
    "DepositStatus",
    "DepositTransaction",
    "GatewayPaymentStatus",
    "Notification",
    "NotificationType",
    "PaymentEvent",
    "Reservation",
    "ReservationStatus",
    "User",
    "UserRole",
    "UserStatus",
]
