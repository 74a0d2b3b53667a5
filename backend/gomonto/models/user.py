"""User model for renters, vehicle owners and platform staff."""
from __future__ import annotations

import enum
import uuid

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from gomonto.db.base import Base
from gomonto.models.mixins import TimestampMixin


class UserRole(str, enum.Enum):
    """Role enumeration for platform permissions."""

    ADMIN = "admin"
    OWNER = "owner"
    RENTER = "renter"


class UserStatus(str, enum.Enum):
    """Enumerates user activation states."""

    INVITED = "invited"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class User(TimestampMixin, Base):
    """User entity for authentication and authorization."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(240), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(32))
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False)
    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus), default=UserStatus.INVITED, nullable=False
    )
