"""Seed a local owner, renter and reservation to exercise Smart Deposit."""
from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import select

from gomonto.core.security import get_password_hash
from gomonto.db.session import dispose_engine, session_scope
from gomonto.models import Reservation, User, UserRole, UserStatus

PASSWORD = "gomonto123"
OWNER_EMAIL = "owner@gomonto.local"
RENTER_EMAIL = "renter@gomonto.local"
DEPOSIT_AMOUNT = Decimal("100000")


async def _get_or_create_user(session, email: str, role: UserRole, name: str) -> User:
    user = (
        await session.execute(select(User).where(User.email == email))
    ).scalar_one_or_none()
    if user is None:
        user = User(
            email=email,
            hashed_password=get_password_hash(PASSWORD),
            full_name=name,
            phone_number="+221770000000",
            role=role,
            status=UserStatus.ACTIVE,
        )
        session.add(user)
        await session.flush()
    return user


async def seed() -> None:
    async with session_scope() as session:
        owner = await _get_or_create_user(session, OWNER_EMAIL, UserRole.OWNER, "Dev Owner")
        renter = await _get_or_create_user(
            session, RENTER_EMAIL, UserRole.RENTER, "Dev Renter"
        )
        start = datetime.now(UTC) + timedelta(days=1)
        reservation = Reservation(
            owner_id=owner.id,
            renter_id=renter.id,
            start_at=start,
            end_at=start + timedelta(days=3),
            deposit_amount=DEPOSIT_AMOUNT,
        )
        session.add(reservation)
        await session.commit()
        print(
            f"Reservation {reservation.id}: owner {OWNER_EMAIL}, renter {RENTER_EMAIL}"
            f" (password {PASSWORD})"
        )
    await dispose_engine()


def main() -> None:
    asyncio.run(seed())


if __name__ == "__main__":
    main()
