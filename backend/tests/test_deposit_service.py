"""Service-level tests for deposit transitions and expiry."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from conftest import seed_rental
from gomonto.db.session import get_sessionmaker
from gomonto.integrations import PaymentCheck
from gomonto.models import (
    DepositStatus,
    DepositTransaction,
    GatewayPaymentStatus,
    Notification,
    NotificationType,
    Reservation,
    User,
)
from gomonto.services import deposit_service
from gomonto.services.deposit_rules import DepositAction

pytestmark = pytest.mark.asyncio


async def _user(session, user_id) -> User:
    user = await session.get(User, user_id)
    assert user is not None
    return user


async def test_hold_then_partial_capture(reset_database, db_url: str) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        ctx = await seed_rental(session)
        renter = await _user(session, ctx["renter_id"])
        owner = await _user(session, ctx["owner_id"])

        held = await deposit_service.perform_action(
            session,
            user=renter,
            action=DepositAction.HOLD,
            reservation_id=ctx["reservation_id"],
            phone_number="+221779876543",
        )
        assert held.transaction.status == DepositStatus.HELD
        assert held.transaction.payment_status == GatewayPaymentStatus.COMPLETED
        assert held.transaction.hold_expires_at is not None

        with pytest.raises(deposit_service.DepositValidationError):
            await deposit_service.perform_action(
                session,
                user=owner,
                action=DepositAction.PARTIAL_CAPTURE,
                reservation_id=ctx["reservation_id"],
                capture_amount=Decimal("100000"),
                capture_reason="Too much",
            )

        outcome = await deposit_service.perform_action(
            session,
            user=owner,
            action=DepositAction.PARTIAL_CAPTURE,
            reservation_id=ctx["reservation_id"],
            capture_amount=Decimal("30000"),
            capture_reason="Scratched rim",
        )
        assert outcome.transaction.status == DepositStatus.CAPTURED
        assert outcome.refund_amount == Decimal("70000")
        assert outcome.transaction.service_fee == Decimal("0")

        notifications = (
            await session.execute(
                select(Notification).where(Notification.user_id == ctx["renter_id"])
            )
        ).scalars().all()
        assert [item.type for item in notifications] == [
            NotificationType.DEPOSIT_PARTIAL_CAPTURE
        ]
        assert notifications[0].data["refund_amount"] == 70000


async def test_reservation_without_deposit_amount_is_rejected(
    reset_database, db_url: str
) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        ctx = await seed_rental(session, deposit_amount=None)
        renter = await _user(session, ctx["renter_id"])
        with pytest.raises(deposit_service.DepositValidationError):
            await deposit_service.perform_action(
                session,
                user=renter,
                action=DepositAction.HOLD,
                reservation_id=ctx["reservation_id"],
            )


async def test_only_one_active_deposit_per_reservation(
    reset_database, db_url: str
) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        ctx = await seed_rental(session)
        for reference in ("DEP-a", "DEP-b"):
            session.add(
                DepositTransaction(
                    reservation_id=ctx["reservation_id"],
                    status=DepositStatus.PENDING,
                    amount=Decimal("100000"),
                    service_fee=Decimal("5000"),
                    provider_reference=reference,
                )
            )
        with pytest.raises(IntegrityError):
            await session.commit()
        await session.rollback()

        session.add_all(
            [
                DepositTransaction(
                    reservation_id=ctx["reservation_id"],
                    status=status,
                    amount=Decimal("100000"),
                    provider_reference=f"DEP-{status.value}",
                )
                for status in (
                    DepositStatus.FAILED,
                    DepositStatus.EXPIRED,
                    DepositStatus.HELD,
                )
            ]
        )
        await session.commit()


async def test_stale_held_row_cannot_be_closed_twice(
    reset_database, db_url: str
) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as first, sessionmaker() as second:
        ctx = await seed_rental(first)
        renter = await _user(first, ctx["renter_id"])
        held = await deposit_service.perform_action(
            first,
            user=renter,
            action=DepositAction.HOLD,
            reservation_id=ctx["reservation_id"],
        )
        transaction_id = held.transaction.id

        # the second owner request loaded the row while it was still held
        stale = await second.get(DepositTransaction, transaction_id)
        assert stale is not None and stale.status == DepositStatus.HELD
        second_owner = await _user(second, ctx["owner_id"])

        owner = await _user(first, ctx["owner_id"])
        released = await deposit_service.perform_action(
            first,
            user=owner,
            action=DepositAction.RELEASE,
            reservation_id=ctx["reservation_id"],
            transaction_id=transaction_id,
        )
        assert released.transaction.status == DepositStatus.RELEASED

        with pytest.raises(deposit_service.DepositConflict):
            await deposit_service.perform_action(
                second,
                user=second_owner,
                action=DepositAction.CAPTURE,
                reservation_id=ctx["reservation_id"],
                transaction_id=transaction_id,
                capture_reason="Broken mirror",
            )

    async with sessionmaker() as session:
        row = await session.get(DepositTransaction, transaction_id)
        assert row is not None
        assert row.status == DepositStatus.RELEASED
        assert row.captured_amount is None
        assert row.refund_amount == Decimal("100000")
        types = (
            await session.execute(
                select(Notification.type).where(Notification.user_id == ctx["renter_id"])
            )
        ).scalars().all()
        assert types == [NotificationType.DEPOSIT_RELEASED]


async def test_payment_accepted_after_expiry_owes_refund(
    reset_database, db_url: str
) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        ctx = await seed_rental(session)
        now = datetime.now(UTC)
        transaction = DepositTransaction(
            reservation_id=ctx["reservation_id"],
            status=DepositStatus.PENDING,
            amount=Decimal("100000"),
            service_fee=Decimal("5000"),
            payment_status=GatewayPaymentStatus.PENDING,
            provider_reference="DEP-late",
            created_at=now - timedelta(hours=2),
        )
        session.add(transaction)
        await session.commit()
        assert await deposit_service.expire_stale_deposits(session, now=now) == 1

        check = PaymentCheck(transaction_id="DEP-late", status="ACCEPTED")
        updated = await deposit_service.apply_gateway_check(session, transaction, check)
        assert updated.status == DepositStatus.EXPIRED
        assert updated.payment_status == GatewayPaymentStatus.COMPLETED
        assert updated.refund_amount == Decimal("100000")

        notes = (
            await session.execute(
                select(Notification).where(Notification.user_id == ctx["renter_id"])
            )
        ).scalars().all()
        assert [note.type for note in notes] == [NotificationType.DEPOSIT_EXPIRED]

        # a repeated notification does not notify again
        await deposit_service.apply_gateway_check(session, updated, check)
        count = len(
            (
                await session.execute(
                    select(Notification).where(Notification.user_id == ctx["renter_id"])
                )
            ).scalars().all()
        )
        assert count == 1


async def test_expiry_skips_hold_captured_after_it_was_selected(
    reset_database, db_url: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        ctx = await seed_rental(session)
        renter = await _user(session, ctx["renter_id"])
        held = await deposit_service.perform_action(
            session,
            user=renter,
            action=DepositAction.HOLD,
            reservation_id=ctx["reservation_id"],
        )
        transaction_id = held.transaction.id
    later = datetime.now(UTC) + timedelta(days=31)

    original = deposit_service._transition
    captured: list[DepositStatus] = []

    async def _owner_captures_first(session, transaction, expected, **values):
        if not captured:
            captured.append(DepositStatus.CAPTURED)
            async with sessionmaker() as owner_session:
                owner = await _user(owner_session, ctx["owner_id"])
                outcome = await deposit_service.perform_action(
                    owner_session,
                    user=owner,
                    action=DepositAction.CAPTURE,
                    reservation_id=ctx["reservation_id"],
                    transaction_id=transaction_id,
                    capture_reason="Cracked windscreen",
                )
                assert outcome.transaction.status == DepositStatus.CAPTURED
        return await original(session, transaction, expected, **values)

    monkeypatch.setattr(deposit_service, "_transition", _owner_captures_first)

    async with sessionmaker() as job_session:
        assert await deposit_service.expire_stale_deposits(job_session, now=later) == 0

    async with sessionmaker() as session:
        row = await session.get(DepositTransaction, transaction_id)
        assert row is not None
        assert row.status == DepositStatus.CAPTURED
        assert row.captured_amount == Decimal("100000")
        assert row.refund_amount == Decimal("0")
        types = (
            await session.execute(
                select(Notification.type).where(Notification.user_id == ctx["renter_id"])
            )
        ).scalars().all()
        assert types == [NotificationType.DEPOSIT_CAPTURED]


async def test_gateway_acceptance_on_row_expired_elsewhere_is_late_payment(
    reset_database, db_url: str
) -> None:
    sessionmaker = get_sessionmaker(db_url)
    now = datetime.now(UTC)
    async with sessionmaker() as webhook_session:
        ctx = await seed_rental(webhook_session)
        transaction = DepositTransaction(
            reservation_id=ctx["reservation_id"],
            status=DepositStatus.PENDING,
            amount=Decimal("100000"),
            service_fee=Decimal("5000"),
            payment_status=GatewayPaymentStatus.PENDING,
            provider_reference="DEP-raced",
            created_at=now - timedelta(hours=2),
        )
        webhook_session.add(transaction)
        await webhook_session.commit()

        async with sessionmaker() as job_session:
            assert await deposit_service.expire_stale_deposits(job_session, now=now) == 1

        # the webhook session still sees the row as pending
        assert transaction.status == DepositStatus.PENDING
        check = PaymentCheck(transaction_id="DEP-raced", status="ACCEPTED")
        updated = await deposit_service.apply_gateway_check(
            webhook_session, transaction, check
        )
        assert updated.status == DepositStatus.EXPIRED
        assert updated.payment_status == GatewayPaymentStatus.COMPLETED
        assert updated.refund_amount == Decimal("100000")

        reservation = await webhook_session.get(Reservation, ctx["reservation_id"])
        assert reservation is not None and reservation.deposit_paid is False
        notes = (
            await webhook_session.execute(select(Notification.type))
        ).scalars().all()
        assert notes == [NotificationType.DEPOSIT_EXPIRED]


async def test_unknown_reservation(reset_database, db_url: str) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        ctx = await seed_rental(session)
        renter = await _user(session, ctx["renter_id"])
        with pytest.raises(deposit_service.DepositNotFound):
            await deposit_service.perform_action(
                session,
                user=renter,
                action=DepositAction.HOLD,
                reservation_id=ctx["owner_id"],
            )


async def test_expiry_closes_stale_pending_and_lapsed_holds(
    reset_database, db_url: str
) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        ctx = await seed_rental(session)
        second = await _second_reservation(session, ctx)
        now = datetime.now(UTC)

        pending = DepositTransaction(
            reservation_id=ctx["reservation_id"],
            status=DepositStatus.PENDING,
            amount=Decimal("100000"),
            service_fee=Decimal("5000"),
            provider_reference="DEP-stale",
            created_at=now - timedelta(hours=2),
            hold_expires_at=now + timedelta(days=30),
        )
        held = DepositTransaction(
            reservation_id=second,
            status=DepositStatus.HELD,
            amount=Decimal("50000"),
            payment_status=GatewayPaymentStatus.COMPLETED,
            provider_reference="HOLD-lapsed",
            hold_expires_at=now - timedelta(minutes=1),
        )
        session.add_all([pending, held])
        await session.commit()

        assert await deposit_service.expire_stale_deposits(session, now=now) == 2
        await session.refresh(pending)
        await session.refresh(held)
        assert pending.status == DepositStatus.EXPIRED
        assert pending.payment_status == GatewayPaymentStatus.FAILED
        assert pending.refund_amount is None
        assert held.status == DepositStatus.EXPIRED
        assert held.refund_amount == Decimal("50000")

        expired_notes = (
            await session.execute(
                select(Notification).where(
                    Notification.type == NotificationType.DEPOSIT_EXPIRED
                )
            )
        ).scalars().all()
        assert len(expired_notes) == 1
        assert expired_notes[0].user_id == ctx["renter_id"]

        assert await deposit_service.expire_stale_deposits(session, now=now) == 0


async def test_expiry_keeps_fresh_deposits(reset_database, db_url: str) -> None:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        ctx = await seed_rental(session)
        now = datetime.now(UTC)
        session.add(
            DepositTransaction(
                reservation_id=ctx["reservation_id"],
                status=DepositStatus.PENDING,
                amount=Decimal("100000"),
                provider_reference="DEP-fresh",
                created_at=now - timedelta(minutes=5),
            )
        )
        await session.commit()
        assert await deposit_service.expire_stale_deposits(session, now=now) == 0


async def _second_reservation(session, ctx: dict[str, object]):
    start_at = datetime.now(UTC) + timedelta(days=10)
    reservation = Reservation(
        owner_id=ctx["owner_id"],
        renter_id=ctx["renter_id"],
        start_at=start_at,
        end_at=start_at + timedelta(days=1),
        deposit_amount=Decimal("50000"),
    )
    session.add(reservation)
    await session.flush()
    return reservation.id
