"""Smart Deposit lifecycle transitions.

Every status change of a :class:`DepositTransaction` goes through this module:
renters initiate (gateway checkout) or record a direct hold, owners release or
capture a held deposit, the gateway webhook confirms or fails pending ones and
the expiry job closes stale rows.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gomonto.core.config import get_settings
from gomonto.core.settings import GatewaySettings
from gomonto.integrations import (
    CheckoutCustomer,
    CinetPayClient,
    CinetPayClientError,
    PaymentCheck,
)
from gomonto.models import (
    ACTIVE_DEPOSIT_STATUSES,
    DepositMode,
    DepositStatus,
    DepositTransaction,
    GatewayPaymentStatus,
    NotificationType,
    Reservation,
    User,
    UserRole,
)
from gomonto.security.redact import mask_phone
from gomonto.services import notification_service
from gomonto.services.deposit_fees import (
    DepositFees,
    calculate_deposit_fees,
    format_amount,
    to_xof,
)
from gomonto.services.deposit_rules import (
    OWNER_ACTIONS,
    RENTER_ACTIONS,
    CaptureValidationError,
    DepositAction,
    validate_capture_reason,
    validate_partial_amount,
)

logger = logging.getLogger(__name__)

GATEWAY_REFERENCE_PREFIX = "DEP-"
DIRECT_REFERENCE_PREFIX = "HOLD-"


class DepositError(ValueError):
    """Base error for rejected deposit operations."""


class DepositNotFound(DepositError):
    """Reservation or transaction does not exist."""


class DepositPermissionDenied(DepositError):
    """The caller may not perform the requested action."""


class DepositConflict(DepositError):
    """The transaction is not in a state that allows the action."""


class DepositValidationError(DepositError):
    """The request payload is invalid for the action."""


@dataclass(slots=True)
class DepositOutcome:
    """Result of a transition, echoed back to the caller."""

    transaction: DepositTransaction
    message: str
    payment_url: str | None = None
    payment_token: str | None = None
    fees: DepositFees | None = None
    refund_amount: Decimal | None = None
    captured_amount: Decimal | None = None


def _now() -> datetime:
    return datetime.now(UTC)


def _reference(prefix: str) -> str:
    return f"{prefix}{int(time.time() * 1000)}-{secrets.token_hex(3)}"


async def get_reservation(session: AsyncSession, reservation_id: UUID) -> Reservation:
    stmt = (
        select(Reservation)
        .options(selectinload(Reservation.renter), selectinload(Reservation.owner))
        .where(Reservation.id == reservation_id)
    )
    reservation = (await session.execute(stmt)).scalar_one_or_none()
    if reservation is None:
        raise DepositNotFound("Reservation not found")
    return reservation


async def get_latest_transaction(
    session: AsyncSession, reservation_id: UUID
) -> DepositTransaction | None:
    """Return the most recent transaction of a reservation, if any."""
    stmt = (
        select(DepositTransaction)
        .where(DepositTransaction.reservation_id == reservation_id)
        .order_by(DepositTransaction.created_at.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalars().first()


async def get_active_transaction(
    session: AsyncSession, reservation_id: UUID
) -> DepositTransaction | None:
    stmt = select(DepositTransaction).where(
        DepositTransaction.reservation_id == reservation_id,
        DepositTransaction.status.in_(ACTIVE_DEPOSIT_STATUSES),
    )
    return (await session.execute(stmt)).scalars().first()


async def find_by_provider_reference(
    session: AsyncSession, reference: str
) -> DepositTransaction | None:
    stmt = (
        select(DepositTransaction)
        .options(selectinload(DepositTransaction.reservation))
        .where(DepositTransaction.provider_reference == reference)
    )
    return (await session.execute(stmt)).scalars().first()


def ensure_participant(reservation: Reservation, user: User) -> None:
    """Reject users who are neither party to the reservation nor staff."""
    if user.role == UserRole.ADMIN:
        return
    if user.id not in (reservation.owner_id, reservation.renter_id):
        raise DepositPermissionDenied("Not a participant of this reservation")


def _authorize(reservation: Reservation, user: User, action: DepositAction) -> None:
    if action in RENTER_ACTIONS and user.id != reservation.renter_id:
        raise DepositPermissionDenied("Only the renter can create a deposit")
    if action in OWNER_ACTIONS and user.id != reservation.owner_id:
        raise DepositPermissionDenied("Only the owner can manage the deposit")


def _deposit_amount(reservation: Reservation) -> Decimal:
    if reservation.deposit_amount is None or reservation.deposit_amount <= 0:
        raise DepositValidationError("Reservation has no deposit amount")
    return to_xof(reservation.deposit_amount)


async def _ensure_no_active(session: AsyncSession, reservation_id: UUID) -> None:
    if await get_active_transaction(session, reservation_id) is not None:
        raise DepositConflict("A deposit is already pending or held for this reservation")


async def _commit_new(session: AsyncSession, transaction: DepositTransaction) -> None:
    session.add(transaction)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise DepositConflict(
            "A deposit is already pending or held for this reservation"
        ) from exc
    await session.refresh(transaction)


async def _held_transaction(
    session: AsyncSession,
    reservation: Reservation,
    transaction_id: UUID | None,
) -> DepositTransaction:
    if transaction_id is not None:
        transaction = await session.get(DepositTransaction, transaction_id)
        if transaction is None:
            raise DepositNotFound("Deposit transaction not found")
        if transaction.reservation_id != reservation.id:
            raise DepositPermissionDenied(
                "Deposit transaction does not belong to this reservation"
            )
    else:
        transaction = await get_active_transaction(session, reservation.id)
        if transaction is None:
            raise DepositNotFound("No deposit transaction for this reservation")
    if transaction.status.is_terminal:
        raise DepositConflict(f"Deposit is already {transaction.status.value}")
    if transaction.status != DepositStatus.HELD:
        raise DepositConflict("Only held deposits can be released or captured")
    return transaction


async def _transition(
    session: AsyncSession,
    transaction: DepositTransaction,
    expected: DepositStatus,
    **values: object,
) -> bool:
    """Write ``values`` only while the row is still in ``expected`` status."""
    stmt = (
        update(DepositTransaction)
        .where(
            DepositTransaction.id == transaction.id,
            DepositTransaction.status == expected,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


async def _close_held(
    session: AsyncSession, transaction: DepositTransaction, **values: object
) -> None:
    if not await _transition(session, transaction, DepositStatus.HELD, **values):
        await session.rollback()
        raise DepositConflict("Deposit is no longer held")


async def perform_action(
    session: AsyncSession,
    *,
    user: User,
    action: DepositAction,
    reservation_id: UUID,
    transaction_id: UUID | None = None,
    capture_amount: Decimal | None = None,
    capture_reason: str | None = None,
    payment_method: str | None = None,
    phone_number: str | None = None,
    gateway: CinetPayClient | None = None,
    gateway_settings: GatewaySettings | None = None,
) -> DepositOutcome:
    """Authorize and dispatch one lifecycle action."""

    reservation = await get_reservation(session, reservation_id)
    _authorize(reservation, user, action)
    logger.info(
        "Smart deposit action %s on reservation %s by user %s",
        action.value,
        reservation_id,
        user.id,
    )

    if action is DepositAction.INITIATE:
        if gateway is None or gateway_settings is None:
            raise CinetPayClientError("CinetPay configuration missing")
        return await initiate_deposit(
            session,
            reservation=reservation,
            gateway=gateway,
            gateway_settings=gateway_settings,
            phone_number=phone_number,
        )
    if action is DepositAction.HOLD:
        return await hold_deposit(
            session,
            reservation=reservation,
            payment_method=payment_method,
            phone_number=phone_number,
        )

    transaction = await _held_transaction(session, reservation, transaction_id)
    if action is DepositAction.RELEASE:
        return await release_deposit(session, reservation=reservation, transaction=transaction)
    try:
        if action is DepositAction.CAPTURE:
            return await capture_deposit(
                session,
                reservation=reservation,
                transaction=transaction,
                reason=capture_reason,
            )
        return await partial_capture_deposit(
            session,
            reservation=reservation,
            transaction=transaction,
            capture_amount=capture_amount,
            reason=capture_reason,
        )
    except CaptureValidationError as exc:
        raise DepositValidationError(str(exc)) from exc


async def initiate_deposit(
    session: AsyncSession,
    *,
    reservation: Reservation,
    gateway: CinetPayClient,
    gateway_settings: GatewaySettings,
    phone_number: str | None = None,
) -> DepositOutcome:
    """Open a gateway checkout for deposit plus service fee."""

    amount = _deposit_amount(reservation)
    await _ensure_no_active(session, reservation.id)
    fees = calculate_deposit_fees(amount)

    renter = reservation.renter
    reference = _reference(GATEWAY_REFERENCE_PREFIX)
    return_url = (
        f"{gateway_settings.frontend_url.rstrip('/')}/dashboard"
        f"?deposit_status=success&reservation={reservation.id}"
    )
    checkout = await gateway.initiate_payment(
        transaction_id=reference,
        amount=fees.total_to_pay,
        description=(
            f"GoMonto deposit ({format_amount(fees.deposit_amount)})"
            f" + service fee ({format_amount(fees.service_fee)})"
        ),
        customer=CheckoutCustomer(
            name=renter.full_name or "GoMonto customer",
            email=renter.email,
            phone_number=phone_number or renter.phone_number or "",
            country=gateway_settings.country,
        ),
        return_url=return_url,
        metadata={
            "type": "deposit",
            "reservation_id": str(reservation.id),
            "renter_id": str(reservation.renter_id),
            "deposit_amount": int(fees.deposit_amount),
            "service_fee": int(fees.service_fee),
        },
    )

    settings = get_settings()
    transaction = DepositTransaction(
        reservation_id=reservation.id,
        status=DepositStatus.PENDING,
        amount=fees.deposit_amount,
        service_fee=fees.service_fee,
        payment_method="cinetpay",
        phone_number=phone_number or "",
        payment_status=GatewayPaymentStatus.PENDING,
        provider_reference=reference,
        payment_url=checkout.payment_url,
        hold_expires_at=_now() + timedelta(days=settings.deposit_hold_days),
    )
    reservation.deposit_mode = DepositMode.GOMONTO
    await _commit_new(session, transaction)
    logger.info(
        "Deposit payment initiated %s (%s, fee %s)",
        transaction.id,
        fees.deposit_amount,
        fees.service_fee,
    )
    return DepositOutcome(
        transaction=transaction,
        message="Deposit payment initiated. Redirect to the payment URL.",
        payment_url=checkout.payment_url,
        payment_token=checkout.payment_token,
        fees=fees,
    )


async def hold_deposit(
    session: AsyncSession,
    *,
    reservation: Reservation,
    payment_method: str | None = None,
    phone_number: str | None = None,
) -> DepositOutcome:
    """Record a deposit held directly between renter and owner."""

    amount = _deposit_amount(reservation)
    await _ensure_no_active(session, reservation.id)
    settings = get_settings()
    transaction = DepositTransaction(
        reservation_id=reservation.id,
        status=DepositStatus.HELD,
        amount=amount,
        service_fee=Decimal("0"),
        payment_method=payment_method,
        phone_number=phone_number,
        payment_status=GatewayPaymentStatus.COMPLETED,
        provider_reference=_reference(DIRECT_REFERENCE_PREFIX),
        hold_expires_at=_now() + timedelta(days=settings.deposit_hold_days),
    )
    reservation.deposit_paid = True
    reservation.deposit_mode = DepositMode.DIRECT
    await _commit_new(session, transaction)
    logger.info(
        "Deposit held in direct mode %s (phone %s)",
        transaction.id,
        mask_phone(phone_number),
    )
    return DepositOutcome(
        transaction=transaction,
        message="Pre-authorization succeeded. The amount is held on the account.",
    )


def _is_gateway_deposit(transaction: DepositTransaction) -> bool:
    return bool(
        transaction.provider_reference
        and transaction.provider_reference.startswith(GATEWAY_REFERENCE_PREFIX)
        and transaction.payment_status == GatewayPaymentStatus.COMPLETED
    )


async def release_deposit(
    session: AsyncSession,
    *,
    reservation: Reservation,
    transaction: DepositTransaction,
) -> DepositOutcome:
    """Return the full deposit (never the service fee) to the renter."""

    refund = transaction.amount
    fee = transaction.service_fee or Decimal("0")
    await _close_held(
        session,
        transaction,
        status=DepositStatus.RELEASED,
        released_at=_now(),
        refund_amount=refund,
    )

    if _is_gateway_deposit(transaction):
        body = (
            f"Your deposit of {format_amount(refund)} has been released."
            " The refund will be made within 48 hours."
        )
        if fee > 0:
            body += f" The service fee of {format_amount(fee)} is not refundable."
        message = (
            f"Deposit of {format_amount(refund)} released."
            " Refund within 48 hours (service fee not refundable)."
        )
    else:
        body = f"Your deposit of {format_amount(refund)} has been released by the owner."
        message = "Deposit released."

    await notification_service.notify(
        session,
        user_id=reservation.renter_id,
        type=NotificationType.DEPOSIT_RELEASED,
        title="Deposit released",
        body=body,
        data={
            "reservation_id": str(reservation.id),
            "refund_amount": int(refund),
            "service_fee": int(fee),
        },
        commit=False,
    )
    await session.commit()
    await session.refresh(transaction)
    logger.info("Deposit released %s (refund %s, fee %s)", transaction.id, refund, fee)
    return DepositOutcome(transaction=transaction, message=message, refund_amount=refund)


async def capture_deposit(
    session: AsyncSession,
    *,
    reservation: Reservation,
    transaction: DepositTransaction,
    reason: str | None,
) -> DepositOutcome:
    """Convert the whole held deposit into a charge."""

    cleaned_reason = validate_capture_reason(reason)
    await _close_held(
        session,
        transaction,
        status=DepositStatus.CAPTURED,
        captured_at=_now(),
        capture_reason=cleaned_reason,
        captured_amount=transaction.amount,
        refund_amount=Decimal("0"),
    )

    await notification_service.notify(
        session,
        user_id=reservation.renter_id,
        type=NotificationType.DEPOSIT_CAPTURED,
        title="Deposit captured",
        body=(
            f"Your deposit of {format_amount(transaction.amount)} has been captured."
            f" Reason: {cleaned_reason}"
        ),
        data={
            "reservation_id": str(reservation.id),
            "amount": int(transaction.amount),
            "reason": cleaned_reason,
        },
        commit=False,
    )
    await session.commit()
    await session.refresh(transaction)
    logger.info("Deposit captured %s", transaction.id)
    return DepositOutcome(
        transaction=transaction,
        message="Deposit captured.",
        captured_amount=transaction.amount,
        refund_amount=Decimal("0"),
    )


async def partial_capture_deposit(
    session: AsyncSession,
    *,
    reservation: Reservation,
    transaction: DepositTransaction,
    capture_amount: Decimal | None,
    reason: str | None,
) -> DepositOutcome:
    """Capture part of a held deposit and refund the remainder."""

    captured = validate_partial_amount(transaction.amount, capture_amount)
    cleaned_reason = validate_capture_reason(reason)
    refund = transaction.amount - captured

    await _close_held(
        session,
        transaction,
        status=DepositStatus.CAPTURED,
        captured_at=_now(),
        capture_reason=cleaned_reason,
        captured_amount=captured,
        refund_amount=refund,
    )

    await notification_service.notify(
        session,
        user_id=reservation.renter_id,
        type=NotificationType.DEPOSIT_PARTIAL_CAPTURE,
        title="Deposit partially captured",
        body=(
            f"{format_amount(captured)} has been captured from your deposit."
            f" {format_amount(refund)} will be refunded to you. Reason: {cleaned_reason}"
        ),
        data={
            "reservation_id": str(reservation.id),
            "captured_amount": int(captured),
            "refund_amount": int(refund),
            "reason": cleaned_reason,
        },
        commit=False,
    )
    await session.commit()
    await session.refresh(transaction)
    logger.info(
        "Deposit partially captured %s (captured %s, refunded %s)",
        transaction.id,
        captured,
        refund,
    )
    return DepositOutcome(
        transaction=transaction,
        message=f"{format_amount(captured)} captured, {format_amount(refund)} refunded.",
        captured_amount=captured,
        refund_amount=refund,
    )


async def apply_gateway_check(
    session: AsyncSession,
    transaction: DepositTransaction,
    check: PaymentCheck,
) -> DepositTransaction:
    """Move a pending deposit to held or failed from a verified gateway status."""

    if (
        transaction.status == DepositStatus.EXPIRED
        and check.accepted
        and transaction.payment_status != GatewayPaymentStatus.COMPLETED
    ):
        return await _record_late_payment(session, transaction)
    if transaction.status != DepositStatus.PENDING:
        logger.info(
            "Ignoring gateway status %s for deposit %s already %s",
            check.status,
            transaction.id,
            transaction.status.value,
        )
        return transaction

    reservation = await get_reservation(session, transaction.reservation_id)
    if check.accepted:
        if not await _transition(
            session,
            transaction,
            DepositStatus.PENDING,
            status=DepositStatus.HELD,
            payment_status=GatewayPaymentStatus.COMPLETED,
        ):
            return await _reapply_gateway_check(session, transaction, check)
        reservation.deposit_paid = True
        reservation.deposit_mode = DepositMode.GOMONTO
        amount = format_amount(transaction.amount)
        data = {"reservation_id": str(reservation.id), "amount": int(transaction.amount)}
        await notification_service.notify(
            session,
            user_id=reservation.owner_id,
            type=NotificationType.DEPOSIT_SECURED,
            title="Deposit secured",
            body=f"A deposit of {amount} has been secured through GoMonto for your vehicle.",
            data=data,
            commit=False,
        )
        await notification_service.notify(
            session,
            user_id=reservation.renter_id,
            type=NotificationType.DEPOSIT_PAID,
            title="Deposit paid",
            body=(
                f"Your deposit of {amount} is secured. It will be returned at the end"
                " of the rental if no damage is found."
            ),
            data=data,
            commit=False,
        )
        logger.info("Deposit secured %s", transaction.id)
    elif check.refused:
        if not await _transition(
            session,
            transaction,
            DepositStatus.PENDING,
            status=DepositStatus.FAILED,
            payment_status=GatewayPaymentStatus.FAILED,
        ):
            return await _reapply_gateway_check(session, transaction, check)
        await notification_service.notify(
            session,
            user_id=reservation.renter_id,
            type=NotificationType.DEPOSIT_FAILED,
            title="Deposit payment failed",
            body="Your deposit payment could not be completed. You can start a new one.",
            data={"reservation_id": str(reservation.id)},
            commit=False,
        )
        logger.info("Deposit payment failed %s (%s)", transaction.id, check.status)
    else:
        return transaction

    await session.commit()
    await session.refresh(transaction)
    return transaction


async def _reapply_gateway_check(
    session: AsyncSession,
    transaction: DepositTransaction,
    check: PaymentCheck,
) -> DepositTransaction:
    """The row left ``pending`` under us: reload it and apply the status again."""
    await session.rollback()
    await session.refresh(transaction)
    return await apply_gateway_check(session, transaction, check)


async def _record_late_payment(
    session: AsyncSession, transaction: DepositTransaction
) -> DepositTransaction:
    """Payment confirmed after the checkout window closed: owe the renter a refund."""

    reservation = await get_reservation(session, transaction.reservation_id)
    transaction.payment_status = GatewayPaymentStatus.COMPLETED
    transaction.refund_amount = transaction.amount
    await notification_service.notify(
        session,
        user_id=reservation.renter_id,
        type=NotificationType.DEPOSIT_EXPIRED,
        title="Deposit payment received too late",
        body=(
            "Your deposit payment arrived after the payment window closed."
            f" The deposit of {format_amount(transaction.amount)} will be returned to you."
        ),
        data={
            "reservation_id": str(reservation.id),
            "refund_amount": int(transaction.amount),
        },
        commit=False,
    )
    await session.commit()
    await session.refresh(transaction)
    logger.warning(
        "Late payment on expired deposit %s (%s); refund of %s owed",
        transaction.id,
        transaction.provider_reference,
        transaction.amount,
    )
    return transaction


async def sync_with_gateway(
    session: AsyncSession,
    *,
    user: User,
    reservation_id: UUID,
    gateway: CinetPayClient,
) -> DepositTransaction | None:
    """Re-verify the pending deposit of a reservation with the gateway."""

    reservation = await get_reservation(session, reservation_id)
    ensure_participant(reservation, user)
    transaction = await get_latest_transaction(session, reservation_id)
    if (
        transaction is None
        or transaction.status != DepositStatus.PENDING
        or not transaction.provider_reference
    ):
        return transaction
    check = await gateway.check_payment(transaction.provider_reference)
    return await apply_gateway_check(session, transaction, check)


async def expire_stale_deposits(
    session: AsyncSession, *, now: datetime | None = None
) -> int:
    """Expire unpaid checkouts and holds nobody acted on."""

    settings = get_settings()
    current = now or _now()
    payment_cutoff = current - timedelta(minutes=settings.deposit_payment_window_minutes)
    stmt = (
        select(DepositTransaction)
        .options(selectinload(DepositTransaction.reservation))
        .where(
            or_(
                (DepositTransaction.status == DepositStatus.PENDING)
                & (DepositTransaction.created_at <= payment_cutoff),
                (DepositTransaction.status == DepositStatus.HELD)
                & (DepositTransaction.hold_expires_at <= current),
            )
        )
    )
    transactions = list((await session.execute(stmt)).scalars().all())
    expired: list[DepositTransaction] = []
    for transaction in transactions:
        was_held = transaction.status == DepositStatus.HELD
        values: dict[str, object] = {"status": DepositStatus.EXPIRED}
        if was_held:
            values["refund_amount"] = transaction.amount
        else:
            values["payment_status"] = GatewayPaymentStatus.FAILED
        if not await _transition(session, transaction, transaction.status, **values):
            logger.info("Deposit %s changed before expiry, skipping", transaction.id)
            continue
        expired.append(transaction)
        if was_held:
            await notification_service.notify(
                session,
                user_id=transaction.reservation.renter_id,
                type=NotificationType.DEPOSIT_EXPIRED,
                title="Deposit hold expired",
                body=(
                    f"The hold on your deposit of {format_amount(transaction.amount)}"
                    " has expired and the amount will be returned to you."
                ),
                data={
                    "reservation_id": str(transaction.reservation_id),
                    "refund_amount": int(transaction.amount),
                },
                commit=False,
            )
    await session.commit()
    for transaction in expired:
        await session.refresh(transaction)
    if expired:
        logger.info("Expired %d stale deposit transactions", len(expired))
    return len(expired)
