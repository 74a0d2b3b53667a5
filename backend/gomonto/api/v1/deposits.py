"""Smart Deposit endpoints."""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from gomonto.api import deps
from gomonto.api.rate_limit import parse_rate, rate_dependency
from gomonto.core.config import get_settings
from gomonto.core.settings import GatewaySettings
from gomonto.integrations import CinetPayClient, CinetPayClientError
from gomonto.models.user import User
from gomonto.schemas.deposit import (
    DepositFeesRead,
    DepositStatusCheckRequest,
    DepositTransactionRead,
    SmartDepositRequest,
    SmartDepositResponse,
)
from gomonto.services import deposit_service
from gomonto.services.deposit_fees import calculate_deposit_fees
from gomonto.services.deposit_rules import DepositAction

router = APIRouter(tags=["deposits"])

_ACTION_RATE_DEP = rate_dependency(
    parse_rate(get_settings().rate_limit_default, fallback=(100, 60))
)

_ERROR_STATUS: tuple[tuple[type[deposit_service.DepositError], int], ...] = (
    (deposit_service.DepositNotFound, status.HTTP_404_NOT_FOUND),
    (deposit_service.DepositPermissionDenied, status.HTTP_403_FORBIDDEN),
    (deposit_service.DepositConflict, status.HTTP_409_CONFLICT),
)


def _http_error(exc: deposit_service.DepositError) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _to_response(outcome: deposit_service.DepositOutcome) -> SmartDepositResponse:
    fees = outcome.fees
    return SmartDepositResponse(
        transaction=DepositTransactionRead.model_validate(outcome.transaction),
        message=outcome.message,
        payment_url=outcome.payment_url,
        payment_token=outcome.payment_token,
        deposit_amount=int(fees.deposit_amount) if fees else None,
        service_fee=int(fees.service_fee) if fees else None,
        total_to_pay=int(fees.total_to_pay) if fees else None,
        refund_amount=(
            int(outcome.refund_amount) if outcome.refund_amount is not None else None
        ),
        captured_amount=(
            int(outcome.captured_amount)
            if outcome.captured_amount is not None
            else None
        ),
    )


@router.post(
    "/smart-deposit",
    response_model=SmartDepositResponse,
    summary="Run a Smart Deposit lifecycle action",
    dependencies=[_ACTION_RATE_DEP],
)
async def smart_deposit(
    payload: SmartDepositRequest,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_user: Annotated[User, Depends(deps.get_current_active_user)],
    gateway: Annotated[CinetPayClient | None, Depends(deps.get_cinetpay_client)],
    gateway_settings: Annotated[
        GatewaySettings, Depends(deps.get_payment_gateway_settings)
    ],
) -> SmartDepositResponse:
    if payload.action is DepositAction.INITIATE and gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CinetPay configuration missing",
        )
    try:
        outcome = await deposit_service.perform_action(
            session,
            user=current_user,
            action=payload.action,
            reservation_id=payload.reservation_id,
            transaction_id=payload.transaction_id,
            capture_amount=(
                Decimal(payload.capture_amount)
                if payload.capture_amount is not None
                else None
            ),
            capture_reason=payload.capture_reason,
            payment_method=payload.payment_method,
            phone_number=payload.phone_number,
            gateway=gateway,
            gateway_settings=gateway_settings,
        )
    except deposit_service.DepositError as exc:
        raise _http_error(exc) from exc
    except CinetPayClientError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)
        ) from exc
    return _to_response(outcome)


@router.post(
    "/smart-deposit/check-status",
    response_model=DepositTransactionRead | None,
    summary="Re-verify a pending deposit with the payment gateway",
)
async def check_deposit_status(
    payload: DepositStatusCheckRequest,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_user: Annotated[User, Depends(deps.get_current_active_user)],
    gateway: Annotated[CinetPayClient | None, Depends(deps.get_cinetpay_client)],
) -> DepositTransactionRead | None:
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CinetPay configuration missing",
        )
    try:
        transaction = await deposit_service.sync_with_gateway(
            session,
            user=current_user,
            reservation_id=payload.reservation_id,
            gateway=gateway,
        )
    except deposit_service.DepositError as exc:
        raise _http_error(exc) from exc
    except CinetPayClientError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)
        ) from exc
    if transaction is None:
        return None
    return DepositTransactionRead.model_validate(transaction)


@router.get(
    "/reservations/{reservation_id}/deposit-transaction",
    response_model=DepositTransactionRead | None,
    summary="Latest deposit transaction of a reservation",
)
async def get_deposit_transaction(
    reservation_id: UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    current_user: Annotated[User, Depends(deps.get_current_active_user)],
) -> DepositTransactionRead | None:
    try:
        reservation = await deposit_service.get_reservation(session, reservation_id)
        deposit_service.ensure_participant(reservation, current_user)
    except deposit_service.DepositError as exc:
        raise _http_error(exc) from exc
    transaction = await deposit_service.get_latest_transaction(session, reservation_id)
    if transaction is None:
        return None
    return DepositTransactionRead.model_validate(transaction)


@router.get(
    "/deposits/fees",
    response_model=DepositFeesRead,
    summary="Quote the Smart Deposit service fee",
)
async def quote_deposit_fees(
    amount: Annotated[int, Query(gt=0)],
) -> DepositFeesRead:
    return DepositFeesRead.from_fees(calculate_deposit_fees(amount))
