"""CinetPay notification receiver and local simulator."""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any
from uuid import uuid4

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gomonto.api import deps
from gomonto.core.config import get_settings
from gomonto.integrations import CinetPayClient, CinetPayClientError, PaymentCheck
from gomonto.models import PaymentEvent
from gomonto.services import deposit_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments-webhook"])


async def _record_event(
    session: AsyncSession, event_id: str, payload: dict[str, Any]
) -> None:
    session.add(PaymentEvent(provider="cinetpay", provider_event_id=event_id, raw=payload))
    try:
        await session.commit()
    except IntegrityError:  # duplicate events are ignored
        await session.rollback()


async def _read_notification(request: Request) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type or (
        "multipart/form-data" in content_type
    ):
        form = await request.form()
        return {key: str(value) for key, value in form.items()}
    try:
        payload = await request.json()
    except json.JSONDecodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload"
        ) from exc
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload"
        )
    return payload


async def _process_check(
    session: AsyncSession,
    check: PaymentCheck,
    payload: dict[str, Any],
) -> dict[str, Any]:
    transaction_id = check.transaction_id
    if not transaction_id.startswith(deposit_service.GATEWAY_REFERENCE_PREFIX):
        logger.info("Ignoring non-deposit CinetPay notification %s", transaction_id)
        return {"success": True, "status": "ignored"}

    transaction = await deposit_service.find_by_provider_reference(
        session, transaction_id
    )
    if transaction is None:
        logger.warning("Deposit transaction not found for %s", transaction_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Deposit transaction not found",
        )

    transaction = await deposit_service.apply_gateway_check(session, transaction, check)
    result = {
        "success": True,
        "status": transaction.status.value,
        "type": "deposit",
    }
    # a duplicate event rolls the session back and expires the row
    await _record_event(session, f"{transaction_id}:{check.status}", payload)
    return result


@router.post("/cinetpay-webhook", status_code=status.HTTP_200_OK)
async def handle_cinetpay_webhook(
    request: Request,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    gateway: Annotated[CinetPayClient | None, Depends(deps.get_cinetpay_client)],
) -> dict[str, Any]:
    payload = await _read_notification(request)
    transaction_id = str(payload.get("cpm_trans_id") or "").strip()
    if not transaction_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing transaction ID"
        )
    logger.info("CinetPay notification received for %s", transaction_id)

    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CinetPay configuration missing",
        )
    try:
        check = await gateway.check_payment(transaction_id)
    except CinetPayClientError as exc:
        logger.warning("Payment verification failed for %s: %s", transaction_id, exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment verification failed",
        ) from exc

    return await _process_check(session, check, payload)


@router.post("/dev/simulate-webhook", status_code=status.HTTP_200_OK)
async def simulate_webhook(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    payload: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    """Apply a gateway status without calling CinetPay (local only)."""
    settings = get_settings()
    if settings.app_env.lower() != "local":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Simulation route available in local environment only",
        )
    transaction_id = str(payload.get("cpm_trans_id") or "").strip()
    if not transaction_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing transaction ID"
        )
    check = PaymentCheck(
        transaction_id=transaction_id,
        status=str(payload.get("status", "ACCEPTED")).upper(),
        raw=dict(payload),
    )
    enriched = dict(payload)
    enriched.setdefault("simulation_id", f"simulated_{uuid4().hex}")
    return await _process_check(session, check, enriched)
