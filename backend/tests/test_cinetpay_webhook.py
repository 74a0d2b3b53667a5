"""CinetPay notification handling."""

from __future__ import annotations

from typing import Any

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from gomonto.db.session import get_sessionmaker
from gomonto.models import PaymentEvent, Reservation

pytestmark = pytest.mark.asyncio

WEBHOOK = "/api/v1/payments/cinetpay-webhook"


async def _initiate(ctx: dict[str, Any]) -> dict[str, Any]:
    client: AsyncClient = ctx["client"]
    response = await client.post(
        "/api/v1/smart-deposit",
        json={"action": "initiate", "reservationId": str(ctx["reservation_id"])},
        headers=ctx["renter_headers"],
    )
    assert response.status_code == 200, response.text
    return response.json()["transaction"]


async def _notification_types(client: AsyncClient, headers: dict[str, str]) -> list[str]:
    response = await client.get("/api/v1/notifications", headers=headers)
    assert response.status_code == 200
    return sorted(item["type"] for item in response.json())


async def test_accepted_payment_secures_deposit(
    app_context: dict[str, Any], cinetpay, db_url: str
) -> None:
    client: AsyncClient = app_context["client"]
    transaction = await _initiate(app_context)
    reference = transaction["provider_reference"]
    cinetpay.statuses[reference] = "ACCEPTED"

    response = await client.post(WEBHOOK, data={"cpm_trans_id": reference, "cpm_site_id": "445566"})
    assert response.status_code == 200, response.text
    assert response.json() == {"success": True, "status": "held", "type": "deposit"}

    latest = await client.get(
        f"/api/v1/reservations/{app_context['reservation_id']}/deposit-transaction",
        headers=app_context["owner_headers"],
    )
    assert latest.json()["status"] == "held"
    assert latest.json()["payment_status"] == "completed"

    assert await _notification_types(client, app_context["owner_headers"]) == [
        "deposit_secured"
    ]
    assert await _notification_types(client, app_context["renter_headers"]) == [
        "deposit_paid"
    ]

    repeat = await client.post(WEBHOOK, json={"cpm_trans_id": reference})
    assert repeat.status_code == 200
    assert repeat.json()["status"] == "held"
    assert await _notification_types(client, app_context["owner_headers"]) == [
        "deposit_secured"
    ]

    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        events = await session.scalar(select(func.count()).select_from(PaymentEvent))
        reservation = await session.get(Reservation, app_context["reservation_id"])
    assert events == 1
    assert reservation is not None and reservation.deposit_paid is True


async def test_refused_payment_fails_and_allows_new_attempt(
    app_context: dict[str, Any], cinetpay
) -> None:
    client: AsyncClient = app_context["client"]
    transaction = await _initiate(app_context)
    cinetpay.statuses[transaction["provider_reference"]] = "REFUSED"

    response = await client.post(
        WEBHOOK, data={"cpm_trans_id": transaction["provider_reference"]}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert await _notification_types(client, app_context["renter_headers"]) == [
        "deposit_failed"
    ]

    retry = await _initiate(app_context)
    assert retry["id"] != transaction["id"]
    assert retry["status"] == "pending"


async def test_pending_status_leaves_transaction_untouched(
    app_context: dict[str, Any], cinetpay
) -> None:
    transaction = await _initiate(app_context)
    response = await app_context["client"].post(
        WEBHOOK, data={"cpm_trans_id": transaction["provider_reference"]}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "pending"


async def test_rejects_malformed_notifications(
    app_context: dict[str, Any], cinetpay
) -> None:
    client: AsyncClient = app_context["client"]
    missing = await client.post(WEBHOOK, data={"cpm_site_id": "445566"})
    assert missing.status_code == 400

    unverifiable = await client.post(WEBHOOK, data={"cpm_trans_id": "DEP-000-unknown"})
    assert unverifiable.status_code == 400

    cinetpay.statuses["DEP-000-orphan"] = "ACCEPTED"
    orphan = await client.post(WEBHOOK, data={"cpm_trans_id": "DEP-000-orphan"})
    assert orphan.status_code == 404


async def test_non_deposit_transactions_are_ignored(
    app_context: dict[str, Any], cinetpay
) -> None:
    cinetpay.statuses["SUB-42"] = "ACCEPTED"
    response = await app_context["client"].post(WEBHOOK, data={"cpm_trans_id": "SUB-42"})
    assert response.status_code == 200
    assert response.json() == {"success": True, "status": "ignored"}


async def test_webhook_requires_gateway_configuration(app_context: dict[str, Any]) -> None:
    response = await app_context["client"].post(WEBHOOK, data={"cpm_trans_id": "DEP-1"})
    assert response.status_code == 503


async def test_local_simulation_applies_status(
    app_context: dict[str, Any], cinetpay
) -> None:
    client: AsyncClient = app_context["client"]
    transaction = await _initiate(app_context)
    response = await client.post(
        "/api/v1/payments/dev/simulate-webhook",
        json={"cpm_trans_id": transaction["provider_reference"], "status": "accepted"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "held"
    assert not any(
        path == "/v2/payment/check" for path, _ in cinetpay.requests
    )
