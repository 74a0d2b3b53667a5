"""Test fixtures for the GoMonto Smart Deposit backend."""
from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator, Iterator
from decimal import Decimal
from datetime import UTC, datetime, timedelta

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("APP_ENV", "local")

from gomonto.api import deps
from gomonto.core.config import get_settings
from gomonto.core.security import create_access_token, get_password_hash
from gomonto.core.settings import GatewaySettings
from gomonto.db.base import Base
from gomonto.db.session import dispose_engine, get_sessionmaker
from gomonto.integrations import CinetPayClient
from gomonto.main import app
from gomonto.models import Reservation, User, UserRole, UserStatus

DEPOSIT_AMOUNT = Decimal("100000")


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)


def auth_headers(user_id: object) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user_id))}"}


async def seed_rental(session, *, deposit_amount: Decimal | None = DEPOSIT_AMOUNT) -> dict[str, object]:
    """Insert an owner, a renter, an unrelated user and one reservation."""
    password = "Passw0rd!"
    owner = User(
        email="owner@example.com",
        hashed_password=get_password_hash(password),
        full_name="Awa Owner",
        phone_number="+221771234567",
        role=UserRole.OWNER,
        status=UserStatus.ACTIVE,
    )
    renter = User(
        email="renter@example.com",
        hashed_password=get_password_hash(password),
        full_name="Moussa Renter",
        phone_number="+221779876543",
        role=UserRole.RENTER,
        status=UserStatus.ACTIVE,
    )
    outsider = User(
        email="outsider@example.com",
        hashed_password=get_password_hash(password),
        full_name="Fatou Outsider",
        role=UserRole.RENTER,
        status=UserStatus.ACTIVE,
    )
    session.add_all([owner, renter, outsider])
    await session.flush()

    start_at = datetime.now(UTC) + timedelta(days=2)
    reservation = Reservation(
        owner_id=owner.id,
        renter_id=renter.id,
        start_at=start_at,
        end_at=start_at + timedelta(days=3),
        deposit_amount=deposit_amount,
    )
    session.add(reservation)
    await session.commit()
    return {
        "password": password,
        "owner_id": owner.id,
        "owner_email": owner.email,
        "renter_id": renter.id,
        "renter_email": renter.email,
        "outsider_id": outsider.id,
        "reservation_id": reservation.id,
    }


@pytest_asyncio.fixture()
async def app_context(
    reset_database: AsyncIterator[None], db_url: str
) -> AsyncIterator[dict[str, object]]:
    """Yield an async client plus a seeded owner, renter and reservation."""
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        context = await seed_rental(session)

    context["owner_headers"] = auth_headers(context["owner_id"])
    context["renter_headers"] = auth_headers(context["renter_id"])
    context["outsider_headers"] = auth_headers(context["outsider_id"])

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        context["client"] = client
        yield context


class FakeCinetPay:
    """In-memory stand-in for the CinetPay checkout API."""

    def __init__(self) -> None:
        self.statuses: dict[str, str] = {}
        self.requests: list[tuple[str, dict[str, object]]] = []
        self.refuse_checkout = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        path = request.url.path
        self.requests.append((path, body))
        if path == "/v2/payment":
            if self.refuse_checkout:
                return httpx.Response(
                    200, json={"code": "608", "message": "MINIMUM_REQUIRED_FIELDS"}
                )
            transaction_id = body["transaction_id"]
            self.statuses.setdefault(transaction_id, "PENDING")
            return httpx.Response(
                200,
                json={
                    "code": "201",
                    "message": "CREATED",
                    "data": {
                        "payment_token": f"tok-{transaction_id}",
                        "payment_url": f"https://checkout.cinetpay.test/pay/{transaction_id}",
                    },
                },
            )
        if path == "/v2/payment/check":
            transaction_id = body["transaction_id"]
            if transaction_id not in self.statuses:
                return httpx.Response(
                    200, json={"code": "627", "message": "TRANSACTION_NOT_FOUND"}
                )
            return httpx.Response(
                200,
                json={
                    "code": "00",
                    "message": "SUCCES",
                    "data": {
                        "amount": "105000",
                        "currency": "XOF",
                        "status": self.statuses[transaction_id],
                        "payment_method": "OM",
                    },
                },
            )
        return httpx.Response(404, json={"code": "404", "message": "NOT_FOUND"})

    def checkout_requests(self) -> list[dict[str, object]]:
        return [body for path, body in self.requests if path == "/v2/payment"]


TEST_GATEWAY_SETTINGS = GatewaySettings(
    api_key="test-api-key",
    site_id="445566",
    base_url="https://api-checkout.cinetpay.test",
    notify_url="http://test/api/v1/payments/cinetpay-webhook",
    frontend_url="https://gomonto.test",
)


@pytest.fixture()
def cinetpay() -> Iterator[FakeCinetPay]:
    """Route gateway calls of the app to a fake CinetPay."""
    fake = FakeCinetPay()

    async def _client() -> AsyncIterator[CinetPayClient]:
        async with CinetPayClient.from_settings(
            TEST_GATEWAY_SETTINGS, transport=httpx.MockTransport(fake.handler)
        ) as client:
            yield client

    app.dependency_overrides[deps.get_cinetpay_client] = _client
    app.dependency_overrides[deps.get_payment_gateway_settings] = (
        lambda: TEST_GATEWAY_SETTINGS
    )
    yield fake
    app.dependency_overrides.pop(deps.get_cinetpay_client, None)
    app.dependency_overrides.pop(deps.get_payment_gateway_settings, None)
