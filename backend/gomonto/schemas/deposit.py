"""Smart Deposit request and response schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from gomonto.models.deposit import DepositStatus, GatewayPaymentStatus
from gomonto.services.deposit_fees import DepositFees, format_deposit_fees
from gomonto.services.deposit_rules import DepositAction


class SmartDepositRequest(BaseModel):
    """Body of the transition endpoint; accepts camelCase keys."""

    action: DepositAction
    reservation_id: uuid.UUID
    transaction_id: uuid.UUID | None = None
    capture_amount: int | None = None
    capture_reason: str | None = Field(default=None, max_length=2000)
    payment_method: str | None = Field(default=None, max_length=32)
    phone_number: str | None = Field(default=None, max_length=32)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DepositStatusCheckRequest(BaseModel):
    reservation_id: uuid.UUID

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DepositTransactionRead(BaseModel):
    """Serialized deposit transaction row."""

    id: uuid.UUID
    reservation_id: uuid.UUID
    status: DepositStatus
    amount: int
    service_fee: int
    refund_amount: int | None = None
    captured_amount: int | None = None
    capture_reason: str | None = None
    payment_method: str | None = None
    payment_status: GatewayPaymentStatus
    provider_reference: str | None = None
    payment_url: str | None = None
    hold_expires_at: datetime | None = None
    released_at: datetime | None = None
    captured_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DepositFeesRead(BaseModel):
    """Fee breakdown shown to a renter before paying."""

    deposit_amount: int
    service_fee: int
    total_to_pay: int
    refundable_amount: int
    fee_percentage: float
    formatted: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_fees(cls, fees: DepositFees) -> "DepositFeesRead":
        return cls(
            deposit_amount=int(fees.deposit_amount),
            service_fee=int(fees.service_fee),
            total_to_pay=int(fees.total_to_pay),
            refundable_amount=int(fees.refundable_amount),
            fee_percentage=float(fees.fee_percentage),
            formatted=format_deposit_fees(fees.deposit_amount),
        )


class SmartDepositResponse(BaseModel):
    """Outcome of a transition."""

    success: bool = True
    transaction: DepositTransactionRead
    message: str
    payment_url: str | None = None
    payment_token: str | None = None
    deposit_amount: int | None = None
    service_fee: int | None = None
    total_to_pay: int | None = None
    refund_amount: int | None = None
    captured_amount: int | None = None
