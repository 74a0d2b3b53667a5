"""Smart Deposit fee calculation.

The renter pays the deposit plus a flat service fee. The fee covers the
gateway pay-in and pay-out costs and is never refunded: on release the renter
gets back exactly the deposit amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Mapping

SMART_DEPOSIT_FEE_RATE = Decimal("0.05")

# Published CinetPay rates per operator (estimates).
GATEWAY_FEES: Mapping[str, Mapping[str, Decimal]] = {
    "pay_in": {
        "visa_mastercard": Decimal("0.035"),
        "orange_money": Decimal("0.03"),
        "mtn_momo": Decimal("0.022"),
        "wave": Decimal("0.02"),
        "moov_money": Decimal("0.025"),
        "free_money": Decimal("0.025"),
        "default": Decimal("0.03"),
    },
    "pay_out": {
        "orange_money": Decimal("0.018"),
        "mtn_momo": Decimal("0.013"),
        "wave": Decimal("0.02"),
        "moov_money": Decimal("0.015"),
        "default": Decimal("0.018"),
    },
}

_XOF = Decimal("1")


@dataclass(frozen=True, slots=True)
class DepositFees:
    """Breakdown of what a renter pays for a Smart Deposit."""

    deposit_amount: Decimal
    service_fee: Decimal
    total_to_pay: Decimal
    refundable_amount: Decimal
    fee_percentage: Decimal


def to_xof(value: Decimal | int | float | str) -> Decimal:
    """Round an amount to whole francs."""
    return Decimal(str(value)).quantize(_XOF, rounding=ROUND_HALF_UP)


def calculate_deposit_fees(deposit_amount: Decimal | int | str) -> DepositFees:
    """Return the fee breakdown for ``deposit_amount``."""
    try:
        amount = Decimal(str(deposit_amount))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid deposit amount: {deposit_amount!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValueError("Deposit amount must be positive")
    service_fee = to_xof(amount * SMART_DEPOSIT_FEE_RATE)
    return DepositFees(
        deposit_amount=amount,
        service_fee=service_fee,
        total_to_pay=amount + service_fee,
        refundable_amount=amount,
        fee_percentage=SMART_DEPOSIT_FEE_RATE * 100,
    )


def format_amount(value: Decimal | int, currency: str = "FCFA") -> str:
    """Format an amount with French digit grouping, e.g. ``105 000 FCFA``."""
    grouped = f"{int(to_xof(value)):,}".replace(",", " ")
    return f"{grouped} {currency}"


def format_deposit_fees(
    deposit_amount: Decimal | int | str, currency: str = "FCFA"
) -> dict[str, str]:
    fees = calculate_deposit_fees(deposit_amount)
    return {
        "deposit_amount": format_amount(fees.deposit_amount, currency),
        "service_fee": format_amount(fees.service_fee, currency),
        "total_to_pay": format_amount(fees.total_to_pay, currency),
        "refundable_amount": format_amount(fees.refundable_amount, currency),
    }


def estimate_gateway_cost(
    amount: Decimal | int | str,
    *,
    pay_in_operator: str = "default",
    pay_out_operator: str = "default",
) -> Decimal:
    """Estimate what collecting and later refunding ``amount`` costs at the gateway."""
    value = Decimal(str(amount))
    pay_in = GATEWAY_FEES["pay_in"].get(pay_in_operator, GATEWAY_FEES["pay_in"]["default"])
    pay_out = GATEWAY_FEES["pay_out"].get(
        pay_out_operator, GATEWAY_FEES["pay_out"]["default"]
    )
    return to_xof(value * (pay_in + pay_out))


__all__ = [
    "DepositFees",
    "GATEWAY_FEES",
    "SMART_DEPOSIT_FEE_RATE",
    "calculate_deposit_fees",
    "estimate_gateway_cost",
    "format_amount",
    "format_deposit_fees",
    "to_xof",
]
