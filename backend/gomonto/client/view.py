"""View state of a reservation's Smart Deposit.

The view is derived entirely from the last fetched transaction row; it never
holds status of its own.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from gomonto.models.deposit import DepositStatus
from gomonto.schemas.deposit import DepositTransactionRead
from gomonto.services.deposit_fees import DepositFees, calculate_deposit_fees
from gomonto.services.deposit_rules import DepositAction

NO_DEPOSIT = "none"
COMPLETE_PAYMENT = "complete_payment"

STATUS_LABELS: dict[str, str] = {
    NO_DEPOSIT: "No deposit yet",
    DepositStatus.PENDING.value: "Awaiting payment",
    DepositStatus.HELD.value: "Secured",
    DepositStatus.RELEASED.value: "Released",
    DepositStatus.CAPTURED.value: "Captured",
    DepositStatus.FAILED.value: "Failed",
    DepositStatus.EXPIRED.value: "Expired",
}

ACTION_LABELS: dict[str, str] = {
    DepositAction.INITIATE.value: "Pay deposit",
    COMPLETE_PAYMENT: "Complete payment",
    DepositAction.RELEASE.value: "Release deposit",
    DepositAction.CAPTURE.value: "Capture all",
    DepositAction.PARTIAL_CAPTURE.value: "Partial capture",
}


@dataclass(frozen=True, slots=True)
class ActionControl:
    """One button of the deposit view."""

    name: str
    label: str
    enabled: bool
    mutating: bool = True


@dataclass(frozen=True, slots=True)
class DepositViewState:
    status: str
    label: str
    deposit_amount: Decimal
    controls: tuple[ActionControl, ...] = ()
    fees: DepositFees | None = None
    payment_url: str | None = None
    hold_expires_at: datetime | None = None
    service_fee: int | None = None
    refund_amount: int | None = None
    captured_amount: int | None = None
    capture_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status not in (
            NO_DEPOSIT,
            DepositStatus.PENDING.value,
            DepositStatus.HELD.value,
        )

    def control(self, name: str) -> ActionControl | None:
        for item in self.controls:
            if item.name == name:
                return item
        return None

    @property
    def enabled_mutations(self) -> list[str]:
        return [item.name for item in self.controls if item.mutating and item.enabled]


def _mutation(action: DepositAction, in_flight: Collection[DepositAction]) -> ActionControl:
    return ActionControl(
        name=action.value,
        label=ACTION_LABELS[action.value],
        enabled=action not in in_flight,
    )


def build_deposit_view(
    transaction: DepositTransactionRead | None,
    *,
    deposit_amount: Decimal | int,
    is_owner: bool,
    in_flight: Collection[DepositAction] = (),
) -> DepositViewState:
    """Map the latest transaction to the labels and controls to show."""

    amount = Decimal(str(deposit_amount))
    if transaction is None:
        controls: tuple[ActionControl, ...] = ()
        fees = None
        if not is_owner:
            fees = calculate_deposit_fees(amount)
            controls = (_mutation(DepositAction.INITIATE, in_flight),)
        return DepositViewState(
            status=NO_DEPOSIT,
            label=STATUS_LABELS[NO_DEPOSIT],
            deposit_amount=amount,
            controls=controls,
            fees=fees,
        )

    status = transaction.status
    controls = ()
    payment_url = None
    if status is DepositStatus.PENDING and not is_owner and transaction.payment_url:
        payment_url = transaction.payment_url
        controls = (
            ActionControl(
                name=COMPLETE_PAYMENT,
                label=ACTION_LABELS[COMPLETE_PAYMENT],
                enabled=True,
                mutating=False,
            ),
        )
    elif status is DepositStatus.HELD and is_owner:
        controls = tuple(
            _mutation(action, in_flight)
            for action in (
                DepositAction.RELEASE,
                DepositAction.PARTIAL_CAPTURE,
                DepositAction.CAPTURE,
            )
        )

    return DepositViewState(
        status=status.value,
        label=STATUS_LABELS.get(status.value, status.value),
        deposit_amount=amount,
        controls=controls,
        payment_url=payment_url,
        hold_expires_at=transaction.hold_expires_at,
        service_fee=transaction.service_fee or None,
        refund_amount=transaction.refund_amount,
        captured_amount=transaction.captured_amount,
        capture_reason=transaction.capture_reason,
    )
