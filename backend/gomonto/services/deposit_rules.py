"""Actions, roles and input rules of the Smart Deposit lifecycle.

Shared by the transition service and the client controller so both reject
the same inputs.
"""

from __future__ import annotations

import enum
from decimal import Decimal


class DepositAction(str, enum.Enum):
    """Operations accepted by the transition endpoint."""

    INITIATE = "initiate"
    HOLD = "hold"
    RELEASE = "release"
    CAPTURE = "capture"
    PARTIAL_CAPTURE = "partial_capture"


class CaptureValidationError(ValueError):
    """Raised when capture input is rejected before any transition."""


RENTER_ACTIONS = frozenset({DepositAction.INITIATE, DepositAction.HOLD})
OWNER_ACTIONS = frozenset(
    {DepositAction.RELEASE, DepositAction.CAPTURE, DepositAction.PARTIAL_CAPTURE}
)


def validate_capture_reason(reason: str | None) -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise CaptureValidationError("A capture reason is required")
    return cleaned


def validate_partial_amount(
    deposit_amount: Decimal | int, capture_amount: Decimal | int | None
) -> Decimal:
    """Return the capture amount when it lies strictly inside the deposit."""
    if capture_amount is None:
        raise CaptureValidationError("A capture amount is required")
    amount = Decimal(str(capture_amount))
    total = Decimal(str(deposit_amount))
    if amount <= 0 or amount >= total:
        raise CaptureValidationError(
            "Capture amount must be greater than 0 and less than the deposit amount"
        )
    return amount
