"""Owner/renter side of the Smart Deposit screen.

The controller keeps the last fetched transaction and the set of actions
currently awaiting a response. Status is only ever read back from the server
after a successful action; a failed action leaves the view untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from gomonto.client.api import SmartDepositAPI
from gomonto.client.errors import DepositAPIError
from gomonto.client.view import DepositViewState, build_deposit_view
from gomonto.schemas.deposit import DepositTransactionRead
from gomonto.services.deposit_rules import (
    DepositAction,
    validate_capture_reason,
    validate_partial_amount,
)

logger = logging.getLogger(__name__)

FAILURE_MESSAGES: dict[DepositAction, str] = {
    DepositAction.INITIATE: "Could not start the deposit payment.",
    DepositAction.RELEASE: "Could not release the deposit.",
    DepositAction.CAPTURE: "Could not capture the deposit.",
    DepositAction.PARTIAL_CAPTURE: "Could not capture part of the deposit.",
}
RELOAD_FAILURE_MESSAGE = "Could not reload the deposit status."


@dataclass(frozen=True, slots=True)
class Notice:
    """Message surfaced to the user after an action."""

    level: str
    message: str


NoticeCallback = Callable[[Notice], None]


class DepositController:
    def __init__(
        self,
        api: SmartDepositAPI,
        *,
        reservation_id: UUID,
        deposit_amount: Decimal | int,
        is_owner: bool,
        notify: NoticeCallback | None = None,
    ) -> None:
        self.api = api
        self.reservation_id = reservation_id
        self.deposit_amount = Decimal(str(deposit_amount))
        self.is_owner = is_owner
        self.transaction: DepositTransactionRead | None = None
        self.in_flight: set[DepositAction] = set()
        self.notices: list[Notice] = []
        self._notify = notify

    def _emit(self, level: str, message: str) -> None:
        notice = Notice(level=level, message=message)
        self.notices.append(notice)
        if self._notify is not None:
            self._notify(notice)

    def view(self) -> DepositViewState:
        return build_deposit_view(
            self.transaction,
            deposit_amount=self.deposit_amount,
            is_owner=self.is_owner,
            in_flight=frozenset(self.in_flight),
        )

    async def refresh(self) -> DepositTransactionRead | None:
        """Reload the latest transaction row from the server."""
        self.transaction = await self.api.fetch_transaction(self.reservation_id)
        return self.transaction

    def _is_enabled(self, action: DepositAction) -> bool:
        control = self.view().control(action.value)
        return control is not None and control.enabled

    async def _dispatch(
        self,
        action: DepositAction,
        **fields: Any,
    ) -> dict[str, Any] | None:
        if not self._is_enabled(action):
            logger.debug("Ignoring %s: control not available", action.value)
            return None
        self.in_flight.add(action)
        try:
            result = await self.api.invoke(
                action,
                reservation_id=self.reservation_id,
                transaction_id=self.transaction.id if self.transaction else None,
                **fields,
            )
        except DepositAPIError as exc:
            logger.warning("Smart deposit %s failed: %s", action.value, exc.detail)
            self._emit("error", FAILURE_MESSAGES[action])
            return None
        finally:
            self.in_flight.discard(action)

        self._emit("success", str(result.get("message") or "Done."))
        try:
            await self.refresh()
        except DepositAPIError as exc:
            logger.warning("Reloading deposit after %s failed: %s", action.value, exc.detail)
            self._emit("error", RELOAD_FAILURE_MESSAGE)
        return result

    async def initiate(self) -> str | None:
        """Start the gateway checkout and return the URL to open."""
        result = await self._dispatch(DepositAction.INITIATE)
        if result is None:
            return None
        return result.get("paymentUrl") or result.get("payment_url")

    async def release(self) -> bool:
        return await self._dispatch(DepositAction.RELEASE) is not None

    async def capture(self, reason: str | None) -> bool:
        """Capture the whole deposit; the reason is checked before sending."""
        cleaned = validate_capture_reason(reason)
        result = await self._dispatch(DepositAction.CAPTURE, capture_reason=cleaned)
        return result is not None

    async def partial_capture(self, amount: int | None, reason: str | None) -> bool:
        """Capture part of the deposit after checking amount and reason locally."""
        captured = validate_partial_amount(self.deposit_amount, amount)
        cleaned = validate_capture_reason(reason)
        result = await self._dispatch(
            DepositAction.PARTIAL_CAPTURE,
            capture_amount=int(captured),
            capture_reason=cleaned,
        )
        return result is not None
