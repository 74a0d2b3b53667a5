"""Errors raised by the Smart Deposit HTTP client."""

from __future__ import annotations

from typing import Any


class DepositAPIError(Exception):
    """A Smart Deposit request failed at the transport or HTTP level."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(self.message)

    @property
    def detail(self) -> str:
        detail = self.response_data.get("detail", self.message)
        return detail if isinstance(detail, str) else self.message
