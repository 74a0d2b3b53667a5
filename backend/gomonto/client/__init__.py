"""Client-side Smart Deposit helpers."""

from gomonto.client.api import SmartDepositAPI
from gomonto.client.controller import DepositController, Notice
from gomonto.client.errors import DepositAPIError
from gomonto.client.view import (
    STATUS_LABELS,
    ActionControl,
    DepositViewState,
    build_deposit_view,
)

__all__ = [
    "ActionControl",
    "DepositAPIError",
    "DepositController",
    "DepositViewState",
    "Notice",
    "STATUS_LABELS",
    "SmartDepositAPI",
    "build_deposit_view",
]
