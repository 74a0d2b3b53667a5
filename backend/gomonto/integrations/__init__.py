"""Integration shortcuts."""

from .cinetpay_client import (
    CheckoutCustomer,
    CheckoutSession,
    CinetPayClient,
    CinetPayClientError,
    PaymentCheck,
)

__all__ = [
    "CheckoutCustomer",
    "CheckoutSession",
    "CinetPayClient",
    "CinetPayClientError",
    "PaymentCheck",
]
