"""Helpers for masking personal data before it reaches logs."""

from __future__ import annotations


def mask_email(value: str | None) -> str | None:
    if not value or "@" not in value:
        return value
    local, _, domain = value.partition("@")
    if not local:
        return "***@" + domain
    return f"{local[0]}***@{domain}"


def mask_phone(value: str | None) -> str | None:
    if not value:
        return value
    digits = [ch for ch in value if ch.isdigit()]
    if len(digits) < 4:
        return "***"
    return f"***{''.join(digits[-4:])}"


__all__ = ["mask_email", "mask_phone"]
