"""Versioned API router."""

from fastapi import APIRouter

from . import auth, deposits, health, notifications, payments_webhook

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(deposits.router)
router.include_router(payments_webhook.router)
router.include_router(notifications.router)
