"""Health check endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter

from gomonto.core.config import get_settings
from gomonto.core.settings import get_gateway_settings

router = APIRouter()


@router.get("", summary="Service health status")
async def healthcheck() -> dict[str, str]:
    """Return service metadata and whether the payment gateway is usable."""
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
        "payments": "configured" if get_gateway_settings().configured else "disabled",
        "timestamp": datetime.now(UTC).isoformat(),
    }
