"""FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError
from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi_limiter import FastAPILimiter
from secure import Secure

from gomonto.api import api_router
from gomonto.core.config import Settings, get_settings
from gomonto.security.logging_filters import SensitiveFilter

logger = logging.getLogger(__name__)

_LOGGERS_TO_SCRUB = ("", "uvicorn", "uvicorn.access", "uvicorn.error", "gomonto")


def _allowed_origins(settings: Settings) -> list[str]:
    origins = [origin for origin in settings.cors_allowlist if origin]
    origins = origins or [origin for origin in settings.cors_allow_origins if origin]
    return origins or ["http://localhost:5173"]


def _install_log_scrubbing() -> None:
    for name in _LOGGERS_TO_SCRUB:
        target = logging.getLogger(name)
        if not any(isinstance(flt, SensitiveFilter) for flt in target.filters):
            target.addFilter(SensitiveFilter())


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings = get_settings()
    redis_pool = None
    if settings.redis_url:
        try:
            redis_pool = redis.from_url(
                settings.redis_url, encoding="utf-8", decode_responses=True
            )
            await FastAPILimiter.init(redis_pool)
        except (RedisError, OSError):
            logger.exception("Rate limiter unavailable, continuing without it")
            redis_pool = None
    try:
        yield
    finally:
        if redis_pool is not None:
            await FastAPILimiter.close()
            await redis_pool.aclose()


def create_app() -> FastAPI:
    settings = get_settings()
    application = FastAPI(title=settings.app_name, lifespan=lifespan)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(settings),
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    application.add_middleware(CorrelationIdMiddleware, header_name="X-Request-ID")

    secure_headers = Secure.with_default_headers()

    @application.middleware("http")
    async def _apply_security_headers(request: Request, call_next):
        response = await call_next(request)
        secure_headers.set_headers(response)
        return response

    @application.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        return {"message": settings.app_name}

    application.include_router(api_router)
    _install_log_scrubbing()
    return application


app = create_app()
