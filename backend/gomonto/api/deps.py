"""Shared FastAPI dependencies."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from gomonto.core.config import get_settings
from gomonto.core.security import token_user_id
from gomonto.core.settings import GatewaySettings, get_gateway_settings
from gomonto.db.session import get_session
from gomonto.integrations import CinetPayClient, CinetPayClientError
from gomonto.models.user import User, UserStatus

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{get_settings().api_v1_prefix}/auth/token"
)

_UNAUTHORIZED = {
    "status_code": status.HTTP_401_UNAUTHORIZED,
    "detail": "Could not validate credentials",
    "headers": {"WWW-Authenticate": "Bearer"},
}


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> User:
    """Resolve the bearer token to a stored user."""
    try:
        user_id = token_user_id(token)
    except JWTError as exc:
        raise HTTPException(**_UNAUTHORIZED) from exc
    user = await session.get(User, user_id)
    if user is None:
        raise HTTPException(**_UNAUTHORIZED)
    return user


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Reject invited and suspended accounts."""
    if current_user.status != UserStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Account is not active"
        )
    return current_user


def get_payment_gateway_settings() -> GatewaySettings:
    return get_gateway_settings()


async def get_cinetpay_client(
    gateway_settings: Annotated[GatewaySettings, Depends(get_payment_gateway_settings)],
) -> AsyncGenerator[CinetPayClient | None, None]:
    """Yield a gateway client, or None when credentials are missing."""
    try:
        client = CinetPayClient.from_settings(gateway_settings)
    except CinetPayClientError:
        yield None
        return
    async with client:
        yield client
