"""Authentication endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from gomonto.api.deps import get_db_session
from gomonto.api.rate_limit import parse_rate, rate_dependency
from gomonto.core.config import get_settings
from gomonto.schemas.auth import Token
from gomonto.security.redact import mask_email
from gomonto.services.auth_service import (
    authenticate_user,
    create_access_token_for_user,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_LOGIN_RATE_DEP = rate_dependency(
    parse_rate(get_settings().rate_limit_login, fallback=(10, 60))
)


@router.post(
    "/token",
    response_model=Token,
    summary="Obtain access token",
    dependencies=[_LOGIN_RATE_DEP],
)
async def login_for_access_token(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> Token:
    """Validate credentials and issue a bearer token."""
    user = await authenticate_user(
        session, email=form_data.username, password=form_data.password
    )
    if not user:
        logger.info("Rejected login for %s", mask_email(form_data.username))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Token(access_token=create_access_token_for_user(user))
