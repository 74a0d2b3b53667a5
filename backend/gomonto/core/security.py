"""Password hashing and bearer tokens."""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
from jose import JWTError, jwt

from gomonto.core.config import get_settings


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode(), hashed_password.encode())
    except (ValueError, TypeError):  # malformed stored hash
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def create_access_token(
    subject: str,
    *,
    role: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign a JWT whose ``sub`` is the user id."""
    settings = get_settings()
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims: dict[str, Any] = {"sub": subject, "exp": datetime.now(UTC) + lifetime}
    if role is not None:
        claims["role"] = role
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode a JWT, raising ``JWTError`` when it is invalid or expired."""
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def token_user_id(token: str) -> uuid.UUID:
    """Return the user id carried by ``token``."""
    subject = decode_access_token(token).get("sub")
    try:
        return uuid.UUID(str(subject))
    except ValueError as exc:
        raise JWTError("Token subject is not a user id") from exc
