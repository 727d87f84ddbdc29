# @TASK S1-T1.4 - Bearer token contract consumed by the search API

"""JWT bearer-token handling.

Session mechanics live elsewhere; this service only issues test/dev tokens and
turns an ``Authorization: Bearer`` header into a user context:

- ``sub``: user id (UUID string), required.
- ``household_id``: household selected in the session, optional.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from inventory_search.config import Settings, get_settings

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=True)


def create_access_token(
    data: dict,
    expires_delta: timedelta | None = None,
    *,
    settings: Settings | None = None,
) -> str:
    """Create a JWT access token.

    Args:
        data: Claims to encode (must include ``sub``).
        expires_delta: Custom expiration timedelta. Falls back to config default.
        settings: Optional settings override (useful for testing).
    """
    if settings is None:
        settings = get_settings()

    to_encode = {key: str(value) if isinstance(value, uuid.UUID) else value for key, value in data.items()}
    expire = datetime.now(UTC) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})

    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(
    token: str,
    *,
    settings: Settings | None = None,
) -> dict:
    """Decode and verify a JWT token.

    Raises:
        JWTError: If the token is invalid, expired, or tampered with.
    """
    if settings is None:
        settings = get_settings()

    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


def _parse_uuid(value: object) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


async def get_current_user(
    token: str = Depends(oauth2_scheme),
) -> dict:
    """FastAPI dependency that extracts the current user from a Bearer token.

    Returns ``{"user_id": UUID, "household_id": UUID | None}``.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = verify_token(token)
    except JWTError:
        raise credentials_exception from None

    if payload.get("type") != "access":
        raise credentials_exception

    user_id = _parse_uuid(payload.get("sub"))
    if user_id is None:
        raise credentials_exception

    household_claim = payload.get("household_id")
    household_id = _parse_uuid(household_claim) if household_claim else None
    if household_claim and household_id is None:
        logger.warning("Ignoring malformed household_id claim for user %s", user_id)

    return {"user_id": user_id, "household_id": household_id}
