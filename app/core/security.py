# File: app/core/security.py
"""
Security utilities for LodgePay.

This module provides token generation and decoding, and the ``Actor``
value that services use for ownership and staff checks.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

from jose import JWTError, jwt

from app.core.config import settings
from app.core.exceptions import AuthenticationException

# Get JWT settings from config
ALGORITHM = settings.JWT_ALGORITHM


@dataclass(frozen=True)
class Actor:
    """The authenticated party performing an operation."""

    id: int
    role: str = "guest"

    @property
    def is_staff(self) -> bool:
        return self.role in settings.STAFF_ROLES


# Actor recorded for transitions driven by payment provider callbacks
SYSTEM_ACTOR = Actor(id=0, role="system")


def create_access_token(
    subject: Union[str, Any],
    role: str = "guest",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        subject: Token subject (the actor's user ID)
        role: Actor role stored in the ``role`` claim
        expires_delta: Optional token expiration time

    Returns:
        str: JWT access token
    """
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode = {"exp": expire, "sub": str(subject), "role": role, "type": "access"}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Actor:
    """
    Decode an access token into an Actor.

    Raises:
        AuthenticationException: If the token is invalid, expired or malformed
    """
    try:
        payload: Dict[str, Any] = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[ALGORITHM]
        )
    except JWTError as e:
        raise AuthenticationException(f"Could not validate credentials: {e}")

    if payload.get("type") != "access":
        raise AuthenticationException("Invalid token type")
    subject = payload.get("sub")
    try:
        actor_id = int(subject)
    except (TypeError, ValueError):
        raise AuthenticationException("Invalid token subject")
    return Actor(id=actor_id, role=payload.get("role") or "guest")
