"""
Identity tokens

HS256 JWTs carrying who the caller is and which role they act in:

    {"sub": "u_123", "role": "organizer", "name": "...", "email": "...", "exp": ..., "iat": ...}
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from jose import jwt
from config import get_settings

from quoteflow.types import Caller, Role

settings = get_settings()


def create_access_token(caller: Caller, expire_minutes: Optional[int] = None) -> str:
    """Sign a token for ``caller`` (defaults to JWT_EXPIRE_MINUTES)."""
    issued = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expire_minutes or settings.jwt_expire_minutes)

    claims = {
        "sub": caller.user_id,
        "role": caller.role.value,
        "name": caller.name,
        "email": caller.email,
        "iat": issued,
        "exp": issued + lifetime,
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """
    Verify signature and expiry.

    Raises:
        jose.JWTError if token invalid/expired
    """
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def caller_from_claims(claims: Mapping[str, Any]) -> Caller:
    """
    Build a Caller from verified claims.

    Tokens without a role claim are treated as clients.

    Raises:
        KeyError if ``sub`` is missing, ValueError for an unknown role
    """
    return Caller(
        user_id=str(claims["sub"]),
        role=Role(claims.get("role") or Role.CLIENT.value),
        name=claims.get("name"),
        email=claims.get("email"),
    )
