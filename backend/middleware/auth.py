"""
Authentication dependencies

Turns the access token into a quoteflow Caller. Login itself happens
elsewhere; this only verifies the token and reads identity + role.
"""

from fastapi import Request, HTTPException
from jose import JWTError
from typing import Optional

from quoteflow.types import Caller

from .jwt_session import caller_from_claims, decode_access_token


def _token_from_request(request: Request) -> Optional[str]:
    """Cookie first, then Authorization: Bearer"""
    token = request.cookies.get("access_token")
    if token:
        return token

    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def get_current_caller_optional(request: Request) -> Optional[Caller]:
    """Caller for the request, or None when there is no valid token."""
    token = _token_from_request(request)
    if not token:
        return None

    try:
        return caller_from_claims(decode_access_token(token))
    except (JWTError, KeyError, ValueError):
        return None


async def get_current_caller(request: Request) -> Caller:
    """
    Caller for the request.

    Raises:
        HTTPException 401 (code not_authenticated) without a valid token
    """
    caller = await get_current_caller_optional(request)
    if caller is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "not_authenticated", "message": "Not authenticated"},
        )
    return caller
