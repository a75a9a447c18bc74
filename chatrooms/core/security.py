"""
Bearer token helpers.

Tokens are HS256 JWTs signed with JWT_SECRET and carry the claims
{"id", "email", "role"} plus an "exp" expiry. The chat layer only verifies
them; issuing is here for tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from jose import ExpiredSignatureError, JWTError, jwt

from chatrooms.core.config import settings
from chatrooms.core.exceptions import AuthenticationError
from chatrooms.core.logging import get_logger

logger = get_logger(__name__)


def create_access_token(
    user_id: str,
    email: str,
    role: str = "user",
    expires_minutes: Optional[int] = None,
) -> str:
    """Sign a token for the given identity."""
    if not settings.JWT_SECRET:
        raise AuthenticationError("JWT_SECRET is not configured")

    minutes = settings.JWT_EXPIRES_MINUTES if expires_minutes is None else expires_minutes
    claims = {
        "id": user_id,
        "email": email,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Verify a token and return its claims.

    Raises:
        AuthenticationError: token missing, expired, badly signed, or
            lacking the "id" claim.
    """
    if not token:
        raise AuthenticationError("No token provided")
    if not settings.JWT_SECRET:
        raise AuthenticationError("JWT_SECRET is not configured")

    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except JWTError:
        raise AuthenticationError("Invalid token")

    if not claims.get("id"):
        raise AuthenticationError("Token is missing the id claim")
    return claims


def extract_bearer(authorization: Optional[str]) -> str:
    """Pull the token out of an `Authorization: Bearer <token>` header."""
    if not authorization:
        raise AuthenticationError("No token provided")

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise AuthenticationError("Invalid token format. Use: Bearer <token>")
    return parts[1]


async def get_current_user(request: Request) -> Dict[str, Any]:
    """
    Get the verified identity of the caller.
    Use as dependency for protected endpoints.
    """
    try:
        token = extract_bearer(request.headers.get("Authorization"))
        return decode_token(token)
    except AuthenticationError as e:
        logger.warning("Rejected request to %s: %s", request.url.path, e.message)
        raise HTTPException(401, f"Access denied. {e.message}")
