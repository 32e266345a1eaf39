"""
Authentication Dependencies

FastAPI dependencies that turn a bearer JWT into the authenticated caller.
Tokens are issued by the auth module and decoded with core.security.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from schoolhub.core.security import decode_token

logger = logging.getLogger(__name__)

# auto_error is off so a missing header yields 401 (not FastAPI's default 403)
security = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token for authentication",
)


@dataclass
class CurrentUser:
    """
    The authenticated caller, populated from JWT claims.

    Attributes:
        id: User id (the ``sub`` claim)
        email: User's email address
        role: One of admin / teacher / student / parent
        name: Display name, if present in the token
    """

    id: str
    email: str
    role: str
    name: str | None = None

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, role={self.role})"


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _validate_jwt_token(token: str) -> CurrentUser:
    """
    Decode an access token and build the caller from its claims.

    Raises:
        HTTPException 401: invalid, expired, wrong type or missing claims
    """
    payload = decode_token(token)
    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims.")

    return CurrentUser(
        id=str(user_id),
        email=payload.get("email", ""),
        role=payload.get("role", ""),
        name=payload.get("name"),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> CurrentUser:
    """
    Require an authenticated caller.

    Usage:
        @router.get("/children")
        async def children(user: CurrentUser = Depends(get_current_user)):
            ...

    Raises:
        HTTPException 401: If the token is missing, invalid, or expired
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("AUTHENTICATION_REQUIRED", "Authentication is required.")

    user = _validate_jwt_token(credentials.credentials)
    logger.debug(f"Authenticated user: {user.id} ({user.role})")
    return user


__all__ = ["CurrentUser", "get_current_user", "security"]
