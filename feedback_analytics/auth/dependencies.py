"""
FastAPI dependencies resolving the calling organization and user.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from feedback_analytics.auth.jwt import TokenIdentity, resolve_identity
from feedback_analytics.utils.logging import get_logger

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenIdentity:
    """
    Resolve the caller from the request's bearer token.

    Raises:
        HTTPException: If token is missing or invalid
    """
    if not credentials:
        logger.warning("auth_failed", reason="missing_token")
        raise _unauthorized("Missing authentication token")

    try:
        return resolve_identity(credentials.credentials)
    except JWTError as e:
        logger.warning("auth_failed", reason="invalid_token", error=str(e))
        raise _unauthorized("Invalid or expired token")


async def get_current_organization_id(
    identity: TokenIdentity = Depends(get_identity),
) -> str:
    """Organization id (token subject) of the caller."""
    return identity.organization_id


async def get_current_user_id(
    identity: TokenIdentity = Depends(get_identity),
) -> str:
    """Acting user id of the caller; falls back to the organization id."""
    return identity.user_id
