"""
Bearer token verification.
Uses python-jose for JWT handling.

Tokens are issued by the platform's identity service; this service only
verifies them. The organization id travels as ``sub`` and the acting user
as ``uid``.
"""

from typing import Any, Dict, NamedTuple

from jose import JWTError, jwt

from feedback_analytics.config import get_settings


class TokenIdentity(NamedTuple):
    """Caller resolved from a verified access token."""

    organization_id: str
    user_id: str


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify an access token.

    Raises:
        JWTError: If the signature, expiry or token type is invalid
    """
    settings = get_settings()

    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise JWTError(f"Token validation failed: {e}") from e

    if payload.get("type") != "access":
        raise JWTError("Token validation failed: not an access token")
    return payload


def resolve_identity(token: str) -> TokenIdentity:
    """
    Organization and user of a verified access token.

    A token without ``uid`` acts as its organization.

    Raises:
        JWTError: If the token is invalid or carries no organization
    """
    payload = decode_access_token(token)
    organization_id = payload.get("sub")
    if not organization_id:
        raise JWTError("Token validation failed: missing organization subject")
    return TokenIdentity(organization_id=organization_id, user_id=payload.get("uid") or organization_id)
