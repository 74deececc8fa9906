"""Bearer token authentication."""

from feedback_analytics.auth.dependencies import get_current_organization_id, get_current_user_id
from feedback_analytics.auth.jwt import TokenIdentity, decode_access_token, resolve_identity

__all__ = [
    "TokenIdentity",
    "decode_access_token",
    "get_current_organization_id",
    "get_current_user_id",
    "resolve_identity",
]
