"""
Security Module

JWT validation for platform-admin routes (python-jose).

Tokens are issued by the authentication service, not here. This module
only verifies signature and expiry and reads the claims the tenancy
layer cares about.
"""
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from hrms.config import get_settings

settings = get_settings()


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a JWT token.

    Returns the payload if valid, None if invalid/expired.
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
        return payload
    except JWTError:
        # Token invalid, expired, or tampered with
        return None


def is_platform_admin(token_payload: Dict[str, Any]) -> bool:
    """Platform admins carry the configured role and no tenant binding."""
    return token_payload.get("role") == settings.PLATFORM_ADMIN_ROLE


def token_tenant(token_payload: Dict[str, Any]) -> Optional[str]:
    """Tenant id or code carried by a tenant user's token, if any."""
    return token_payload.get("tenant_id") or token_payload.get("tenant")
