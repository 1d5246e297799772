"""
Pilsa Backend — Request Dependencies
=====================================

What:  FastAPI dependencies shared by the authenticated routers.
How:   `get_current_user` reads the bearer token and asks the auth provider
       who it belongs to. Tests replace `get_auth_provider` (or
       `get_current_user` itself) through `app.dependency_overrides`.
"""

import logging
from typing import Optional

from fastapi import Depends, Header

from pilsa.exceptions import AuthenticationError
from pilsa.services.auth_base import AuthProvider, AuthUser
from pilsa.services.supabase_auth import auth_service

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """'Bearer <token>' → '<token>'; None when the header is absent or not a bearer value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def get_auth_provider() -> AuthProvider:
    return auth_service


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    provider: AuthProvider = Depends(get_auth_provider),
) -> AuthUser:
    """
    Resolves the request's bearer token to an AuthUser.

    Raises:
        AuthenticationError: header missing/malformed, or token rejected (401)
        AuthServiceError / CircuitBreakerOpenError: auth server down (503)
    """
    token = extract_bearer_token(authorization)
    if token is None:
        raise AuthenticationError("Unauthorized: No token provided")
    return await provider.verify_token(token)
