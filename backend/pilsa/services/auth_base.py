"""
Pilsa Backend — Abstract Auth Provider Interface
=================================================

What:  Contract for turning a bearer access token into an authenticated user.
How:   Concrete providers implement verify_token() and health_check().
Who:   The `get_current_user` dependency; the health route.

Implementations:
    - SupabaseAuthService: asks the Supabase Auth (GoTrue) server
    - Tests substitute a stub by overriding the FastAPI dependency
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AuthUser:
    """
    Identity returned by the auth server for a valid token.

    id is the auth user id (`users.auth_user_id`), not the application user id.
    """

    id: str
    email: Optional[str] = None
    provider: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> Optional[str]:
        """Name from social login metadata (Google: full_name, Kakao: name/nickname)."""
        for key in ("full_name", "name", "nickname", "user_name"):
            value = self.user_metadata.get(key)
            if value:
                return str(value)
        return None

    @property
    def avatar_url(self) -> Optional[str]:
        return self.user_metadata.get("avatar_url") or self.user_metadata.get("picture")


class AuthProvider(ABC):
    """
    Abstract interface for access-token verification.

    Contract:
        - verify_token() returns an AuthUser or raises AuthenticationError
          for tokens the provider rejects
        - provider outages surface as AuthServiceError or
          CircuitBreakerOpenError, never as AuthenticationError, so clients
          don't sign users out during an outage
    """

    @abstractmethod
    async def verify_token(self, token: str) -> AuthUser:
        """
        Resolve an access token to the user it was issued for.

        Raises:
            AuthenticationError: token is expired, malformed or revoked
            AuthServiceError: provider unreachable after retries
            CircuitBreakerOpenError: too many recent provider failures
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability probe; returns False instead of raising."""
        ...
