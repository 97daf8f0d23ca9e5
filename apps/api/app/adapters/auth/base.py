"""Authentication provider interfaces.

Identity is issued upstream; the service only turns a bearer token into an
``AuthPrincipal`` (user id, role, display name shown on review locks).
"""

from abc import ABC, abstractmethod

from app.schemas.auth import AuthPrincipal

KNOWN_ROLES = frozenset({"client", "editor", "admin"})


class AuthVerificationError(Exception):
    """Raised when a token cannot be verified or normalized."""


def normalize_role(raw: object, *, default: str = "client") -> str:
    """Map a provider role claim onto the service roles; unknown roles are rejected."""
    role = str(raw or "").strip().lower() or default
    if role not in KNOWN_ROLES:
        raise AuthVerificationError("Bearer token has an unknown role")
    return role


class TokenVerifier(ABC):
    @abstractmethod
    def verify_token(self, token: str) -> AuthPrincipal:
        """Verify token and return normalized principal."""


__all__ = ["AuthVerificationError", "KNOWN_ROLES", "TokenVerifier", "normalize_role"]
