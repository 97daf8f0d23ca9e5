"""Mock auth verifier for local development and tests."""

from app.adapters.auth.base import AuthVerificationError, TokenVerifier, normalize_role
from app.schemas.auth import AuthPrincipal


class MockTokenVerifier(TokenVerifier):
    """Accepts deterministic test tokens only.

    Expected token format:
    - ``test:<user_id>``
    - ``test:<user_id>:<role>``
    - ``test:<user_id>:<role>:<display name>``
    """

    def verify_token(self, token: str) -> AuthPrincipal:
        parts = token.split(":", 3)
        if len(parts) < 2 or parts[0] != "test":
            raise AuthVerificationError("Invalid bearer token")

        user_id = parts[1].strip()
        if not user_id:
            raise AuthVerificationError("Bearer token missing user identity")

        role = normalize_role(parts[2] if len(parts) >= 3 else None)
        display_name = parts[3].strip() if len(parts) == 4 else None
        return AuthPrincipal(user_id=user_id, role=role, display_name=display_name or None)


__all__ = ["MockTokenVerifier"]
