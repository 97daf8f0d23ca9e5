"""Bearer token verifiers: mock tokens for local runs and tests, Firebase ID tokens in production."""

from .base import AuthVerificationError, TokenVerifier, normalize_role
from .firebase_auth import FirebaseTokenVerifier
from .mock_auth import MockTokenVerifier

__all__ = [
    "AuthVerificationError",
    "FirebaseTokenVerifier",
    "MockTokenVerifier",
    "TokenVerifier",
    "normalize_role",
]
