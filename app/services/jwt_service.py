"""
JWT token service for authentication.

Tokens are issued elsewhere; this service verifies them and can mint
tokens with the same claims for tooling and tests.
"""
from datetime import timedelta
from jose import JWTError, jwt
from app.config import settings
from app.models.base import utcnow


class JWTService:
    """Service for creating and verifying JWT tokens."""

    def create_token(self, user_id: str, client_code: str, role: str, email: str) -> str:
        """
        Create a JWT token with user context.

        Args:
            user_id: User's unique ID
            client_code: Tenant client code
            role: User role (admin or user)
            email: User's email

        Returns:
            Encoded JWT token string
        """
        expires = utcnow() + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)

        payload = {
            "sub": user_id,
            "client_code": client_code,
            "role": role,
            "email": email,
            "exp": expires
        }

        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    def verify_token(self, token: str) -> dict | None:
        """
        Verify and decode a JWT token.

        Returns:
            Decoded payload dict or None if invalid or expired
        """
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM]
            )
        except JWTError:
            return None
