"""
JWT token service for authentication.

Tokens carry the user id in "sub"; every project, credit and generation
lookup is scoped by it.
"""
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from adstudio.config import settings


class JWTService:
    """Service for creating and verifying JWT tokens."""

    def create_token(self, user_id: str, email: str, expires_minutes: int | None = None) -> str:
        """
        Create a JWT token for a studio user.

        Args:
            user_id: User's unique ID
            email: User's email
            expires_minutes: Override for JWT_EXPIRATION_MINUTES

        Returns:
            Encoded JWT token string
        """
        minutes = expires_minutes if expires_minutes is not None else settings.JWT_EXPIRATION_MINUTES
        expires = datetime.now(timezone.utc) + timedelta(minutes=minutes)

        payload = {
            "sub": user_id,
            "email": email,
            "exp": expires
        }

        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    def verify_token(self, token: str) -> dict | None:
        """
        Verify and decode a JWT token.

        Args:
            token: JWT token string

        Returns:
            Decoded payload dict or None if invalid
        """
        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM]
            )
            return payload
        except JWTError:
            return None
