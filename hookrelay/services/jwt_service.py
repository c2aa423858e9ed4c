"""
JWT token service.

Tokens are issued by the identity provider in front of HookRelay; this
service verifies them and mints tokens for local tooling and tests.
"""
from datetime import timedelta
from jose import JWTError, jwt

from hookrelay.config import settings
from hookrelay.models.base import utcnow


class JWTService:
    """Create and verify the bearer tokens used by the management API."""

    def create_token(
        self,
        subject: str,
        org_id: str,
        role: str = "member",
        email: str | None = None
    ) -> str:
        """
        Create a JWT carrying the caller's organisation and role.

        Args:
            subject: Caller ID
            org_id: Organisation the caller acts for
            role: admin or member
            email: Optional caller email

        Returns:
            Encoded JWT token string
        """
        payload = {
            "sub": subject,
            "org_id": org_id,
            "role": role,
            "exp": utcnow() + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
        }
        if email:
            payload["email"] = email

        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    def verify_token(self, token: str) -> dict | None:
        """
        Verify and decode a JWT token.

        Returns:
            Decoded claims, or None if the token is invalid or expired
        """
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM]
            )
        except JWTError:
            return None
