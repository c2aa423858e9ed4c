"""
Authentication dependencies for the management API.

The organisation comes from the token, never from the request body, so
every endpoint query is scoped to the caller's tenant.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, ValidationError

from hookrelay.services.jwt_service import JWTService


security = HTTPBearer()


class TokenPayload(BaseModel):
    """JWT token payload model."""
    sub: str
    org_id: str
    role: str = "member"
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """
    Dependency that requires a valid JWT bearer token.

    Usage:
        @router.get("/")
        async def list_things(user: TokenPayload = Depends(get_current_user)):
            ...
    """
    payload = JWTService().verify_token(credentials.credentials)
    if payload is None:
        raise _unauthorized()

    try:
        return TokenPayload(**payload)
    except ValidationError:
        raise _unauthorized()


def require_admin(current_user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
    """Dependency that requires the admin role; 403 for members."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return current_user
