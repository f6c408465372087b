"""
Authentication dependencies for FastAPI.

SECURITY: All queries MUST include the user_id taken from the token.
Failure to do so will leak projects and credits between users.
"""
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from adstudio.errors import AuthError
from adstudio.sentry_config import set_user
from adstudio.services.jwt_service import JWTService


# Security scheme (missing credentials are reported as 401 below)
security = HTTPBearer(auto_error=False)


class TokenPayload(BaseModel):
    """JWT token payload model."""
    sub: str      # user_id
    email: str


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> TokenPayload:
    """
    Dependency that requires valid JWT token.

    Returns token payload if valid, raises AuthError (401) if not.

    Usage:
        @router.get("/protected")
        async def protected_route(user: TokenPayload = Depends(get_current_user)):
            ...
    """
    if credentials is None:
        raise AuthError("Login required.")

    payload = JWTService().verify_token(credentials.credentials)

    if payload is None or not payload.get("sub"):
        raise AuthError("Invalid or expired token.")

    user = TokenPayload(sub=payload["sub"], email=payload.get("email", ""))
    # Picked up by the logging middleware
    request.state.user_id = user.sub
    set_user(user.sub, user.email)
    return user
