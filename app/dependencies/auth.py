"""
Authentication dependencies for FastAPI.

The tenant of a request is the client_code claim of its token; it is
never taken from the request body or a default.
"""
import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from app.services.jwt_service import JWTService


# Security scheme
security = HTTPBearer()


class TokenPayload(BaseModel):
    """JWT token payload model."""
    sub: str      # user_id
    client_code: str | None = None
    role: str = "user"
    email: str | None = None


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """
    Dependency that requires a valid JWT token carrying a client code.

    Raises 401 for an invalid token and 400 when the client code claim
    is missing.

    Usage:
        @router.get("/protected")
        async def protected_route(user: TokenPayload = Depends(get_current_user)):
            ...
    """
    jwt_service = JWTService()

    payload = jwt_service.verify_token(credentials.credentials)

    if payload is None or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = TokenPayload(**payload)
    if not user.client_code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Client code not found in token"
        )

    # Picked up by the logging middleware and Sentry tagging
    request.state.client_code = user.client_code
    request.state.user_id = user.sub
    structlog.contextvars.bind_contextvars(client_code=user.client_code, user_id=user.sub)
    return user


def require_admin(current_user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
    """
    Dependency that requires admin role.

    Returns user if admin, raises 403 otherwise.
    """
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return current_user
