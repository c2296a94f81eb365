"""
Authentication dependencies for FastAPI.

Routes declaring the "auth" middleware get ``get_current_user`` as a router
level dependency; endpoints decorated with ``@public`` are let through.
"""
import logging
from typing import Callable, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gallery_api.dependencies.database import get_database
from gallery_api.schemas.user import UserResponse
from gallery_api.services.database import Database
from gallery_api.structures import is_public
from gallery_api.utils.security import decode_access_token

logger = logging.getLogger("gallery_api.auth")

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Database = Depends(get_database),
) -> Optional[UserResponse]:
    """
    Dependency to get the current authenticated user.

    Args:
        request: Incoming request, used to detect public endpoints
        credentials: Bearer token from request header
        db: Data access layer

    Returns:
        Current user, or None on public endpoints

    Raises:
        HTTPException: If token is missing, invalid, or user not found
    """
    if is_public(request.scope.get("endpoint")):
        return None

    if not credentials or not credentials.credentials:
        logger.warning("Auth failed", extra={"event": "auth", "reason": "no_token"})
        raise _unauthorized("No authorization header provided")

    token_payload = decode_access_token(credentials.credentials)

    if token_payload is None:
        logger.warning("Auth failed", extra={"event": "auth", "reason": "invalid_or_expired_token"})
        raise _unauthorized("Invalid authorization.")

    user = await db.get_user_by_id(token_payload.sub)

    if user is None:
        logger.warning("Auth failed", extra={"event": "auth", "reason": "user_not_found", "user_id": token_payload.sub})
        raise _unauthorized("Invalid authorization.")

    request.state.user = user
    return user


async def require_user(
    current_user: Optional[UserResponse] = Depends(get_current_user),
) -> UserResponse:
    """Current user for handlers that always need one."""
    if current_user is None:
        raise _unauthorized("No authorization header provided")
    return current_user


async def require_admin(
    current_user: UserResponse = Depends(require_user),
) -> UserResponse:
    """
    Dependency restricting an endpoint to administrators.

    Raises:
        HTTPException: 403 when the user is not an admin
    """
    if current_user.role != "admin":
        logger.warning("Admin required", extra={"event": "auth", "reason": "forbidden", "user_id": current_user.id})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to perform this action.",
        )
    return current_user


# Named middlewares usable in Route(middlewares=[...])
MIDDLEWARES: Dict[str, Callable] = {
    "auth": get_current_user,
}
