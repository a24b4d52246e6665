from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional

from campus_portal.core.config import settings
from campus_portal.core.database import get_db
from campus_portal.core.exceptions import AuthenticationError, AuthorizationError, InvalidTokenError
from campus_portal.core.logging_config import set_user_id
from campus_portal.core.permissions import Capability, has_capability
from campus_portal.core.security import decode_token
from campus_portal.core.types import is_valid_uuid
from campus_portal.models.user import User

security = HTTPBearer(auto_error=False)


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Bearer header first, then the auth cookie, then a ``token`` query parameter"""
    if credentials and credentials.credentials:
        return credentials.credentials
    cookie = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if cookie:
        return cookie
    return request.query_params.get("token") or None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user"""

    token = extract_token(request, credentials)
    if not token:
        raise AuthenticationError("Not authenticated")

    payload = decode_token(token)

    if payload.get("type") != "access":
        raise InvalidTokenError("Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise InvalidTokenError("Invalid token payload")

    if not is_valid_uuid(user_id):
        raise InvalidTokenError("Invalid user ID format")

    result = await db.execute(
        select(User).where(User.id == user_id)
    )
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthorizationError("User account is inactive")

    # Rate limiter keys and log lines pick the user up from here
    request.state.user_id = str(user.id)
    set_user_id(str(user.id))
    return user


def require_capability(capability: Capability):
    """
    Dependency factory that gates an endpoint on a capability.

    Usage:
        @router.post("/books")
        async def create_book(user: User = Depends(require_capability(Capability.MANAGE_CATALOGUE))):
            ...
    """
    async def capability_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if not has_capability(current_user.role, capability):
            raise AuthorizationError(f"Missing permission: {capability.value}")
        return current_user

    return capability_checker
