"""
FastAPI dependencies for authentication.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.auth import Principal, verify_identity_token
from app.features.permissions.models import UserRole


security = HTTPBearer()


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Principal:
    """
    Get the current Principal from the bearer token.

    This dependency:
    1. Verifies the identity token
    2. Loads the user from the local database
    3. Rebuilds the role set from the active assignments that count in the
       home organization (global or scoped to it)

    Usage:
        @router.get("/me")
        async def get_me(principal: Principal = Depends(get_current_principal)):
            return principal
    """
    token = verify_identity_token(credentials.credentials)

    result = await db.execute(select(User).where(User.id == token.sub))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    result = await db.execute(
        select(UserRole).where(
            UserRole.user_id == user.id,
            UserRole.is_active == True,  # noqa: E712
            or_(UserRole.organization_id.is_(None), UserRole.organization_id == user.organization_id),
        )
    )
    roles = {user_role.role.name for user_role in result.scalars().all()}

    return Principal(
        subject_id=user.id,
        organization_id=user.organization_id,
        email=user.email,
        roles=roles,
    )


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
