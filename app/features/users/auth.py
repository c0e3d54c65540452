"""
Identity token verification.

Tokens are HS256 JWTs produced by the authentication collaborator after it
has verified the user's credentials. The claims are trusted for the lifetime
of one request only; roles are always re-read from storage when the
Principal is built.
"""
import jwt
from datetime import datetime, timedelta, timezone
from typing import Iterable
from fastapi import HTTPException, status
from pydantic import BaseModel, Field, ValidationError

from app.core import config
from app.features.permissions.models import RoleName


class IdentityToken(BaseModel):
    """Claim set carried by the bearer token."""
    sub: str
    organization_id: str
    roles: list[RoleName] = Field(default_factory=list)
    iat: int | None = None
    exp: int | None = None


class Principal(BaseModel):
    """The authenticated actor of one request, rebuilt from storage."""
    subject_id: str
    organization_id: str
    email: str
    roles: set[RoleName] = Field(default_factory=set)

    def has_any_role(self, roles: Iterable[RoleName]) -> bool:
        return bool(self.roles.intersection(roles))


def verify_identity_token(token: str) -> IdentityToken:
    """
    Verify the token signature and expiry and return its claims.

    Raises:
        HTTPException: 401 if the token is invalid, expired or malformed
    """
    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
        return IdentityToken.model_validate(payload)

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )


def issue_identity_token(
    subject_id: str,
    organization_id: str,
    roles: Iterable[RoleName] = (),
    expires_in: timedelta | None = None,
) -> str:
    """Sign a token the way the authentication collaborator does. Used by tooling and tests."""
    now = datetime.now(timezone.utc)
    expires_at = now + (expires_in or timedelta(minutes=config.JWT_EXPIRES_MINUTES))
    payload = {
        "sub": subject_id,
        "organization_id": organization_id,
        "roles": [role.value for role in roles],
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
