# app/core/auth.py
import uuid
from typing import Any, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session, select

from app.core.config import get_settings
from app.database import get_session
from app.models.user import MANAGEMENT_ROLES, User, UserRole

settings = get_settings()

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header does not raise here,
#   so require_auth can answer with a consistent 401.
bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (HS256 using SUPABASE_JWT_SECRET)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Args:
        token: raw JWT from the Authorization header.

    Returns:
        Decoded JWT claims.

    Raises:
        HTTPException(401): if token is invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def user_from_token(token: str, session: Session) -> User:
    """
    Resolve a staff profile from a raw Supabase JWT.

    Staff are provisioned by an admin, so an unknown `sub` is refused
    instead of auto-creating a profile.

    Raises:
        HTTPException(401): malformed token or missing claims.
        HTTPException(403): no profile, or the profile is deactivated.
    """
    payload = decode_access_token(token)
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing sub",
        )

    # Supabase provides sub as a string; enforce UUID
    try:
        sub_uuid = uuid.UUID(sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid sub in token",
        )

    user = session.exec(select(User).where(User.id == sub_uuid)).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No staff profile for this account",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the current user from a Supabase JWT, or None without one.
    """
    if credentials is None:
        return None
    return user_from_token(credentials.credentials, session)


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce authentication.

    Raises:
        HTTPException(401): if user is None.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


def require_roles(*roles: UserRole) -> Callable[..., User]:
    """
    Build a dependency that only lets the given roles through.

    Usage:
        @router.post("", dependencies=[Depends(require_roles(UserRole.SELLER))])
    """
    allowed = {r.value for r in roles}

    def dependency(user: User = Depends(require_auth)) -> User:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Your role cannot perform this action",
            )
        return user

    return dependency


require_admin = require_roles(UserRole.ADMIN)
require_management = require_roles(*MANAGEMENT_ROLES)
require_order_creator = require_roles(UserRole.SELLER, UserRole.ADMIN)
require_delivery = require_roles(UserRole.DELIVERY)
