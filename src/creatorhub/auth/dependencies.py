"""FastAPI auth dependencies.

Used as Depends() in route handlers to resolve the bearer JWT to the
User making the request.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.auth.jwt import TokenError, user_id_from_token
from creatorhub.db.engine import get_db
from creatorhub.db.models import User


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Resolve the current user, or None when no bearer token is sent.

    A token that is present but invalid is still a 401.
    """
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return await authenticate_token(authorization[7:], db)


async def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    """Resolve the current user (required, 401 if no auth)."""
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Resolve the current user and require the admin role (403)."""
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def authenticate_token(token: str, db: AsyncSession) -> User:
    """Decode an access token and load its user (401 on any failure)."""
    try:
        user_id = user_id_from_token(token)
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User no longer exists")
    return user
