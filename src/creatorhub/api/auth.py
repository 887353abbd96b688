"""Auth API — registration, login, token refresh, current user.

- POST /auth/register → create a client account (the first account on a
  fresh install becomes the admin)
- POST /auth/login → email/password → JWT tokens
- POST /auth/refresh → refresh token → new token pair
- GET /auth/me → current user info
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.auth.dependencies import get_current_user
from creatorhub.auth.jwt import (
    TokenError,
    create_access_token,
    create_refresh_token,
    verify_token,
)
from creatorhub.auth.password import hash_password, needs_upgrade, verify_password
from creatorhub.db.engine import get_db
from creatorhub.db.models import User
from creatorhub.events.store import EventStore
from creatorhub.events.types import USER_REGISTERED
from creatorhub.schemas.user import (
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserRead,
)

router = APIRouter(prefix="/auth")


def _tokens(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(str(user.id), role=user.role),
        refresh_token=create_refresh_token(str(user.id)),
    )


@router.post("/register", response_model=UserRead, status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create a new user account."""
    q = select(User).where(or_(User.email == body.email, User.username == body.username))
    result = await db.execute(q)
    if result.scalars().first():
        raise HTTPException(status_code=409, detail="Username or email already registered")

    admins = await db.execute(
        select(func.count()).select_from(User).where(User.role == "admin")
    )
    user = User(
        username=body.username,
        email=body.email,
        full_name=body.full_name,
        phone=body.phone,
        role="client" if admins.scalar_one() else "admin",
        password_hash=hash_password(body.password),
    )
    db.add(user)
    await db.flush()
    await EventStore(db).append(
        stream_id=f"user:{user.id}",
        event_type=USER_REGISTERED,
        data={"username": user.username, "role": user.role},
    )
    await db.commit()
    await db.refresh(user)
    return user


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login with email and password → JWT tokens."""
    result = await db.execute(select(User).where(User.email == body.email))
    user = result.scalars().first()

    if not user or not user.password_hash:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    # Imported scrypt hashes are re-hashed with bcrypt on successful login
    if needs_upgrade(user.password_hash):
        user.password_hash = hash_password(body.password)
        await db.commit()

    return _tokens(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    """Exchange a refresh token for a new token pair."""
    try:
        payload = verify_token(body.refresh_token, expected_type="refresh")
        user_id = int(payload["sub"])
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token: bad subject")

    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User no longer exists")
    return _tokens(user)


@router.get("/me", response_model=UserRead)
async def get_me(user: User = Depends(get_current_user)):
    """Get the current authenticated user's info."""
    return user
