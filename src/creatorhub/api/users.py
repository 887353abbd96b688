"""User directory routes (admin only).

Admins add client accounts and look up who they can message, notify or
book appointments with.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import Field
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.auth.password import hash_password
from creatorhub.db.engine import get_db
from creatorhub.db.models import User
from creatorhub.schemas.user import RegisterRequest, UserRead

router = APIRouter(prefix="/users")


class UserCreate(RegisterRequest):
    role: str = Field("client", pattern=r"^(client|admin)$")


@router.get("", response_model=list[UserRead])
async def list_users(
    role: Optional[str] = Query(None, description="Filter by role"),
    db: AsyncSession = Depends(get_db),
):
    q = select(User).order_by(User.id)
    if role:
        q = q.where(User.role == role)
    result = await db.execute(q)
    return result.scalars().all()


@router.post("", response_model=UserRead, status_code=201)
async def create_user(body: UserCreate, db: AsyncSession = Depends(get_db)):
    """Create an account on someone's behalf, with any role."""
    q = select(User).where(or_(User.email == body.email, User.username == body.username))
    if (await db.execute(q)).scalars().first():
        raise HTTPException(status_code=409, detail="Username or email already registered")

    user = User(
        username=body.username,
        email=body.email,
        full_name=body.full_name,
        phone=body.phone,
        role=body.role,
        password_hash=hash_password(body.password),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@router.get("/{user_id}", response_model=UserRead)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
