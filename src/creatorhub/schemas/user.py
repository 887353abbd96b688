"""Pydantic schemas for users and auth."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    full_name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=30)
    password: str = Field(min_length=8)


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class UserBrief(BaseModel):
    """The public face of a user, as embedded in other resources."""
    id: int
    username: str
    full_name: str

    model_config = {"from_attributes": True}


class UserRead(UserBrief):
    email: str
    phone: Optional[str] = None
    role: str
    created_at: datetime
