"""Pydantic schemas for conversations and messages."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from creatorhub.schemas.user import UserBrief


# ─── Conversations ──────────────────────────────────────

class ConversationCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    participant_ids: list[int] = Field(default_factory=list)


class ParticipantRead(BaseModel):
    user_id: int
    joined_at: datetime
    user: UserBrief

    model_config = {"from_attributes": True}


class ConversationRead(BaseModel):
    id: int
    title: str
    last_message_preview: str
    created_at: datetime
    updated_at: datetime
    participants: list[ParticipantRead] = []
    unread_count: int = 0

    model_config = {"from_attributes": True}


# ─── Messages ───────────────────────────────────────────

class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10_000)
    attachments: list[dict] = Field(default_factory=list)


class MessageRead(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    attachments: list[dict] = []
    created_at: datetime
    read_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MarkReadResult(BaseModel):
    marked: int
