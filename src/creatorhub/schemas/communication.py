"""Pydantic schemas for communication templates and history."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

CommunicationType = Literal["email", "sms", "notification"]


# ─── Templates ──────────────────────────────────────────

class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: CommunicationType
    category: str = Field(..., min_length=1, max_length=50)
    subject: Optional[str] = None
    content: str = Field(..., min_length=1)
    is_default: bool = False


class TemplateUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[CommunicationType] = None
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    subject: Optional[str] = None
    content: Optional[str] = Field(None, min_length=1)
    is_default: Optional[bool] = None


class TemplateRead(BaseModel):
    id: int
    name: str
    type: str
    category: str
    subject: Optional[str] = None
    content: str
    is_default: bool
    created_by: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ─── History ────────────────────────────────────────────

class HistoryCreate(BaseModel):
    template_id: Optional[int] = None
    recipient_id: int
    type: CommunicationType
    subject: Optional[str] = None
    content: str = Field(..., min_length=1)
    status: Literal["sent", "failed"] = "sent"
    status_message: Optional[str] = None


class HistoryRead(BaseModel):
    id: int
    template_id: Optional[int] = None
    recipient_id: int
    sender_id: Optional[int] = None
    type: str
    subject: Optional[str] = None
    content: str
    status: str
    status_message: Optional[str] = None
    sent_at: datetime

    model_config = {"from_attributes": True}


# ─── Send ───────────────────────────────────────────────

class SendCommunication(BaseModel):
    template_id: int
    recipient_id: int
    params: dict[str, str] = Field(default_factory=dict)


class SendCommunicationResult(BaseModel):
    success: bool
    history: HistoryRead
    message: str
