"""Pydantic schemas for notifications."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

DeliveryMethod = Literal["in-app", "email", "sms"]


class NotificationRead(BaseModel):
    id: int
    recipient_id: int
    type: str
    title: str
    content: str
    link: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    delivery_method: str
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationSend(BaseModel):
    """Admin request to notify one user."""
    user_id: int
    type: str = Field(..., min_length=1, max_length=30)
    content: str = Field(..., min_length=1)
    title: Optional[str] = Field(None, max_length=200)
    link: Optional[str] = None
    delivery_method: DeliveryMethod = "in-app"


class ChannelResultRead(BaseModel):
    channel: str
    success: bool
    error: Optional[str] = None
    notification_id: Optional[int] = None

    model_config = {"from_attributes": True}


class NotificationSent(BaseModel):
    notification: NotificationRead
    delivery: ChannelResultRead


class UnreadCount(BaseModel):
    count: int
