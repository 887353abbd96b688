"""Pydantic schemas for appointments."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from creatorhub.schemas.notification import ChannelResultRead
from creatorhub.schemas.user import UserBrief

NotificationMethod = Literal["email", "sms", "in-app", "all"]


class AppointmentCreate(BaseModel):
    client_id: int
    appointment_date: datetime
    duration: int = Field(..., gt=0, le=24 * 60)
    location: str = Field(..., min_length=1)
    details: Optional[str] = None
    amount: Optional[str] = Field(None, max_length=50)
    photo_url: Optional[str] = None
    notification_method: NotificationMethod = "in-app"


class AppointmentRespond(BaseModel):
    # Validated by the service so that bad values are a 400, not a 422
    status: str


class AppointmentReminder(BaseModel):
    method: NotificationMethod = "in-app"
    message: Optional[str] = None


class AppointmentRead(BaseModel):
    id: int
    admin_id: int
    client_id: int
    appointment_date: datetime
    duration: int
    location: str
    details: Optional[str] = None
    amount: Optional[str] = None
    photo_url: Optional[str] = None
    status: str
    notification_sent: bool
    notification_method: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentDetail(AppointmentRead):
    """Appointment with both parties."""
    client: UserBrief
    admin: UserBrief


class AppointmentProposed(BaseModel):
    appointment: AppointmentRead
    delivery: list[ChannelResultRead]
