"""Appointment service — admin proposals, client responses, reminders.

Lifecycle: pending → approved / declined (by the client), or canceled
(by the proposing admin). Every transition is audited, notifies the other
party in-app and pushes an "appointment" event to whoever is connected.
"""

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from creatorhub.channels import Channels
from creatorhub.db.models import Appointment, User
from creatorhub.events.store import EventStore
from creatorhub.events.types import (
    APPOINTMENT_CANCELED,
    APPOINTMENT_PROPOSED,
    APPOINTMENT_REMINDER_SENT,
    APPOINTMENT_RESPONDED,
)
from creatorhub.realtime.pubsub import publish_event
from creatorhub.schemas.appointment import AppointmentRead
from creatorhub.services.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from creatorhub.services.notification_service import ChannelResult, NotificationService

logger = structlog.get_logger()

RESPONSE_STATUSES = ("approved", "declined")

# Delivery channels per notification method; in-app is always included
METHOD_CHANNELS = {
    "in-app": ["in-app"],
    "email": ["email", "in-app"],
    "sms": ["sms", "in-app"],
    "all": ["email", "sms", "in-app"],
}


class AppointmentNotFoundError(NotFoundError):
    pass


class ClientNotFoundError(NotFoundError):
    pass


class AlreadyRespondedError(InvalidStateError):
    pass


class MissingContactError(ValueError):
    """The client lacks the email/phone a delivery method needs."""


def format_when(when: datetime) -> str:
    return f"{when:%A, %B %d, %Y at %I:%M %p}"


def appointment_summary(appointment: Appointment) -> str:
    summary = (
        f"New appointment proposal for {format_when(appointment.appointment_date)} "
        f"at {appointment.location}. Duration: {appointment.duration} minutes."
    )
    if appointment.amount:
        summary += f" Amount: ${appointment.amount}."
    return summary


def channels_for(method: str) -> list[str]:
    try:
        return METHOD_CHANNELS[method]
    except KeyError:
        raise ValueError(f"Unknown notification method: {method}")


class AppointmentService:
    """Appointment proposals and their delivery to clients."""

    def __init__(self, db: AsyncSession, channels: Optional[Channels] = None):
        self.db = db
        self.events = EventStore(db)
        self.notifications = NotificationService(db, channels)

    async def propose(
        self,
        admin: User,
        client_id: int,
        appointment_date: datetime,
        duration: int,
        location: str,
        details: Optional[str] = None,
        amount: Optional[str] = None,
        photo_url: Optional[str] = None,
        notification_method: str = "in-app",
    ) -> tuple[Appointment, list[ChannelResult]]:
        """Create a pending appointment and notify the client."""
        channels = channels_for(notification_method)
        client = await self.db.get(User, client_id)
        if not client:
            raise ClientNotFoundError(f"Client {client_id} not found")

        appointment = Appointment(
            admin_id=admin.id,
            client_id=client_id,
            appointment_date=appointment_date,
            duration=duration,
            location=location,
            details=details,
            amount=amount,
            photo_url=photo_url,
            status="pending",
            notification_method=notification_method,
        )
        self.db.add(appointment)
        await self.db.flush()

        await self.events.append(
            stream_id=f"appointment:{appointment.id}",
            event_type=APPOINTMENT_PROPOSED,
            data={"client_id": client_id, "method": notification_method},
            metadata={"actor_id": admin.id},
        )

        summary = appointment_summary(appointment)
        results = await self.notifications.notify(
            client,
            "appointment",
            summary,
            channels,
            subject="New Appointment Proposal",
            link="/appointments",
            email_body=(
                f"{summary}\n\n"
                "Please log in to your account to approve or decline this appointment."
            ),
            sms_body=f"CreatorHub: {summary} Log in to your account to respond.",
            sender_id=admin.id,
        )

        appointment.notification_sent = True
        await self.db.commit()
        await self._push(appointment, [client_id], "proposed")

        logger.info(
            "appointment.proposed",
            appointment_id=appointment.id,
            client_id=client_id,
            method=notification_method,
        )
        return appointment, results

    async def respond(self, appointment_id: int, user: User, status: str) -> Appointment:
        """Client approves or declines a pending proposal."""
        if status not in RESPONSE_STATUSES:
            raise ValueError("Status must be 'approved' or 'declined'")

        appointment = await self._load(appointment_id)
        if appointment.client_id != user.id:
            raise PermissionDeniedError("Only the client can respond to this appointment")
        if appointment.status != "pending":
            raise AlreadyRespondedError(f"Appointment is already {appointment.status}")

        appointment.status = status
        await self.events.append(
            stream_id=f"appointment:{appointment.id}",
            event_type=APPOINTMENT_RESPONDED,
            data={"status": status},
            metadata={"actor_id": user.id},
        )
        notification = await self.notifications.stage_notification(
            appointment.admin_id,
            "appointment",
            f"Client {user.full_name} has {status} your appointment proposal.",
            link="/admin/appointments",
        )
        await self.db.commit()

        await self._push(appointment, [appointment.admin_id, appointment.client_id], status)
        await self.notifications.push(notification)
        return appointment

    async def cancel(self, appointment_id: int, admin: User) -> Appointment:
        """The proposing admin cancels an appointment."""
        appointment = await self._load(appointment_id)
        if appointment.admin_id != admin.id:
            raise PermissionDeniedError("Only the proposing admin can cancel")
        if appointment.status == "canceled":
            raise InvalidStateError("Appointment is already canceled")

        appointment.status = "canceled"
        await self.events.append(
            stream_id=f"appointment:{appointment.id}",
            event_type=APPOINTMENT_CANCELED,
            data={},
            metadata={"actor_id": admin.id},
        )
        notification = await self.notifications.stage_notification(
            appointment.client_id,
            "appointment",
            f"Your appointment on {format_when(appointment.appointment_date)} "
            "has been canceled.",
            link="/appointments",
        )
        await self.db.commit()

        await self._push(appointment, [appointment.client_id, appointment.admin_id], "canceled")
        await self.notifications.push(notification)
        return appointment

    async def send_reminder(
        self,
        appointment_id: int,
        admin: User,
        method: str = "in-app",
        message: Optional[str] = None,
    ) -> list[ChannelResult]:
        """Remind the client of an appointment over one or more channels."""
        channels = channels_for(method)
        appointment = await self._load(appointment_id)
        client = appointment.client

        if "sms" in channels and not client.phone:
            raise MissingContactError("Client has no phone number for SMS")
        if "email" in channels and not client.email:
            raise MissingContactError("Client has no email address")

        text = message or (
            f"Reminder: You have an appointment on "
            f"{appointment.appointment_date:%B %d, %Y at %I:%M %p} "
            f"at {appointment.location}. Duration: {appointment.duration} minutes."
        )
        results = await self.notifications.notify(
            client,
            "appointment",
            text,
            channels,
            title="Appointment Reminder",
            subject="Appointment Reminder",
            link="/appointments",
            sms_body=f"CreatorHub: {text}",
            sender_id=admin.id,
        )

        if any(r.success for r in results):
            appointment.notification_sent = True
            appointment.notification_method = method
        await self.events.append(
            stream_id=f"appointment:{appointment.id}",
            event_type=APPOINTMENT_REMINDER_SENT,
            data={"method": method, "results": {r.channel: r.success for r in results}},
            metadata={"actor_id": admin.id},
        )
        await self.db.commit()
        return results

    # ─── Queries ──────────────────────────────────────────

    async def get(self, appointment_id: int, user: User) -> Appointment:
        """One appointment, visible only to its client and admin."""
        appointment = await self._load(appointment_id)
        if user.id not in (appointment.client_id, appointment.admin_id):
            raise PermissionDeniedError("Not a party to this appointment")
        return appointment

    async def list_for_client(self, client_id: int) -> list[Appointment]:
        return await self._list(Appointment.client_id == client_id)

    async def list_for_admin(self, admin_id: int) -> list[Appointment]:
        return await self._list(Appointment.admin_id == admin_id)

    async def _list(self, condition) -> list[Appointment]:
        result = await self.db.execute(
            select(Appointment)
            .where(condition)
            .options(selectinload(Appointment.client), selectinload(Appointment.admin))
            .order_by(Appointment.appointment_date, Appointment.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _load(self, appointment_id: int) -> Appointment:
        result = await self.db.execute(
            select(Appointment)
            .where(Appointment.id == appointment_id)
            .options(selectinload(Appointment.client), selectinload(Appointment.admin))
            .execution_options(populate_existing=True)
        )
        appointment = result.scalars().first()
        if not appointment:
            raise AppointmentNotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    async def _push(self, appointment: Appointment, recipient_ids: list[int], action: str) -> None:
        data = AppointmentRead.model_validate(appointment).model_dump(mode="json")
        data["action"] = action
        await publish_event(recipient_ids, "appointment", data)
