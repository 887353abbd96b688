"""Notification service — in-app notifications plus email/SMS side-channels.

Every notification is persisted before it is pushed, so a recipient who
is offline sees it on the next poll of GET /notifications.

notify() is the multi-channel entry point used by appointments and
communications: in-app rows go to the bell menu and are pushed over the
WebSocket; email and SMS go out through the side-channels, and each
external attempt leaves a notification row (with that delivery method)
and a communication-history row recording the outcome.
"""

import html
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.channels import Channels
from creatorhub.config import settings
from creatorhub.db.models import CommunicationHistory, Notification, User
from creatorhub.events.store import EventStore
from creatorhub.events.types import (
    NOTIFICATION_CREATED,
    NOTIFICATION_READ,
    NOTIFICATIONS_ALL_READ,
)
from creatorhub.realtime.pubsub import publish_event
from creatorhub.schemas.notification import NotificationRead
from creatorhub.services.errors import (
    NotFoundError,
    PermissionDeniedError,
    UserNotFoundError,
)

logger = structlog.get_logger()

CHANNELS = ("in-app", "email", "sms")

NOTIFICATION_TITLES = {
    "content": "Content Update",
    "appointment": "Appointment Update",
    "message": "New Message",
    "billing": "Billing Update",
}


def notification_title(notification_type: str) -> str:
    return NOTIFICATION_TITLES.get(notification_type, "New Notification")


def email_html(title: str, content: str, link: Optional[str] = None) -> str:
    """Minimal branded HTML body for notification emails."""
    button = ""
    if link:
        url = html.escape(f"{settings.app_url}{link}")
        button = (
            f'<a href="{url}" style="background-color: #0ea5e9; color: white; '
            'padding: 10px 15px; text-decoration: none; border-radius: 4px; '
            'display: inline-block; margin-top: 15px;">View in CreatorHub</a>'
        )
    return (
        '<div style="font-family: Arial, sans-serif; color: #333;">'
        f"<h2>{html.escape(title)}</h2>"
        f"<p>{html.escape(content)}</p>"
        "<p>Log in to your account to view more details.</p>"
        f"{button}</div>"
    )


@dataclass
class ChannelResult:
    """Outcome of one channel of a multi-channel notify()."""
    channel: str
    success: bool
    error: Optional[str] = None
    notification_id: Optional[int] = None


class NotificationNotFoundError(NotFoundError):
    pass


class NotificationService:
    """Creates, lists and marks notifications; fans out over channels."""

    def __init__(self, db: AsyncSession, channels: Optional[Channels] = None):
        self.db = db
        self.events = EventStore(db)
        self.channels = channels or Channels()

    # ─── Create ───────────────────────────────────────────

    async def stage_notification(
        self,
        recipient_id: int,
        type: str,
        content: str,
        *,
        title: Optional[str] = None,
        link: Optional[str] = None,
        delivery_method: str = "in-app",
    ) -> Notification:
        """Add a notification to the current transaction without committing.

        Callers that write other rows in the same transaction commit once
        and then push() the staged notifications.
        """
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title or notification_title(type),
            content=content,
            link=link,
            delivery_method=delivery_method,
            is_read=False,
        )
        self.db.add(notification)
        await self.db.flush()

        await self.events.append(
            stream_id=f"user:{recipient_id}",
            event_type=NOTIFICATION_CREATED,
            data={
                "notification_id": notification.id,
                "type": type,
                "delivery_method": delivery_method,
            },
        )
        return notification

    async def push(self, notification: Notification) -> None:
        """Push a committed in-app notification to its recipient's sockets."""
        if notification.delivery_method != "in-app":
            return
        await publish_event(
            [notification.recipient_id],
            "notification",
            NotificationRead.model_validate(notification).model_dump(mode="json"),
        )

    async def create_notification(
        self,
        recipient_id: int,
        type: str,
        content: str,
        *,
        title: Optional[str] = None,
        link: Optional[str] = None,
        delivery_method: str = "in-app",
    ) -> Notification:
        """Persist a notification and deliver it to the recipient if connected."""
        recipient = await self.db.get(User, recipient_id)
        if not recipient:
            raise UserNotFoundError(f"User {recipient_id} not found")

        notification = await self.stage_notification(
            recipient_id,
            type,
            content,
            title=title,
            link=link,
            delivery_method=delivery_method,
        )
        await self.db.commit()
        await self.push(notification)
        return notification

    # ─── Multi-channel ────────────────────────────────────

    async def notify(
        self,
        recipient: User,
        type: str,
        content: str,
        channels: Iterable[str],
        *,
        title: Optional[str] = None,
        subject: Optional[str] = None,
        link: Optional[str] = None,
        email_body: Optional[str] = None,
        sms_body: Optional[str] = None,
        sender_id: Optional[int] = None,
    ) -> list[ChannelResult]:
        """Deliver one notification over several channels.

        Channel failures are reported in the results, never raised.
        """
        title = title or notification_title(type)
        results: list[ChannelResult] = []
        staged: list[Notification] = []

        # dict.fromkeys keeps caller order while dropping duplicates
        requested = list(dict.fromkeys(channels))
        unknown = [c for c in requested if c not in CHANNELS]
        if unknown:
            raise ValueError(f"Unknown delivery channel: {', '.join(unknown)}")

        for channel in requested:
            if channel == "in-app":
                n = await self.stage_notification(
                    recipient.id, type, content, title=title, link=link
                )
                staged.append(n)
                results.append(ChannelResult("in-app", True, notification_id=n.id))
                continue

            if channel == "email":
                body = email_body or content
                ok, error = await self._send_email(
                    recipient, subject or title, body, email_html(title, body, link)
                )
                history_subject = subject or title
            else:
                body = sms_body or content
                ok, error = await self._send_sms(recipient, body)
                history_subject = None

            n = await self.stage_notification(
                recipient.id, type, body, title=title, link=link,
                delivery_method=channel,
            )
            self.db.add(CommunicationHistory(
                recipient_id=recipient.id,
                sender_id=sender_id,
                type=channel,
                subject=history_subject,
                content=body,
                status="sent" if ok else "failed",
                status_message=error,
            ))
            results.append(ChannelResult(channel, ok, error, notification_id=n.id))

        await self.db.commit()
        for n in staged:
            await self.push(n)

        logger.info(
            "notification.dispatched",
            recipient_id=recipient.id,
            type=type,
            results={r.channel: r.success for r in results},
        )
        return results

    async def send_notification(
        self,
        recipient_id: int,
        type: str,
        content: str,
        delivery_method: str = "in-app",
        *,
        title: Optional[str] = None,
        link: Optional[str] = None,
        sender_id: Optional[int] = None,
    ) -> tuple[Notification, ChannelResult]:
        """Admin-initiated notification on a single channel."""
        recipient = await self.db.get(User, recipient_id)
        if not recipient:
            raise UserNotFoundError(f"User {recipient_id} not found")

        [result] = await self.notify(
            recipient,
            type,
            content,
            [delivery_method],
            title=title,
            subject=f"CreatorHub Notification: {title or notification_title(type)}",
            link=link,
            sender_id=sender_id,
        )
        notification = await self.db.get(Notification, result.notification_id)
        return notification, result

    async def _send_email(
        self, recipient: User, subject: str, text: str, html_body: str
    ) -> tuple[bool, Optional[str]]:
        if not recipient.email:
            return False, "Recipient has no email address"
        return await self.channels.email.send(recipient.email, subject, text, html_body)

    async def _send_sms(self, recipient: User, body: str) -> tuple[bool, Optional[str]]:
        if not recipient.phone:
            return False, "Recipient has no phone number"
        return await self.channels.sms.send(recipient.phone, body)

    # ─── Read ─────────────────────────────────────────────

    async def get_notification(self, notification_id: int) -> Optional[Notification]:
        return await self.db.get(Notification, notification_id)

    async def list_notifications(
        self,
        user_id: int,
        *,
        unread_only: bool = False,
        delivery_method: Optional[str] = "in-app",
        limit: int = 50,
    ) -> list[Notification]:
        """Notifications for a user, newest first.

        Defaults to in-app rows; pass delivery_method=None for the full
        trail including email/SMS sends.
        """
        q = (
            select(Notification)
            .where(Notification.recipient_id == user_id)
            .order_by(Notification.id.desc())
            .limit(limit)
        )
        if unread_only:
            q = q.where(Notification.is_read.is_(False))
        if delivery_method:
            q = q.where(Notification.delivery_method == delivery_method)
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def unread_count(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.recipient_id == user_id,
                Notification.is_read.is_(False),
                Notification.delivery_method == "in-app",
            )
        )
        return result.scalar_one()

    # ─── Read-state ───────────────────────────────────────

    async def mark_read(self, notification_id: int, user: User) -> Notification:
        """Mark one notification read. Owner or admin only; idempotent."""
        notification = await self.db.get(Notification, notification_id)
        if not notification:
            raise NotificationNotFoundError(
                f"Notification {notification_id} not found"
            )
        if notification.recipient_id != user.id and not user.is_admin:
            raise PermissionDeniedError("Not your notification")

        if notification.is_read:
            return notification

        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        await self.events.append(
            stream_id=f"user:{notification.recipient_id}",
            event_type=NOTIFICATION_READ,
            data={"notification_id": notification.id, "by": user.id},
        )
        await self.db.commit()

        # Sync the recipient's other tabs
        await publish_event(
            [notification.recipient_id],
            "read",
            {"kind": "notification", "notification_ids": [notification.id]},
        )
        return notification

    async def mark_all_read(self, user_id: int) -> int:
        """Mark every unread notification of a user read. Returns the count."""
        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session="fetch")
        )
        count = result.rowcount or 0
        if not count:
            return 0

        await self.events.append(
            stream_id=f"user:{user_id}",
            event_type=NOTIFICATIONS_ALL_READ,
            data={"count": count},
        )
        await self.db.commit()
        await publish_event([user_id], "read", {"kind": "notification", "all": True})
        return count
