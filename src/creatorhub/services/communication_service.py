"""Communication service — templates, rendering, sending and history.

Templates are reusable bodies with {{placeholder}} parameters. Sending a
template renders it for one recipient, dispatches it by template type
(email, sms or in-app notification) and records the attempt in the
communication history whatever the outcome.
"""

from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.channels import Channels
from creatorhub.db.models import CommunicationHistory, CommunicationTemplate, User
from creatorhub.events.store import EventStore
from creatorhub.events.types import (
    COMMUNICATION_FAILED,
    COMMUNICATION_SENT,
    TEMPLATE_CREATED,
    TEMPLATE_DELETED,
    TEMPLATE_UPDATED,
)
from creatorhub.services.errors import (
    NotFoundError,
    PermissionDeniedError,
    UserNotFoundError,
)
from creatorhub.services.notification_service import (
    NotificationService,
    email_html,
)

logger = structlog.get_logger()

TEMPLATE_FIELDS = ("name", "type", "category", "subject", "content", "is_default")


class TemplateNotFoundError(NotFoundError):
    pass


class HistoryNotFoundError(NotFoundError):
    pass


def render(
    text: str,
    params: dict[str, Any],
    recipient: User,
    now: Optional[datetime] = None,
) -> str:
    """Fill {{key}} placeholders from params, then the built-in ones.

    Built-ins: {{recipientName}}, {{recipientEmail}}, {{date}}, {{time}}.
    Unknown placeholders are left as they are.
    """
    for key, value in params.items():
        text = text.replace("{{%s}}" % key, str(value))

    now = now or datetime.now()
    builtins = {
        "recipientName": recipient.full_name,
        "recipientEmail": recipient.email,
        "date": f"{now.month}/{now.day}/{now.year}",
        "time": now.strftime("%I:%M:%S %p").lstrip("0"),
    }
    for key, value in builtins.items():
        text = text.replace("{{%s}}" % key, value or "")
    return text


class CommunicationService:
    """Template CRUD, template sends and the history trail."""

    def __init__(self, db: AsyncSession, channels: Optional[Channels] = None):
        self.db = db
        self.events = EventStore(db)
        self.channels = channels or Channels()
        self.notifications = NotificationService(db, self.channels)

    # ─── Templates ────────────────────────────────────────

    async def list_templates(
        self,
        type: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[CommunicationTemplate]:
        q = select(CommunicationTemplate).order_by(CommunicationTemplate.id)
        if type:
            q = q.where(CommunicationTemplate.type == type)
        if category:
            q = q.where(CommunicationTemplate.category == category)
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def get_template(self, template_id: int) -> CommunicationTemplate:
        template = await self.db.get(CommunicationTemplate, template_id)
        if not template:
            raise TemplateNotFoundError(f"Template {template_id} not found")
        return template

    async def get_default_template(
        self, type: str, category: str
    ) -> Optional[CommunicationTemplate]:
        result = await self.db.execute(
            select(CommunicationTemplate)
            .where(
                CommunicationTemplate.type == type,
                CommunicationTemplate.category == category,
                CommunicationTemplate.is_default.is_(True),
            )
            .order_by(CommunicationTemplate.id.desc())
        )
        return result.scalars().first()

    async def create_template(self, creator: User, **fields) -> CommunicationTemplate:
        template = CommunicationTemplate(
            created_by=creator.id,
            **{k: v for k, v in fields.items() if k in TEMPLATE_FIELDS},
        )
        self.db.add(template)
        await self.db.flush()
        if template.is_default:
            await self._clear_other_defaults(template)

        await self.events.append(
            stream_id=f"template:{template.id}",
            event_type=TEMPLATE_CREATED,
            data={"name": template.name, "type": template.type},
            metadata={"actor_id": creator.id},
        )
        await self.db.commit()
        await self.db.refresh(template)
        return template

    async def update_template(
        self, template_id: int, changes: dict[str, Any], actor: User
    ) -> CommunicationTemplate:
        template = await self.get_template(template_id)
        applied = {k: v for k, v in changes.items() if k in TEMPLATE_FIELDS}
        for key, value in applied.items():
            setattr(template, key, value)
        await self.db.flush()
        if template.is_default:
            await self._clear_other_defaults(template)

        await self.events.append(
            stream_id=f"template:{template.id}",
            event_type=TEMPLATE_UPDATED,
            data={"fields": sorted(applied)},
            metadata={"actor_id": actor.id},
        )
        await self.db.commit()
        await self.db.refresh(template)
        return template

    async def delete_template(self, template_id: int, actor: User) -> None:
        """Delete a template. History rows keep their content, lose the link."""
        template = await self.get_template(template_id)
        await self.db.execute(
            update(CommunicationHistory)
            .where(CommunicationHistory.template_id == template_id)
            .values(template_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.delete(template)
        await self.events.append(
            stream_id=f"template:{template_id}",
            event_type=TEMPLATE_DELETED,
            data={"name": template.name},
            metadata={"actor_id": actor.id},
        )
        await self.db.commit()

    async def _clear_other_defaults(self, template: CommunicationTemplate) -> None:
        """At most one default template per (type, category)."""
        await self.db.execute(
            update(CommunicationTemplate)
            .where(
                CommunicationTemplate.type == template.type,
                CommunicationTemplate.category == template.category,
                CommunicationTemplate.id != template.id,
                CommunicationTemplate.is_default.is_(True),
            )
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )

    # ─── Send ─────────────────────────────────────────────

    async def send_communication(
        self,
        template_id: int,
        recipient_id: int,
        sender: User,
        params: Optional[dict[str, Any]] = None,
    ) -> dict:
        """Render a template for one recipient and send it.

        Returns {"success", "history", "message"}; a failed send is still
        recorded and is not an error.
        """
        template = await self.get_template(template_id)
        recipient = await self.db.get(User, recipient_id)
        if not recipient:
            raise UserNotFoundError(f"Recipient {recipient_id} not found")

        params = params or {}
        now = datetime.now()
        content = render(template.content, params, recipient, now)
        subject = render(template.subject, params, recipient, now) if template.subject else None

        notification = None
        error: Optional[str] = None
        if template.type == "email":
            subject = subject or f"CreatorHub: {template.name}"
            ok, error = await self.channels.email.send(
                recipient.email, subject, content, email_html(subject, content)
            )
        elif template.type == "sms":
            if recipient.phone:
                ok, error = await self.channels.sms.send(recipient.phone, content)
            else:
                ok, error = False, "Recipient has no phone number"
        elif template.type == "notification":
            notification = await self.notifications.stage_notification(
                recipient.id, template.category, content
            )
            ok = True
        else:
            ok, error = False, "Invalid template type"

        history = CommunicationHistory(
            template_id=template.id,
            recipient_id=recipient.id,
            sender_id=sender.id,
            type=template.type,
            subject=subject,
            content=content,
            status="sent" if ok else "failed",
            status_message=error,
        )
        self.db.add(history)
        await self.db.flush()
        await self.events.append(
            stream_id=f"user:{recipient.id}",
            event_type=COMMUNICATION_SENT if ok else COMMUNICATION_FAILED,
            data={"history_id": history.id, "template_id": template.id, "type": template.type},
            metadata={"actor_id": sender.id},
        )
        await self.db.commit()
        await self.db.refresh(history)
        if notification is not None:
            await self.notifications.push(notification)

        if ok:
            message = f"{template.type} sent successfully"
        else:
            message = f"Failed to send {template.type}" + (f": {error}" if error else "")
            logger.warning(
                "communication.failed",
                template_id=template.id,
                recipient_id=recipient.id,
                error=error,
            )
        return {"success": ok, "history": history, "message": message}

    # ─── History ──────────────────────────────────────────

    async def list_history(
        self,
        *,
        recipient_id: Optional[int] = None,
        sender_id: Optional[int] = None,
        type: Optional[str] = None,
        limit: int = 100,
    ) -> list[CommunicationHistory]:
        """History filtered by recipient, sender or type (at least one)."""
        if recipient_id is None and sender_id is None and not type:
            raise ValueError("Provide recipient_id, sender_id or type")

        q = (
            select(CommunicationHistory)
            .order_by(CommunicationHistory.id.desc())
            .limit(limit)
        )
        if recipient_id is not None:
            q = q.where(CommunicationHistory.recipient_id == recipient_id)
        if sender_id is not None:
            q = q.where(CommunicationHistory.sender_id == sender_id)
        if type:
            q = q.where(CommunicationHistory.type == type)
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def get_history(self, history_id: int, user: User) -> CommunicationHistory:
        """One history entry; admins or the entry's sender/recipient only."""
        entry = await self.db.get(CommunicationHistory, history_id)
        if not entry:
            raise HistoryNotFoundError(f"History entry {history_id} not found")
        if not user.is_admin and user.id not in (entry.recipient_id, entry.sender_id):
            raise PermissionDeniedError("Not a party to this communication")
        return entry

    async def create_history(self, sender: User, **fields) -> CommunicationHistory:
        """Record a communication sent outside this service."""
        if not await self.db.get(User, fields["recipient_id"]):
            raise UserNotFoundError(f"Recipient {fields['recipient_id']} not found")
        entry = CommunicationHistory(sender_id=sender.id, **fields)
        self.db.add(entry)
        await self.db.commit()
        await self.db.refresh(entry)
        return entry
