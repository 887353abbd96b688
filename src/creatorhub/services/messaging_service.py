"""Messaging service — conversations, messages and read receipts.

Write path for a message:
  1. Persist the message, bump the conversation preview, audit event
  2. Stage an in-app "message" notification for every other participant
  3. Commit
  4. Push a "message" event to all participants (sender's other tabs too)
     and the notifications to their recipients
  5. Optionally text recipients who are offline

Nothing is pushed before it is committed, so GET /messages?after_id=N
always sees what a socket has seen.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from creatorhub.channels import Channels
from creatorhub.config import settings
from creatorhub.db.models import (
    CommunicationHistory,
    Conversation,
    ConversationParticipant,
    Message,
    User,
    utcnow,
)
from creatorhub.events.store import EventStore
from creatorhub.events.types import (
    CONVERSATION_CREATED,
    CONVERSATION_READ,
    MESSAGE_READ,
    MESSAGE_SENT,
)
from creatorhub.realtime.pubsub import is_user_online, publish_event
from creatorhub.schemas.messaging import MessageRead
from creatorhub.services.errors import (
    NotFoundError,
    PermissionDeniedError,
    UserNotFoundError,
)
from creatorhub.services.notification_service import NotificationService

logger = structlog.get_logger()

DEFAULT_TITLE = "New Conversation"


class ConversationNotFoundError(NotFoundError):
    pass


class MessageNotFoundError(NotFoundError):
    pass


class NotParticipantError(PermissionDeniedError):
    pass


def make_preview(content: str, length: Optional[int] = None) -> str:
    """First `length` characters of a message, with "..." when truncated."""
    length = length or settings.message_preview_length
    if len(content) <= length:
        return content
    return content[:length] + "..."


def sender_info(user: User) -> dict:
    return {"id": user.id, "username": user.username}


class MessagingService:
    """Conversation and message operations with real-time fan-out."""

    def __init__(self, db: AsyncSession, channels: Optional[Channels] = None):
        self.db = db
        self.events = EventStore(db)
        self.channels = channels or Channels()
        self.notifications = NotificationService(db, self.channels)

    # ─── Conversations ────────────────────────────────────

    async def create_conversation(
        self,
        creator: User,
        title: Optional[str] = None,
        participant_ids: Optional[list[int]] = None,
    ) -> Conversation:
        """Create a conversation. The creator is always a participant."""
        ids = list(dict.fromkeys([creator.id, *(participant_ids or [])]))

        result = await self.db.execute(select(User.id).where(User.id.in_(ids)))
        missing = set(ids) - set(result.scalars().all())
        if missing:
            raise UserNotFoundError(
                f"Unknown user id(s): {', '.join(str(i) for i in sorted(missing))}"
            )

        conversation = Conversation(
            title=(title or "").strip() or DEFAULT_TITLE,
            last_message_preview="",
        )
        conversation.participants = [
            ConversationParticipant(user_id=uid) for uid in ids
        ]
        self.db.add(conversation)
        await self.db.flush()

        await self.events.append(
            stream_id=f"conversation:{conversation.id}",
            event_type=CONVERSATION_CREATED,
            data={"title": conversation.title, "participant_ids": ids},
            metadata={"actor_id": creator.id},
        )
        await self.db.commit()

        logger.info(
            "conversation.created",
            conversation_id=conversation.id,
            participants=len(ids),
        )
        return await self.get_conversation(conversation.id)

    async def get_conversation(self, conversation_id: int) -> Optional[Conversation]:
        """Conversation with participants (and their users) loaded."""
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .options(
                selectinload(Conversation.participants).selectinload(
                    ConversationParticipant.user
                )
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_conversations(self, user_id: int) -> list[tuple[Conversation, int]]:
        """Conversations a user is in, newest activity first, with unread counts."""
        result = await self.db.execute(
            select(Conversation)
            .join(ConversationParticipant)
            .where(ConversationParticipant.user_id == user_id)
            .options(
                selectinload(Conversation.participants).selectinload(
                    ConversationParticipant.user
                )
            )
            .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
            .execution_options(populate_existing=True)
        )
        conversations = list(result.scalars().unique().all())
        if not conversations:
            return []

        counts = await self.db.execute(
            select(Message.conversation_id, func.count())
            .where(
                Message.conversation_id.in_([c.id for c in conversations]),
                Message.sender_id != user_id,
                Message.read_at.is_(None),
            )
            .group_by(Message.conversation_id)
        )
        unread = dict(counts.tuples().all())
        return [(c, unread.get(c.id, 0)) for c in conversations]

    async def get_participants(self, conversation_id: int, user: User) -> list[User]:
        """Users in a conversation, in join order."""
        await self._require_access(conversation_id, user)
        result = await self.db.execute(
            select(User)
            .join(ConversationParticipant, ConversationParticipant.user_id == User.id)
            .where(ConversationParticipant.conversation_id == conversation_id)
            .order_by(ConversationParticipant.id)
        )
        return list(result.scalars().all())

    async def participant_ids(self, conversation_id: int) -> list[int]:
        result = await self.db.execute(
            select(ConversationParticipant.user_id)
            .where(ConversationParticipant.conversation_id == conversation_id)
            .order_by(ConversationParticipant.id)
        )
        return list(result.scalars().all())

    async def is_participant(self, user_id: int, conversation_id: int) -> bool:
        result = await self.db.execute(
            select(ConversationParticipant.id).where(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.user_id == user_id,
            )
        )
        return result.first() is not None

    async def conversation_peers(self, user_id: int) -> set[int]:
        """Everyone who shares at least one conversation with a user."""
        mine = select(ConversationParticipant.conversation_id).where(
            ConversationParticipant.user_id == user_id
        )
        result = await self.db.execute(
            select(ConversationParticipant.user_id)
            .where(
                ConversationParticipant.conversation_id.in_(mine),
                ConversationParticipant.user_id != user_id,
            )
            .distinct()
        )
        return set(result.scalars().all())

    async def _require_access(self, conversation_id: int, user: User) -> None:
        """Participants may read a conversation; admins may read any."""
        if not await self.db.get(Conversation, conversation_id):
            raise ConversationNotFoundError(
                f"Conversation {conversation_id} not found"
            )
        if user.is_admin:
            return
        if not await self.is_participant(user.id, conversation_id):
            raise NotParticipantError("Not a participant in this conversation")

    # ─── Messages ─────────────────────────────────────────

    async def send_message(
        self,
        conversation_id: int,
        sender: User,
        content: str,
        attachments: Optional[list[dict]] = None,
    ) -> Message:
        """Persist a message and fan it out to the conversation."""
        conversation = await self.db.get(Conversation, conversation_id)
        if not conversation:
            raise ConversationNotFoundError(
                f"Conversation {conversation_id} not found"
            )
        if not await self.is_participant(sender.id, conversation_id):
            raise NotParticipantError("Not a participant in this conversation")

        message = Message(
            conversation_id=conversation_id,
            sender_id=sender.id,
            content=content,
            attachments=attachments or [],
        )
        self.db.add(message)
        conversation.last_message_preview = make_preview(content)
        conversation.updated_at = utcnow()
        await self.db.flush()

        await self.events.append(
            stream_id=f"conversation:{conversation_id}",
            event_type=MESSAGE_SENT,
            data={"message_id": message.id, "sender_id": sender.id},
        )

        participant_ids = await self.participant_ids(conversation_id)
        recipient_ids = [pid for pid in participant_ids if pid != sender.id]
        staged = [
            await self.notifications.stage_notification(
                pid,
                "message",
                f"New message from {sender.full_name or sender.username}",
                link=f"/messages/{conversation_id}",
            )
            for pid in recipient_ids
        ]
        await self.db.commit()

        await publish_event(
            participant_ids,
            "message",
            MessageRead.model_validate(message).model_dump(mode="json"),
            sender=sender_info(sender),
        )
        for notification in staged:
            await self.notifications.push(notification)

        logger.info(
            "message.sent",
            conversation_id=conversation_id,
            message_id=message.id,
            recipients=len(recipient_ids),
        )

        if settings.message_sms_alerts and recipient_ids:
            await self._alert_offline(recipient_ids, sender)
        return message

    async def _alert_offline(self, recipient_ids: list[int], sender: User) -> None:
        """Text recipients with a phone number who have no open connection."""
        result = await self.db.execute(
            select(User).where(User.id.in_(recipient_ids), User.phone.is_not(None))
        )
        body = (
            f"CreatorHub: New message from {sender.full_name or sender.username}. "
            "Log in to your portal to reply."
        )
        sent = False
        for user in result.scalars().all():
            if await is_user_online(user.id):
                continue
            ok, error = await self.channels.sms.send(user.phone, body)
            self.db.add(CommunicationHistory(
                recipient_id=user.id,
                sender_id=sender.id,
                type="sms",
                content=body,
                status="sent" if ok else "failed",
                status_message=error,
            ))
            sent = True
        if sent:
            await self.db.commit()

    async def list_messages(
        self,
        conversation_id: int,
        user: User,
        after_id: int = 0,
        limit: int = 100,
    ) -> list[Message]:
        """Messages after a given id, ascending. Polling fallback for sockets."""
        await self._require_access(conversation_id, user)
        result = await self.db.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id, Message.id > after_id)
            .order_by(Message.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    # ─── Read receipts ────────────────────────────────────

    async def mark_message_read(self, message_id: int, user: User) -> Message:
        """Mark a message read by someone other than its sender.

        The first read wins; repeated calls and the sender's own reads are
        no-ops and push nothing.
        """
        message = await self.db.get(Message, message_id)
        if not message:
            raise MessageNotFoundError(f"Message {message_id} not found")
        await self._require_access(message.conversation_id, user)

        if message.sender_id == user.id or message.read_at is not None:
            return message

        message.read_at = datetime.now(timezone.utc)
        await self.events.append(
            stream_id=f"conversation:{message.conversation_id}",
            event_type=MESSAGE_READ,
            data={"message_id": message.id, "reader_id": user.id},
        )
        await self.db.commit()

        await publish_event(
            await self.participant_ids(message.conversation_id),
            "read",
            {
                "kind": "message",
                "conversation_id": message.conversation_id,
                "message_ids": [message.id],
                "reader_id": user.id,
                "read_at": message.read_at.isoformat(),
            },
            sender=sender_info(user),
        )
        return message

    async def mark_conversation_read(self, conversation_id: int, user: User) -> int:
        """Mark every unread message from others read. Returns the count."""
        await self._require_access(conversation_id, user)

        result = await self.db.execute(
            select(Message.id).where(
                Message.conversation_id == conversation_id,
                Message.sender_id != user.id,
                Message.read_at.is_(None),
            )
        )
        message_ids = list(result.scalars().all())
        if not message_ids:
            return 0

        read_at = datetime.now(timezone.utc)
        await self.db.execute(
            update(Message)
            .where(Message.id.in_(message_ids))
            .values(read_at=read_at)
            .execution_options(synchronize_session="fetch")
        )
        await self.events.append(
            stream_id=f"conversation:{conversation_id}",
            event_type=CONVERSATION_READ,
            data={"reader_id": user.id, "count": len(message_ids)},
        )
        await self.db.commit()

        await publish_event(
            await self.participant_ids(conversation_id),
            "read",
            {
                "kind": "message",
                "conversation_id": conversation_id,
                "message_ids": message_ids,
                "reader_id": user.id,
                "read_at": read_at.isoformat(),
            },
            sender=sender_info(user),
        )
        return len(message_ids)

    async def unread_message_count(self, user_id: int) -> int:
        """Unread messages from others across all of a user's conversations."""
        mine = select(ConversationParticipant.conversation_id).where(
            ConversationParticipant.user_id == user_id
        )
        result = await self.db.execute(
            select(func.count())
            .select_from(Message)
            .where(
                Message.conversation_id.in_(mine),
                Message.sender_id != user_id,
                Message.read_at.is_(None),
            )
        )
        return result.scalar_one()
