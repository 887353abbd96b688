"""Conversation and message routes.

Real-time delivery happens over /ws; these routes are the write path and
the polling fallback (GET .../messages?after_id=N).
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.auth.dependencies import get_current_user
from creatorhub.channels import Channels, get_channels
from creatorhub.db.engine import get_db
from creatorhub.db.models import User
from creatorhub.schemas.messaging import (
    ConversationCreate,
    ConversationRead,
    MarkReadResult,
    MessageCreate,
    MessageRead,
)
from creatorhub.schemas.notification import UnreadCount
from creatorhub.schemas.user import UserBrief
from creatorhub.services.errors import (
    NotFoundError,
    PermissionDeniedError,
)
from creatorhub.services.messaging_service import MessagingService

router = APIRouter()


def _svc(
    db: AsyncSession = Depends(get_db),
    channels: Channels = Depends(get_channels),
) -> MessagingService:
    return MessagingService(db, channels)


# ═══════════════════════════════════════════════════════════
# Conversations
# ═══════════════════════════════════════════════════════════


@router.post("/conversations", response_model=ConversationRead, status_code=201)
async def create_conversation(
    body: ConversationCreate,
    user: User = Depends(get_current_user),
    svc: MessagingService = Depends(_svc),
):
    """Start a conversation. The caller is always a participant."""
    try:
        return await svc.create_conversation(user, body.title, body.participant_ids)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/conversations", response_model=list[ConversationRead])
async def list_conversations(
    user: User = Depends(get_current_user),
    svc: MessagingService = Depends(_svc),
):
    """The caller's conversations, most recent activity first."""
    rows = await svc.list_conversations(user.id)
    return [
        ConversationRead.model_validate(c).model_copy(update={"unread_count": n})
        for c, n in rows
    ]


@router.get("/conversations/{conversation_id}", response_model=ConversationRead)
async def get_conversation(
    conversation_id: int,
    user: User = Depends(get_current_user),
    svc: MessagingService = Depends(_svc),
):
    conversation = await svc.get_conversation(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if not user.is_admin and not await svc.is_participant(user.id, conversation_id):
        raise HTTPException(status_code=403, detail="Not a participant in this conversation")
    return conversation


@router.get("/conversations/{conversation_id}/participants", response_model=list[UserBrief])
async def list_participants(
    conversation_id: int,
    user: User = Depends(get_current_user),
    svc: MessagingService = Depends(_svc),
):
    try:
        return await svc.get_participants(conversation_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.post("/conversations/{conversation_id}/read", response_model=MarkReadResult)
async def mark_conversation_read(
    conversation_id: int,
    user: User = Depends(get_current_user),
    svc: MessagingService = Depends(_svc),
):
    """Mark every message from others in the conversation read."""
    try:
        return MarkReadResult(marked=await svc.mark_conversation_read(conversation_id, user))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))


# ═══════════════════════════════════════════════════════════
# Messages
# ═══════════════════════════════════════════════════════════


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageRead])
async def list_messages(
    conversation_id: int,
    after_id: int = Query(0, ge=0, description="Return messages with id > after_id"),
    limit: int = Query(100, ge=1, le=500),
    user: User = Depends(get_current_user),
    svc: MessagingService = Depends(_svc),
):
    """Messages in ascending order. Poll with the last seen id to catch up."""
    try:
        return await svc.list_messages(conversation_id, user, after_id=after_id, limit=limit)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageRead,
    status_code=201,
)
async def send_message(
    conversation_id: int,
    body: MessageCreate,
    user: User = Depends(get_current_user),
    svc: MessagingService = Depends(_svc),
):
    """Send a message; participants get it over /ws if connected."""
    try:
        return await svc.send_message(conversation_id, user, body.content, body.attachments)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.get("/messages/unread-count", response_model=UnreadCount)
async def unread_message_count(
    user: User = Depends(get_current_user),
    svc: MessagingService = Depends(_svc),
):
    return UnreadCount(count=await svc.unread_message_count(user.id))


@router.post("/messages/{message_id}/read", response_model=MessageRead)
async def mark_message_read(
    message_id: int,
    user: User = Depends(get_current_user),
    svc: MessagingService = Depends(_svc),
):
    """Mark a message read. Reading your own message is a no-op."""
    try:
        return await svc.mark_message_read(message_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
