"""Notification routes — the bell menu and admin sends."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.auth.dependencies import get_current_user, require_admin
from creatorhub.channels import Channels, get_channels
from creatorhub.db.engine import get_db
from creatorhub.db.models import User
from creatorhub.schemas.messaging import MarkReadResult
from creatorhub.schemas.notification import (
    NotificationRead,
    NotificationSend,
    NotificationSent,
    UnreadCount,
)
from creatorhub.services.errors import NotFoundError, PermissionDeniedError
from creatorhub.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications")


def _svc(
    db: AsyncSession = Depends(get_db),
    channels: Channels = Depends(get_channels),
) -> NotificationService:
    return NotificationService(db, channels)


@router.get("", response_model=list[NotificationRead])
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
):
    """The caller's in-app notifications, newest first."""
    return await svc.list_notifications(user.id, unread_only=unread_only, limit=limit)


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    user: User = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
):
    return UnreadCount(count=await svc.unread_count(user.id))


@router.post("/read-all", response_model=MarkReadResult)
async def mark_all_read(
    user: User = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
):
    return MarkReadResult(marked=await svc.mark_all_read(user.id))


@router.post("/send", response_model=NotificationSent, status_code=201)
async def send_notification(
    body: NotificationSend,
    admin: User = Depends(require_admin),
    svc: NotificationService = Depends(_svc),
):
    """Notify one user over the chosen delivery method (admin only)."""
    try:
        notification, result = await svc.send_notification(
            body.user_id,
            body.type,
            body.content,
            body.delivery_method,
            title=body.title,
            link=body.link,
            sender_id=admin.id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"notification": notification, "delivery": result}


@router.get("/{notification_id}", response_model=NotificationRead)
async def get_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
):
    notification = await svc.get_notification(notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    if notification.recipient_id != user.id and not user.is_admin:
        raise HTTPException(status_code=403, detail="Not your notification")
    return notification


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    svc: NotificationService = Depends(_svc),
):
    try:
        return await svc.mark_read(notification_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
