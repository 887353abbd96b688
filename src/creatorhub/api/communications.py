"""Communication routes — templates, history, and template sends.

- /communication-templates: any user reads, admins write
- /communication-history: admins list; parties may fetch single entries
- /send-communication: render a template for a recipient and send it
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.auth.dependencies import get_current_user, require_admin
from creatorhub.channels import Channels, get_channels
from creatorhub.db.engine import get_db
from creatorhub.db.models import User
from creatorhub.schemas.communication import (
    HistoryCreate,
    HistoryRead,
    SendCommunication,
    SendCommunicationResult,
    TemplateCreate,
    TemplateRead,
    TemplateUpdate,
)
from creatorhub.services.communication_service import CommunicationService
from creatorhub.services.errors import NotFoundError, PermissionDeniedError

router = APIRouter()


def _svc(
    db: AsyncSession = Depends(get_db),
    channels: Channels = Depends(get_channels),
) -> CommunicationService:
    return CommunicationService(db, channels)


# ═══════════════════════════════════════════════════════════
# Templates
# ═══════════════════════════════════════════════════════════


@router.get("/communication-templates", response_model=list[TemplateRead])
async def list_templates(
    type: Optional[str] = Query(None, description="email, sms or notification"),
    category: Optional[str] = Query(None),
    svc: CommunicationService = Depends(_svc),
):
    return await svc.list_templates(type=type, category=category)


@router.get("/communication-templates/default", response_model=TemplateRead)
async def get_default_template(
    type: str = Query(...),
    category: str = Query(...),
    svc: CommunicationService = Depends(_svc),
):
    """The default template for a (type, category) pair."""
    template = await svc.get_default_template(type, category)
    if not template:
        raise HTTPException(status_code=404, detail="No default template")
    return template


@router.get("/communication-templates/{template_id}", response_model=TemplateRead)
async def get_template(template_id: int, svc: CommunicationService = Depends(_svc)):
    try:
        return await svc.get_template(template_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/communication-templates", response_model=TemplateRead, status_code=201)
async def create_template(
    body: TemplateCreate,
    admin: User = Depends(require_admin),
    svc: CommunicationService = Depends(_svc),
):
    return await svc.create_template(admin, **body.model_dump())


@router.patch("/communication-templates/{template_id}", response_model=TemplateRead)
async def update_template(
    template_id: int,
    body: TemplateUpdate,
    admin: User = Depends(require_admin),
    svc: CommunicationService = Depends(_svc),
):
    """Partially update a template; only fields sent are changed."""
    try:
        return await svc.update_template(
            template_id, body.model_dump(exclude_unset=True), admin
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/communication-templates/{template_id}")
async def delete_template(
    template_id: int,
    admin: User = Depends(require_admin),
    svc: CommunicationService = Depends(_svc),
):
    try:
        await svc.delete_template(template_id, admin)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"deleted": True}


# ═══════════════════════════════════════════════════════════
# History
# ═══════════════════════════════════════════════════════════


@router.get(
    "/communication-history",
    response_model=list[HistoryRead],
    dependencies=[Depends(require_admin)],
)
async def list_history(
    recipient_id: Optional[int] = Query(None),
    sender_id: Optional[int] = Query(None),
    type: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    svc: CommunicationService = Depends(_svc),
):
    """History filtered by recipient, sender or type (one is required)."""
    try:
        return await svc.list_history(
            recipient_id=recipient_id, sender_id=sender_id, type=type, limit=limit
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/communication-history/{history_id}", response_model=HistoryRead)
async def get_history(
    history_id: int,
    user: User = Depends(get_current_user),
    svc: CommunicationService = Depends(_svc),
):
    try:
        return await svc.get_history(history_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.post("/communication-history", response_model=HistoryRead, status_code=201)
async def create_history(
    body: HistoryCreate,
    admin: User = Depends(require_admin),
    svc: CommunicationService = Depends(_svc),
):
    """Record a communication sent outside the platform."""
    try:
        return await svc.create_history(admin, **body.model_dump())
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ═══════════════════════════════════════════════════════════
# Send
# ═══════════════════════════════════════════════════════════


@router.post("/send-communication", response_model=SendCommunicationResult, status_code=201)
async def send_communication(
    body: SendCommunication,
    admin: User = Depends(require_admin),
    svc: CommunicationService = Depends(_svc),
):
    """Render a template for one recipient and send it.

    A failed delivery is still a 201: the attempt is recorded and
    success=false tells the caller what happened.
    """
    try:
        return await svc.send_communication(
            body.template_id, body.recipient_id, admin, body.params
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
