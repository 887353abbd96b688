"""Appointment routes.

Admins propose, cancel and send reminders; clients approve or decline.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.auth.dependencies import get_current_user, require_admin
from creatorhub.channels import Channels, get_channels
from creatorhub.db.engine import get_db
from creatorhub.db.models import User
from creatorhub.schemas.appointment import (
    AppointmentCreate,
    AppointmentDetail,
    AppointmentProposed,
    AppointmentRead,
    AppointmentReminder,
    AppointmentRespond,
)
from creatorhub.schemas.notification import ChannelResultRead
from creatorhub.services.appointment_service import AppointmentService
from creatorhub.services.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)

router = APIRouter(prefix="/appointments")


def _svc(
    db: AsyncSession = Depends(get_db),
    channels: Channels = Depends(get_channels),
) -> AppointmentService:
    return AppointmentService(db, channels)


@router.post("", response_model=AppointmentProposed, status_code=201)
async def propose_appointment(
    body: AppointmentCreate,
    admin: User = Depends(require_admin),
    svc: AppointmentService = Depends(_svc),
):
    """Propose an appointment to a client and notify them."""
    try:
        appointment, results = await svc.propose(admin, **body.model_dump())
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"appointment": appointment, "delivery": results}


@router.get("", response_model=list[AppointmentDetail])
async def list_appointments(
    user: User = Depends(get_current_user),
    svc: AppointmentService = Depends(_svc),
):
    """Admins see what they proposed; clients see what was proposed to them."""
    if user.is_admin:
        return await svc.list_for_admin(user.id)
    return await svc.list_for_client(user.id)


@router.get("/{appointment_id}", response_model=AppointmentDetail)
async def get_appointment(
    appointment_id: int,
    user: User = Depends(get_current_user),
    svc: AppointmentService = Depends(_svc),
):
    try:
        return await svc.get(appointment_id, user)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.post("/{appointment_id}/respond", response_model=AppointmentRead)
async def respond_to_appointment(
    appointment_id: int,
    body: AppointmentRespond,
    user: User = Depends(get_current_user),
    svc: AppointmentService = Depends(_svc),
):
    """Client approves or declines a pending proposal."""
    try:
        return await svc.respond(appointment_id, user, body.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{appointment_id}/cancel", response_model=AppointmentRead)
async def cancel_appointment(
    appointment_id: int,
    admin: User = Depends(require_admin),
    svc: AppointmentService = Depends(_svc),
):
    try:
        return await svc.cancel(appointment_id, admin)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{appointment_id}/reminder", response_model=list[ChannelResultRead])
async def send_reminder(
    appointment_id: int,
    body: AppointmentReminder,
    admin: User = Depends(require_admin),
    svc: AppointmentService = Depends(_svc),
):
    """Remind the client over the chosen method(s)."""
    try:
        return await svc.send_reminder(appointment_id, admin, body.method, body.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
