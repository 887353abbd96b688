"""API route aggregation.

All routers registered here get mounted in main.py.

Auth is applied at the include_router level using FastAPI's dependencies
parameter. Health and auth routers are open; the user directory is
admin-only, as is the audit log; everything else needs a valid JWT.
"""

from fastapi import APIRouter, Depends

from creatorhub.api.appointments import router as appointments_router
from creatorhub.api.auth import router as auth_router
from creatorhub.api.communications import router as communications_router
from creatorhub.api.conversations import router as conversations_router
from creatorhub.api.events import router as events_router
from creatorhub.api.health import router as health_router
from creatorhub.api.notifications import router as notifications_router
from creatorhub.api.users import router as users_router
from creatorhub.auth.dependencies import get_current_user, require_admin

_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes: no auth required
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Protected routes: require a valid JWT
api_router.include_router(users_router, tags=["users"], dependencies=[Depends(require_admin)])
api_router.include_router(events_router, tags=["events"], dependencies=[Depends(require_admin)])
api_router.include_router(conversations_router, tags=["conversations", "messages"], dependencies=_auth)
api_router.include_router(notifications_router, tags=["notifications"], dependencies=_auth)
api_router.include_router(appointments_router, tags=["appointments"], dependencies=_auth)
api_router.include_router(communications_router, tags=["communications"], dependencies=_auth)
