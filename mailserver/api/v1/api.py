from fastapi import APIRouter
from mailserver.api.v1.endpoints import mail, sync

api_router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
api_router.include_router(sync.router)
api_router.include_router(mail.router)
