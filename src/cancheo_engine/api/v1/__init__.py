from fastapi import APIRouter

from .endpoints import health, notifications, session

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(notifications.router)
router.include_router(session.router)
