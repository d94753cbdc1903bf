"""
API Routes
"""
from fastapi import APIRouter

from discord_notify.api.routes.events import router as events_router

router = APIRouter()

router.include_router(events_router, tags=["events"])
