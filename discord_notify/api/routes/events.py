"""
Host event endpoints
"""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from discord_notify.api.dependencies.event_auth import verify_bridge_token
from discord_notify.bridge import NotificationBridge, get_bridge
from discord_notify.core.exceptions import InvalidEventError
from discord_notify.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


class HostEvent(BaseModel):
    """Event as emitted by the agent-session host"""
    type: str = Field(..., min_length=1)
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type")
    @classmethod
    def strip_type(cls, v: str) -> str:
        return v.strip()


class EventAccepted(BaseModel):
    accepted: bool


class QueueStatus(BaseModel):
    pending: int
    worker_running: bool


@router.post("/events", response_model=EventAccepted)
async def receive_event(
    event: HostEvent,
    bridge: NotificationBridge = Depends(get_bridge),
    _: None = Depends(verify_bridge_token),
) -> EventAccepted:
    """Handle one host event; ``accepted`` is False for ignored events"""
    if not event.type:
        raise InvalidEventError("Event type must not be blank")

    accepted = await bridge.handle_event(event.model_dump())
    logger.debug(
        "Event received",
        extra_data={"event_type": event.type, "accepted": accepted}
    )
    return EventAccepted(accepted=accepted)


@router.get("/queue", response_model=QueueStatus)
async def queue_status(
    bridge: NotificationBridge = Depends(get_bridge),
) -> QueueStatus:
    return QueueStatus(
        pending=await bridge.queue.count(),
        worker_running=bridge.worker.running,
    )


@router.get("/alerts")
async def recent_alerts(
    limit: int = 50,
    bridge: NotificationBridge = Depends(get_bridge),
) -> list[dict[str, Any]]:
    """Recent delivery alerts, newest first"""
    return bridge.alerts.get_alert_history(limit=max(0, limit))
