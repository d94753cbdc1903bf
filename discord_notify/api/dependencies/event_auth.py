"""
Shared-secret check for inbound host events.

The host plugin sends ``X-Bridge-Token`` with every event when
``BRIDGE_SECRET_TOKEN`` is configured on both sides.

Usage:
    @router.post("/events")
    async def receive_event(
        ...,
        _: None = Depends(verify_bridge_token),
    ):
        ...
"""
import hmac

from fastapi import Header, HTTPException, status

from discord_notify.core.config import settings
from discord_notify.core.logging import get_logger

logger = get_logger(__name__)


async def verify_bridge_token(
    x_bridge_token: str | None = Header(None),
) -> None:
    """
    Validate ``X-Bridge-Token``.

    - ``BRIDGE_SECRET_TOKEN`` empty: no check.
    - header missing or different: 403 Forbidden.
    """
    expected = settings.BRIDGE_SECRET_TOKEN
    if not expected:
        return

    if not x_bridge_token:
        logger.warning("Event request without X-Bridge-Token header")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing bridge token",
        )

    # Constant-time comparison
    if not hmac.compare_digest(x_bridge_token, expected):
        logger.warning("Event request with invalid bridge token")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid bridge token",
        )
