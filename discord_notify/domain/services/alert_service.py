"""
Alert Service - operator-facing alerts about notification delivery

Each alert is logged and kept in a bounded in-memory history that the
``/api/alerts`` endpoint serves.
The same key raised again within the cooldown window is dropped so a flapping
webhook does not flood the log.
"""
import enum
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from discord_notify.core.logging import get_logger

logger = get_logger(__name__)

# Maximum number of alerts kept for /api/alerts
_MAX_HISTORY_SIZE = 100


class AlertVariant(str, enum.Enum):
    """Alert severity, mirrors the host's toast variants"""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class AlertSink(Protocol):
    async def maybe_alert_error(
        self,
        key: str,
        title: str,
        message: str,
        variant: str = "error",
    ) -> None:
        ...


class AlertService:
    """Keyed, cooldown-limited alert sink with a bounded history"""

    def __init__(
        self,
        cooldown_seconds: float = 60.0,
        *,
        max_history: int = _MAX_HISTORY_SIZE,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cooldown_seconds = cooldown_seconds
        self._enabled = enabled
        self._clock = clock
        self._last_sent: dict[str, float] = {}
        self._history: deque[dict[str, Any]] = deque(maxlen=max_history)

    async def maybe_alert_error(
        self,
        key: str,
        title: str,
        message: str,
        variant: str = AlertVariant.ERROR.value,
    ) -> None:
        """Record an alert unless the same key fired within the cooldown"""
        if not self._enabled:
            return

        now = self._clock()
        last = self._last_sent.get(key)
        if last is not None and now - last < self._cooldown_seconds:
            logger.debug(
                "Alert suppressed by cooldown",
                extra_data={"key": key, "variant": variant}
            )
            return
        self._forget_expired(now)
        self._last_sent[key] = now

        entry = {
            "key": key,
            "title": title,
            "message": message,
            "variant": variant,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self._history.appendleft(entry)

        log = logger.error if variant == AlertVariant.ERROR.value else logger.warning
        log(
            title,
            extra_data={"key": key, "message": message, "variant": variant}
        )

    def _forget_expired(self, now: float) -> None:
        """Drop keys whose cooldown has run out; per-message keys never repeat"""
        expired = [
            key for key, sent_at in self._last_sent.items()
            if now - sent_at >= self._cooldown_seconds
        ]
        for key in expired:
            del self._last_sent[key]

    def get_alert_history(self, limit: int = 50) -> list[dict[str, Any]]:
        """Recent alerts, newest first"""
        return list(self._history)[:limit]
