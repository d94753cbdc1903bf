"""
Domain Services
"""
from discord_notify.domain.services.alert_service import AlertService
from discord_notify.domain.services.event_handler import EventHandler
from discord_notify.domain.services.persistent_queue import PersistentQueue
from discord_notify.domain.services.session_threads import SessionThreadState
from discord_notify.domain.services.webhook_client import WebhookClient, WebhookMessage

__all__ = [
    "AlertService",
    "EventHandler",
    "PersistentQueue",
    "SessionThreadState",
    "WebhookClient",
    "WebhookMessage",
]
