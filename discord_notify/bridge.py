"""
Notification bridge assembly

Wires the queue, worker, webhook client, thread state and event handler
together and owns their resources. Any number of bridges can be built (tests
do); the process registers exactly one through ``register_bridge``.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from discord_notify.core.config import Settings
from discord_notify.core.exceptions import ConfigurationError
from discord_notify.core.logging import get_logger, log_async_operation
from discord_notify.db.database import build_engine, build_session_maker, init_database
from discord_notify.domain.services.alert_service import AlertService
from discord_notify.domain.services.event_handler import EventHandler
from discord_notify.domain.services.formatting import parse_send_params
from discord_notify.domain.services.persistent_queue import PersistentQueue
from discord_notify.domain.services.session_threads import SessionThreadState
from discord_notify.domain.services.webhook_client import WebhookClient
from discord_notify.workers.queue_worker import QueueWorker, SleepFunc

logger = get_logger(__name__)


class NotificationBridge:
    """
    One bridge instance per host process.

    Args:
        config: settings to build from
        http_client: shared client for Discord; created (and closed) here when omitted
        engine: queue database engine; built from DISCORD_NOTIFY_QUEUE_DB_PATH when omitted
        sleep: used for poll and rate-limit waits
    """

    def __init__(
        self,
        config: Settings,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        engine: Optional[AsyncEngine] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.config = config
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=config.HTTP_TIMEOUT_SECONDS
        )
        self.engine = engine or build_engine(
            config.DISCORD_NOTIFY_QUEUE_DB_PATH, echo=config.DEBUG
        )

        self.queue = PersistentQueue(build_session_maker(self.engine))
        self.alerts = AlertService(
            config.ALERT_COOLDOWN_SECONDS,
            enabled=config.DISCORD_WEBHOOK_SHOW_ERROR_ALERT,
        )
        self.threads = SessionThreadState()
        self.webhook = WebhookClient(
            self.http_client,
            alerts=self.alerts,
            show_error_alert=config.DISCORD_WEBHOOK_SHOW_ERROR_ALERT,
            wait_on_rate_limit_seconds=config.wait_on_rate_limit_seconds,
            timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
            sleep=sleep,
        )
        self.worker = QueueWorker(
            self.queue,
            self.webhook,
            self.alerts,
            webhook_url=config.DISCORD_WEBHOOK_URL or "",
            build_thread_name=self._build_thread_name,
            thread_listener=self.threads,
            lookup_thread_id=self.threads.get,
            username=config.DISCORD_WEBHOOK_USERNAME,
            avatar_url=config.DISCORD_WEBHOOK_AVATAR_URL,
            poll_interval_seconds=config.QUEUE_POLL_INTERVAL_SECONDS,
            max_retries=config.QUEUE_MAX_RETRIES,
            delete_on_missing_thread_id=config.DELETE_ON_MISSING_THREAD_ID,
            sleep=sleep,
        )
        self.handler = EventHandler(
            self.queue,
            self.worker,
            self.threads,
            webhook_url=config.DISCORD_WEBHOOK_URL,
            complete_mention=config.DISCORD_WEBHOOK_COMPLETE_MENTION,
            permission_mention=config.DISCORD_WEBHOOK_PERMISSION_MENTION,
            exclude_input_context=config.DISCORD_WEBHOOK_EXCLUDE_INPUT_CONTEXT,
            include_last_message=config.DISCORD_WEBHOOK_COMPLETE_INCLUDE_LAST_MESSAGE,
            send_params=parse_send_params(config.DISCORD_WEBHOOK_SEND_PARAMS),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.config.DISCORD_WEBHOOK_URL)

    def _build_thread_name(self, session_id: str) -> str:
        return self.handler.build_thread_name(session_id)

    @log_async_operation("bridge_startup")
    async def start(self) -> None:
        """Create the queue table and deliver anything left from a previous run"""
        await init_database(self.engine)

        if not self.enabled:
            logger.warning("DISCORD_WEBHOOK_URL is not set; the bridge will be a no-op")
            return

        pending = await self.queue.count()
        if pending:
            logger.info(
                "Resuming delivery of queued notifications",
                extra_data={"pending": pending}
            )
            self.worker.kick()

    async def handle_event(self, event: dict[str, Any]) -> bool:
        return await self.handler.handle(event)

    @log_async_operation("bridge_shutdown")
    async def shutdown(self) -> None:
        self.worker.stop()
        await self.worker.wait_idle()
        if self._owns_client:
            await self.http_client.aclose()
        await self.engine.dispose()
        logger.info("Notification bridge shut down")


_registered_bridge: Optional[NotificationBridge] = None


def register_bridge(bridge: NotificationBridge) -> bool:
    """
    Register the process-wide bridge.

    Returns False, leaving the existing one in place, when a bridge is
    already registered.
    """
    global _registered_bridge
    if _registered_bridge is not None:
        logger.warning("Notification bridge already registered; ignoring second registration")
        return False
    _registered_bridge = bridge
    return True


def get_bridge() -> NotificationBridge:
    """FastAPI dependency returning the registered bridge"""
    if _registered_bridge is None:
        raise ConfigurationError("bridge", "Notification bridge is not initialized")
    return _registered_bridge


def reset_bridge() -> None:
    global _registered_bridge
    _registered_bridge = None
