"""
Queue Worker - drains the persistent queue into the Discord webhook

One message at a time, oldest first. A message without a thread id creates
the session's forum thread; the returned id is written back to every queued
message of that session before the next one is read, which is why the batch
size stays at one.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Protocol

from discord_notify.core.exceptions import WebhookDeliveryError
from discord_notify.core.logging import get_logger
from discord_notify.db.models.queued_message import QueueMessage
from discord_notify.domain.services.alert_service import AlertSink
from discord_notify.domain.services.persistent_queue import PersistentQueue
from discord_notify.domain.services.session_threads import ThreadCreatedListener
from discord_notify.domain.services.webhook_client import WebhookMessage

logger = get_logger(__name__)

BATCH_SIZE = 1
MAX_RETRIES = 5
POLL_INTERVAL_SECONDS = 1.0

SleepFunc = Callable[[float], Awaitable[Any]]


class WebhookPoster(Protocol):
    async def post_webhook(
        self,
        webhook_url: str,
        body: dict[str, Any],
        *,
        thread_id: str | None = None,
        wait: bool = False,
    ) -> Optional[WebhookMessage]:
        ...


class QueueWorker:
    """
    Single-flight poll loop over a ``PersistentQueue``.

    ``start()`` runs until the queue is empty or ``stop()`` is called; a second
    ``start()`` while a loop is active returns immediately. Producers that must
    not wait for delivery call ``kick()`` instead.
    """

    def __init__(
        self,
        queue: PersistentQueue,
        webhook: WebhookPoster,
        alerts: AlertSink,
        *,
        webhook_url: str,
        build_thread_name: Callable[[str], str],
        thread_listener: Optional[ThreadCreatedListener] = None,
        lookup_thread_id: Optional[Callable[[str], Optional[str]]] = None,
        username: str | None = None,
        avatar_url: str | None = None,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        max_retries: int = MAX_RETRIES,
        delete_on_missing_thread_id: bool = True,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self._queue = queue
        self._webhook = webhook
        self._alerts = alerts
        self._webhook_url = webhook_url
        self._build_thread_name = build_thread_name
        self._thread_listener = thread_listener
        self._lookup_thread_id = lookup_thread_id
        self._username = username
        self._avatar_url = avatar_url
        self._poll_interval_seconds = poll_interval_seconds
        self._max_retries = max_retries
        self._delete_on_missing_thread_id = delete_on_missing_thread_id
        self._sleep = sleep

        self._running = False
        self._kicked = False
        self._cancel: asyncio.Event | None = None
        self._finished: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def _stopping(self) -> bool:
        return self._cancel is not None and self._cancel.is_set()

    async def start(self) -> None:
        """
        Run the poll loop until the queue is drained or ``stop()`` is called.

        While a stopped run is still finishing its current step, ``start()``
        waits for it to exit and then runs a fresh loop.
        """
        while self._running:
            if not self._stopping or self._finished is None:
                return
            await self._finished.wait()
        # No await between the check above and this assignment
        self._running = True
        cancel = asyncio.Event()
        finished = asyncio.Event()
        self._cancel = cancel
        self._finished = finished
        logger.debug("Queue worker started")
        try:
            await self._poll(cancel)
        finally:
            self._running = False
            if self._cancel is cancel:
                self._cancel = None
            finished.set()
            logger.debug("Queue worker stopped")

    def stop(self) -> None:
        """Ask the loop to exit after the message currently in flight"""
        if self._cancel is not None:
            self._cancel.set()

    def kick(self) -> Optional[asyncio.Task]:
        """Start the loop in the background if it is idle"""
        active = self._running or (self._task is not None and not self._task.done())
        if active and not self._stopping:
            # Rows enqueued while the loop was reading an empty queue
            self._kicked = True
            return self._task
        self._task = asyncio.create_task(self.start())
        self._task.add_done_callback(self._on_task_done)
        return self._task

    async def wait_idle(self) -> None:
        """Wait for the background loop started by ``kick()`` to finish"""
        task = self._task
        if task is not None and not task.done():
            await asyncio.shield(task)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Queue worker crashed",
                extra_data={"error": str(exc)},
                exc_info=exc,
            )

    async def _poll(self, cancel: asyncio.Event) -> None:
        while not cancel.is_set():
            self._kicked = False
            messages = await self._queue.dequeue(BATCH_SIZE)
            if not messages:
                if self._kicked:
                    continue
                return

            for message in messages:
                if cancel.is_set():
                    break
                await self.process_message(message)

            if cancel.is_set():
                return
            await self._sleep(self._poll_interval_seconds)

    async def process_message(self, message: QueueMessage) -> None:
        """Deliver one queued message, then delete it or record the failure"""
        try:
            if not message.thread_id and self._lookup_thread_id is not None:
                # Enqueued just before the session's thread was created
                message.thread_id = self._lookup_thread_id(message.session_id)

            if not message.thread_id:
                await self._create_thread(message)
                return

            await self._webhook.post_webhook(
                self._webhook_url,
                {
                    **message.webhook_body,
                    "username": self._username,
                    "avatar_url": self._avatar_url,
                },
                thread_id=message.thread_id,
            )
            await self._queue.delete(message.id)
        except Exception as e:
            await self._handle_failure(message, e)

    async def _create_thread(self, message: QueueMessage) -> None:
        thread_name = self._build_thread_name(message.session_id)
        result = await self._webhook.post_webhook(
            self._webhook_url,
            {
                **message.webhook_body,
                "thread_name": thread_name,
                "username": self._username,
                "avatar_url": self._avatar_url,
            },
            wait=True,
        )

        if result is not None and result.channel_id:
            # Listener first: anything enqueued after this point already
            # carries the id, anything enqueued before is caught by the update
            if self._thread_listener is not None:
                self._thread_listener.on_thread_created(
                    message.session_id, result.channel_id
                )
            await self._queue.update_thread_id(message.session_id, result.channel_id)
            message.thread_id = result.channel_id
        else:
            logger.warning(
                "Thread creation response carried no thread id",
                extra_data={
                    "message_id": message.id,
                    "session_id": message.session_id,
                    "deleted": self._delete_on_missing_thread_id,
                }
            )
            if not self._delete_on_missing_thread_id:
                # Counted as a failed attempt; the retry creates a new thread
                raise WebhookDeliveryError(
                    "Thread creation response carried no thread id",
                    details={"session_id": message.session_id},
                )

        # The creation call already delivered this message's content
        await self._queue.delete(message.id)

    async def _handle_failure(self, message: QueueMessage, error: Exception) -> None:
        current_retry = message.retry_count or 0
        error_text = str(error) or type(error).__name__

        if current_retry < self._max_retries:
            await self._queue.update_retry_count(
                message.id, current_retry + 1, error_text
            )
            logger.warning(
                "Notification delivery failed, will retry",
                extra_data={
                    "message_id": message.id,
                    "session_id": message.session_id,
                    "retry_count": current_retry + 1,
                    "max_retries": self._max_retries,
                    "error": error_text,
                }
            )
            await self._alerts.maybe_alert_error(
                f"discord_queue_retry:{message.id}",
                "Discord notification retry",
                f"Failed to send notification. Retry "
                f"{current_retry + 1}/{self._max_retries}. Error: {error_text}",
                "warning",
            )
            return

        logger.error(
            "Notification discarded after max retries",
            extra_data={
                "message_id": message.id,
                "session_id": message.session_id,
                "max_retries": self._max_retries,
                "error": error_text,
            }
        )
        await self._alerts.maybe_alert_error(
            f"discord_queue_error:{message.id}",
            "Discord notification failed",
            f"Failed to send notification after {self._max_retries} retries. "
            f"Message discarded.",
            "error",
        )
        await self._queue.delete(message.id)
