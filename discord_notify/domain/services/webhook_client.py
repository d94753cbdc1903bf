"""
Discord Webhook Client

Posts execute-webhook payloads, optionally into a forum thread, and recovers
from a single 429 by waiting and retrying once.
"""
from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from discord_notify.core.exceptions import WebhookDeliveryError, WebhookRateLimitError
from discord_notify.core.logging import get_logger
from discord_notify.domain.services.alert_service import AlertSink

logger = get_logger(__name__)

DEFAULT_WAIT_ON_RATE_LIMIT_SECONDS = 10.0

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class WebhookMessage:
    """Message created by an execute-webhook call made with ``wait=true``"""
    id: str
    channel_id: str


def build_webhook_url(
    webhook_url: str,
    *,
    thread_id: str | None = None,
    wait: bool = False,
) -> str:
    """Merge ``thread_id`` / ``wait`` into the webhook URL's query string"""
    params: dict[str, str] = {}
    if thread_id:
        params["thread_id"] = thread_id
    if wait:
        params["wait"] = "true"
    if not params:
        return webhook_url
    return str(httpx.URL(webhook_url).copy_merge_params(params))


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
    )


def _parse_rate_limit_wait(response: httpx.Response, default_seconds: float) -> float:
    """
    Seconds to wait after a 429.

    Discord puts ``retry_after`` (seconds) in the JSON body; the Retry-After
    header is the fallback, then the configured default.
    """
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and _is_number(payload.get("retry_after")):
        return float(payload["retry_after"])

    header = response.headers.get("Retry-After")
    if header is not None:
        try:
            seconds = float(header.strip())
        except ValueError:
            seconds = None
        if seconds is not None and _is_number(seconds):
            return seconds

    return default_seconds


def _parse_webhook_message(response: httpx.Response) -> Optional[WebhookMessage]:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    message_id = payload.get("id")
    channel_id = payload.get("channel_id")
    if not isinstance(message_id, str) or not isinstance(channel_id, str):
        return None
    return WebhookMessage(id=message_id, channel_id=channel_id)


class WebhookClient:
    """
    Thin transport over the Discord execute-webhook endpoint.

    Args:
        client: shared httpx client; when omitted a short-lived client is
            opened per call
        alerts: sink notified about rate limiting and rejected payloads
        show_error_alert: disables alerts when False
        wait_on_rate_limit_seconds: wait used when a 429 carries no hint
        sleep: awaited between the 429 and the retry
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        alerts: Optional[AlertSink] = None,
        show_error_alert: bool = True,
        wait_on_rate_limit_seconds: float = DEFAULT_WAIT_ON_RATE_LIMIT_SECONDS,
        timeout_seconds: float = 30.0,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self._client = client
        self._alerts = alerts
        self._show_error_alert = show_error_alert
        self._wait_on_rate_limit_seconds = wait_on_rate_limit_seconds
        self._timeout_seconds = timeout_seconds
        self._sleep = sleep

    async def post_webhook(
        self,
        webhook_url: str,
        body: dict[str, Any],
        *,
        thread_id: str | None = None,
        wait: bool = False,
    ) -> Optional[WebhookMessage]:
        """
        Execute the webhook.

        Returns the created message when ``wait`` is set and Discord answered
        with string ``id`` and ``channel_id``; None otherwise.

        Raises:
            WebhookRateLimitError: still 429 after the single retry
            WebhookDeliveryError: any other non-2xx status
            httpx.HTTPError: network failures are not wrapped
        """
        url = build_webhook_url(webhook_url, thread_id=thread_id, wait=wait)
        payload = {k: v for k, v in body.items() if v is not None}

        response = await self._send(url, payload)

        if response.status_code == 429:
            wait_seconds = _parse_rate_limit_wait(
                response, self._wait_on_rate_limit_seconds
            )
            logger.warning(
                "Discord rate limited the webhook, retrying once",
                extra_data={
                    "wait_seconds": wait_seconds,
                    "thread_id": thread_id,
                }
            )
            await self._sleep(wait_seconds)
            response = await self._send(url, payload)

            if response.status_code == 429:
                await self._alert(
                    key="discord_rate_limited",
                    title="Discord rate limited",
                    message=(
                        f"Discord webhook still rate limited after waiting "
                        f"{wait_seconds}s."
                    ),
                    variant="warning",
                )
                raise WebhookRateLimitError(
                    f"Discord webhook rate limited: {response.status_code} "
                    f"{(response.text or '')[:500]}".strip(),
                    details={
                        "status_code": response.status_code,
                        "retry_after_seconds": wait_seconds,
                    },
                )

        if not response.is_success:
            await self._alert(
                key=f"discord_webhook_error:{response.status_code}",
                title="Discord webhook error",
                message=f"Discord webhook failed with status {response.status_code}.",
                variant="error",
            )
            raise WebhookDeliveryError.from_response(response)

        if not wait:
            return None
        return _parse_webhook_message(response)

    async def _send(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, json=payload)
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            return await client.post(url, json=payload)

    async def _alert(self, *, key: str, title: str, message: str, variant: str) -> None:
        if not self._show_error_alert or self._alerts is None:
            return
        await self._alerts.maybe_alert_error(key, title, message, variant)
