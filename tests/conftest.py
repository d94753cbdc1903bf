"""
Pytest Configuration and Fixtures

Provides fixtures for:
- In-memory queue database (async)
- A stubbed Discord webhook endpoint (httpx.MockTransport)
- A fully wired bridge and an ASGI test client
"""
# Keep the module-level settings away from the developer's real queue file
import os
os.environ.setdefault("DISCORD_NOTIFY_QUEUE_DB_PATH", ":memory:")

import asyncio
import json
from typing import Any, AsyncGenerator, Callable

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from discord_notify.bridge import NotificationBridge, register_bridge, reset_bridge
from discord_notify.core.config import Settings
from discord_notify.db.database import build_engine, build_session_maker, init_database
from discord_notify.domain.services.persistent_queue import PersistentQueue


TEST_WEBHOOK_URL = "https://discord.invalid/api/webhooks/1/token"


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build Settings for a test without reading .env"""
    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "DISCORD_WEBHOOK_URL": TEST_WEBHOOK_URL,
            "DISCORD_NOTIFY_QUEUE_DB_PATH": ":memory:",
            "DISCORD_WEBHOOK_EXCLUDE_INPUT_CONTEXT": False,
            "QUEUE_POLL_INTERVAL_SECONDS": 0,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make


# ============================================================================
# Database
# ============================================================================

@pytest.fixture(scope="function")
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory queue database with the table created"""
    engine = build_engine(":memory:")
    await init_database(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def queue(async_engine: AsyncEngine) -> PersistentQueue:
    return PersistentQueue(build_session_maker(async_engine))


# ============================================================================
# Fakes
# ============================================================================

class RecordingAlerts:
    """AlertSink that only records calls"""

    def __init__(self) -> None:
        self.calls: list[dict[str, str]] = []

    async def maybe_alert_error(
        self, key: str, title: str, message: str, variant: str = "error"
    ) -> None:
        self.calls.append(
            {"key": key, "title": title, "message": message, "variant": variant}
        )


class RecordingSleep:
    """Injectable sleep that records the requested waits and yields once"""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


class DiscordStub:
    """
    Fake execute-webhook endpoint.

    By default the first ``wait=true`` call creates thread ``thread123`` and
    every other call answers 204. Tests replace ``responder`` to script
    other behaviour.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responder: Callable[[httpx.Request, int], httpx.Response] = self._default
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request, len(self.requests))

    @staticmethod
    def _default(request: httpx.Request, call_number: int) -> httpx.Response:
        if request.url.params.get("wait") == "true":
            return httpx.Response(200, json={"id": f"m{call_number}", "channel_id": "thread123"})
        return httpx.Response(204)

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def alerts() -> RecordingAlerts:
    return RecordingAlerts()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def discord() -> DiscordStub:
    return DiscordStub()


@pytest.fixture
async def http_client(discord: DiscordStub) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=discord.transport) as client:
        yield client


# ============================================================================
# Bridge / API
# ============================================================================

@pytest.fixture
def make_bridge(
    make_settings,
    async_engine: AsyncEngine,
    http_client: httpx.AsyncClient,
    recording_sleep: RecordingSleep,
) -> Callable[..., NotificationBridge]:
    """Bridge wired to the in-memory database and the Discord stub"""
    def _make(**overrides: Any) -> NotificationBridge:
        return NotificationBridge(
            make_settings(**overrides),
            http_client=http_client,
            engine=async_engine,
            sleep=recording_sleep,
        )
    return _make


@pytest.fixture
async def bridge(make_bridge) -> AsyncGenerator[NotificationBridge, None]:
    instance = make_bridge()
    await instance.start()

    yield instance

    instance.worker.stop()
    await instance.worker.wait_idle()


@pytest.fixture
async def test_client(bridge: NotificationBridge):
    """ASGI client against the app with the test bridge registered"""
    from httpx import AsyncClient, ASGITransport
    from discord_notify.main import app

    reset_bridge()
    register_bridge(bridge)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    reset_bridge()
