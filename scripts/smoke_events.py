"""
Smoke test against a running bridge.

Posts a short session (created, user text, idle) to /api/events and checks
that every call answers 2xx and that the events were accepted. With
DISCORD_WEBHOOK_URL set on the server this produces one real forum thread.

    BASE_URL=http://127.0.0.1:8000 python scripts/smoke_events.py
"""

from __future__ import annotations

import os
import time
import uuid

import httpx

from discord_notify.core.logging import get_logger, setup_logging


logger = get_logger(__name__)


def _base_url() -> str:
    port = os.environ.get("PORT", "8000")
    return os.environ.get("BASE_URL", f"http://127.0.0.1:{port}").rstrip("/")


def _timeout_seconds() -> float:
    return float(os.environ.get("SMOKE_TIMEOUT_SECONDS", "10"))


def _headers() -> dict[str, str]:
    token = os.environ.get("BRIDGE_SECRET_TOKEN", "")
    return {"X-Bridge-Token": token} if token else {}


def _session_events(session_id: str) -> list[dict]:
    now_ms = int(time.time() * 1000)
    return [
        {
            "type": "session.created",
            "properties": {
                "info": {"id": session_id, "title": "smoke test", "time": {"created": now_ms}},
            },
        },
        {
            "type": "message.part.updated",
            "properties": {
                "part": {
                    "sessionID": session_id,
                    "messageID": f"{session_id}-m1",
                    "id": f"{session_id}-p1",
                    "type": "text",
                    "text": "Smoke test: please ignore",
                    "time": {"start": now_ms, "end": now_ms},
                },
            },
        },
        {
            "type": "message.updated",
            "properties": {"info": {"id": f"{session_id}-m1", "role": "user"}},
        },
        {"type": "session.idle", "properties": {"sessionID": session_id}},
    ]


def _check_status(resp: httpx.Response, expected_family: int = 2) -> None:
    family = resp.status_code // 100
    if family != expected_family:
        raise RuntimeError(
            f"Unexpected status {resp.status_code} for {resp.request.method} {resp.request.url}. "
            f"Body: {(resp.text or '')[:500]}"
        )


def main() -> None:
    setup_logging(level="INFO", json_format=False)

    base_url = _base_url()
    timeout = _timeout_seconds()
    session_id = f"smoke-{uuid.uuid4().hex[:8]}"

    logger.info(
        "Starting smoke test",
        extra_data={"base_url": base_url, "session_id": session_id}
    )

    with httpx.Client(timeout=timeout, headers=_headers()) as client:
        resp = client.get(f"{base_url}/health")
        _check_status(resp)

        for event in _session_events(session_id):
            resp = client.post(f"{base_url}/api/events", json=event)
            _check_status(resp)
            if not resp.json().get("accepted"):
                raise RuntimeError(
                    f"Event {event['type']} was not accepted; is DISCORD_WEBHOOK_URL set?"
                )

        resp = client.get(f"{base_url}/api/queue")
        _check_status(resp)
        logger.info("Queue status", extra_data=resp.json())

    logger.info("Smoke test completed successfully")


if __name__ == "__main__":
    main()
