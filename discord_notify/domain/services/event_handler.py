"""
Event Handler - turns host session events into queued Discord messages

Messages of a session are buffered until the bridge knows enough to name the
session's thread: either the thread already exists or the first user text
has arrived. ``session.idle`` and ``session.error`` flush regardless, falling
back to the session title or id for the thread name.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Optional, Protocol

from discord_notify.core.logging import get_logger
from discord_notify.domain.services.formatting import (
    COLORS,
    MAX_DESCRIPTION_LENGTH,
    MAX_THREAD_NAME_LENGTH,
    build_fields,
    build_mention,
    build_todo_checklist,
    is_input_context_text,
    normalize_thread_title,
    safe_string,
    to_iso_timestamp,
    truncate_text,
)
from discord_notify.domain.services.persistent_queue import PersistentQueue
from discord_notify.domain.services.session_threads import SessionThreadState

logger = get_logger(__name__)

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
_ROLES = (USER_ROLE, ASSISTANT_ROLE)


class WorkerTrigger(Protocol):
    def kick(self) -> Any:
        ...


class EventHandler:
    """
    Stateful translator from host events to webhook bodies.

    All per-session state lives in memory for the process lifetime.
    """

    def __init__(
        self,
        queue: PersistentQueue,
        worker: WorkerTrigger,
        threads: SessionThreadState,
        *,
        webhook_url: str | None,
        complete_mention: str | None = None,
        permission_mention: str | None = None,
        exclude_input_context: bool = True,
        include_last_message: bool = True,
        send_params: frozenset[str] = frozenset(),
    ):
        self._queue = queue
        self._worker = worker
        self._threads = threads
        self._webhook_url = webhook_url
        self._complete_mention = complete_mention
        self._permission_mention = permission_mention
        self._exclude_input_context = exclude_input_context
        self._include_last_message = include_last_message
        self._send_params = send_params

        self._pending_bodies: dict[str, list[dict[str, Any]]] = {}
        self._first_user_text: dict[str, str] = {}
        self._session_titles: dict[str, str] = {}
        self._last_assistant_text: dict[str, str] = {}
        self._message_roles: dict[str, str] = {}
        self._pending_parts: dict[str, list[dict[str, Any]]] = {}
        self._part_snapshots: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Thread naming
    # ------------------------------------------------------------------

    def build_thread_name(self, session_id: str) -> str:
        """First user text, then session title, then ``session <id>``"""
        candidates = (
            self._first_user_text.get(session_id),
            self._session_titles.get(session_id),
            f"session {session_id}" if session_id else "",
        )
        for candidate in candidates:
            name = normalize_thread_title(candidate)
            if name:
                return name[:MAX_THREAD_NAME_LENGTH]
        return "untitled"

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle(self, event: dict[str, Any]) -> bool:
        """
        Process one host event.

        Returns True when the event was handled. Never raises: a notification
        failure must not break the host.
        """
        if not self._webhook_url or not isinstance(event, dict):
            return False
        event_type = event.get("type")

        properties = event.get("properties") or {}
        if not isinstance(properties, dict):
            properties = {}

        handler = self._handlers.get(event_type)
        if handler is None:
            return False

        try:
            await handler(self, properties)
        except Exception as e:
            logger.error(
                f"Failed handling event {event_type}",
                extra_data={"event_type": event_type, "error": str(e)},
                exc_info=True
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def _on_session_created(self, properties: dict[str, Any]) -> None:
        info = _as_dict(properties.get("info"))
        session_id = _as_str(info.get("id"))
        if not session_id:
            return

        title = _as_str(info.get("title")) or "(untitled)"
        share_url = _as_str(_as_dict(info.get("share")).get("url"))

        embed = _embed(
            title="Session started",
            description=title,
            url=share_url,
            color=COLORS["info"],
            timestamp=to_iso_timestamp(_as_dict(info.get("time")).get("created")),
            fields=self._fields([
                ("sessionID", session_id),
                ("projectID", info.get("projectID")),
                ("directory", info.get("directory")),
                ("share", share_url),
            ]),
        )

        async with self._lock(session_id):
            self._session_titles[session_id] = title
            self._buffer(session_id, {"embeds": [embed]})
            if self._should_flush(session_id):
                await self._flush(session_id)

    async def _on_permission(self, properties: dict[str, Any]) -> None:
        session_id = _as_str(properties.get("sessionID"))
        if not session_id:
            return

        tool = _as_dict(properties.get("tool"))
        title = _as_str(properties.get("title"))
        permission = properties.get("permission") or properties.get("type")
        patterns = properties.get("patterns") or properties.get("pattern")

        embed = _embed(
            title="Permission required",
            description=title,
            color=COLORS["warning"],
            timestamp=to_iso_timestamp(_as_dict(properties.get("time")).get("created")),
            fields=self._fields([
                ("sessionID", session_id),
                ("permissionID", properties.get("id")),
                ("permission", permission),
                ("patterns", patterns),
                ("messageID", tool.get("messageID") or properties.get("messageID")),
                ("callID", tool.get("callID") or properties.get("callID")),
            ]),
        )

        body: dict[str, Any] = {"embeds": [embed]}
        mention = build_mention(
            self._permission_mention, "DISCORD_WEBHOOK_PERMISSION_MENTION"
        )
        if mention:
            summary = title or safe_string(permission) or "required"
            body["content"] = f"{mention['content']} Permission: {summary}"
            body["allowed_mentions"] = mention["allowed_mentions"]

        async with self._lock(session_id):
            self._buffer(session_id, body)
            if self._should_flush(session_id):
                await self._flush(session_id)

    async def _on_session_idle(self, properties: dict[str, Any]) -> None:
        session_id = _as_str(properties.get("sessionID"))
        if not session_id:
            return

        description = None
        if self._include_last_message:
            last_text = self._last_assistant_text.get(session_id)
            if last_text:
                description = truncate_text(last_text, MAX_DESCRIPTION_LENGTH)

        embed = _embed(
            title="Session completed",
            description=description,
            color=COLORS["success"],
            fields=self._fields([("sessionID", session_id)]),
        )
        body = self._with_complete_mention({"embeds": [embed]}, "Session completed")

        async with self._lock(session_id):
            self._buffer(session_id, body)
            await self._flush(session_id)

    async def _on_session_error(self, properties: dict[str, Any]) -> None:
        session_id = _as_str(properties.get("sessionID"))
        if not session_id:
            return

        error_text = safe_string(properties.get("error"))
        embed = _embed(
            title="Session error",
            description=truncate_text(error_text, MAX_DESCRIPTION_LENGTH) if error_text else None,
            color=COLORS["error"],
            fields=self._fields([("sessionID", session_id)]),
        )
        body = self._with_complete_mention({"embeds": [embed]}, "Session error")

        async with self._lock(session_id):
            self._buffer(session_id, body)
            await self._flush(session_id)

    async def _on_todo_updated(self, properties: dict[str, Any]) -> None:
        session_id = _as_str(properties.get("sessionID"))
        if not session_id:
            return

        embed = _embed(
            title="Todo updated",
            description=build_todo_checklist(properties.get("todos")),
            color=COLORS["info"],
            fields=self._fields([("sessionID", session_id)]),
        )

        async with self._lock(session_id):
            self._buffer(session_id, {"embeds": [embed]})
            if self._should_flush(session_id):
                await self._flush(session_id)

    async def _on_message_updated(self, properties: dict[str, Any]) -> None:
        info = _as_dict(properties.get("info"))
        message_id = _as_str(info.get("id"))
        role = info.get("role")
        if not message_id or role not in _ROLES:
            return

        # Roles are only tracked here; the text arrives as parts
        self._message_roles[message_id] = role

        for part in self._pending_parts.pop(message_id, []):
            await self._handle_text_part(part, role)

    async def _on_message_part_updated(self, properties: dict[str, Any]) -> None:
        part = _as_dict(properties.get("part"))
        session_id = _as_str(part.get("sessionID"))
        message_id = _as_str(part.get("messageID"))
        part_id = _as_str(part.get("id"))
        part_type = _as_str(part.get("type"))
        if not session_id or not message_id or not part_id or not part_type:
            return

        # reasoning and tool parts are not forwarded
        if part_type != "text":
            return

        role = self._message_roles.get(message_id)
        if role not in _ROLES:
            self._pending_parts.setdefault(message_id, []).append(part)
            return

        await self._handle_text_part(part, role)

    _handlers = {
        "session.created": _on_session_created,
        "permission.updated": _on_permission,
        "permission.asked": _on_permission,
        "session.idle": _on_session_idle,
        "session.error": _on_session_error,
        "todo.updated": _on_todo_updated,
        "message.updated": _on_message_updated,
        "message.part.updated": _on_message_part_updated,
    }

    # ------------------------------------------------------------------
    # Text parts
    # ------------------------------------------------------------------

    async def _handle_text_part(self, part: dict[str, Any], role: str) -> None:
        session_id = _as_str(part.get("sessionID"))
        message_id = _as_str(part.get("messageID"))
        part_id = _as_str(part.get("id"))
        if not session_id or not part_id:
            return

        # Streaming assistant parts are only sent once complete
        if role == ASSISTANT_ROLE and not _as_dict(part.get("time")).get("end"):
            return

        text = safe_string(part.get("text"))

        async with self._lock(session_id):
            if (
                role == USER_ROLE
                and self._exclude_input_context
                and is_input_context_text(text)
            ):
                self._set_snapshot(part_id, {"type": "text", "role": role, "skipped": "input_context"})
                return

            if not self._set_snapshot(part_id, {"type": "text", "role": role, "text": text}):
                return

            if not text.strip():
                return

            if role == USER_ROLE:
                if session_id not in self._first_user_text:
                    normalized = normalize_thread_title(text)
                    if normalized:
                        self._first_user_text[session_id] = normalized
            else:
                self._last_assistant_text[session_id] = text

            embed = _embed(
                title="User says" if role == USER_ROLE else "Agent says",
                description=truncate_text(text, MAX_DESCRIPTION_LENGTH),
                color=COLORS["info"],
                fields=self._fields([
                    ("sessionID", session_id),
                    ("messageID", message_id),
                    ("partID", part_id),
                    ("role", role),
                ]),
            )
            self._buffer(session_id, {"embeds": [embed]})

            if role == USER_ROLE or self._should_flush(session_id):
                await self._flush(session_id)

    # ------------------------------------------------------------------
    # Buffering
    # ------------------------------------------------------------------

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def _buffer(self, session_id: str, body: dict[str, Any]) -> None:
        self._pending_bodies.setdefault(session_id, []).append(body)

    def _should_flush(self, session_id: str) -> bool:
        return self._threads.has(session_id) or session_id in self._first_user_text

    async def _flush(self, session_id: str) -> None:
        """Move the session's buffered bodies into the durable queue"""
        bodies = self._pending_bodies.pop(session_id, [])
        if not bodies:
            return

        for index, body in enumerate(bodies):
            try:
                await self._queue.enqueue(
                    session_id, self._threads.get(session_id), body
                )
            except Exception:
                # Keep what was not stored for the next flush
                self._pending_bodies[session_id] = (
                    bodies[index:] + self._pending_bodies.get(session_id, [])
                )
                raise

        logger.debug(
            "Session messages queued",
            extra_data={"session_id": session_id, "count": len(bodies)}
        )
        self._worker.kick()

    def _set_snapshot(self, part_id: str, snapshot: dict[str, Any]) -> bool:
        """Remember the part's last content; False when it did not change"""
        encoded = json.dumps(snapshot, ensure_ascii=False, sort_keys=True)
        if self._part_snapshots.get(part_id) == encoded:
            return False
        self._part_snapshots[part_id] = encoded
        return True

    def _fields(self, pairs: list[tuple[str, Any]]) -> Optional[list[dict[str, Any]]]:
        return build_fields(
            [(name, value) for name, value in pairs if name in self._send_params]
        )

    def _with_complete_mention(self, body: dict[str, Any], label: str) -> dict[str, Any]:
        mention = build_mention(self._complete_mention, "DISCORD_WEBHOOK_COMPLETE_MENTION")
        if mention:
            body["content"] = f"{mention['content']} {label}"
            body["allowed_mentions"] = mention["allowed_mentions"]
        return body


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _embed(**values: Any) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}
