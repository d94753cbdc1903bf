"""
Discord payload formatting helpers

Embed limits follow Discord's: field values up to 1024 characters,
descriptions up to 4096, thread names up to 100.
"""
import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from discord_notify.core.logging import get_logger

logger = get_logger(__name__)

COLORS = {
    "info": 0x5865F2,
    "success": 0x57F287,
    "warning": 0xFEE75C,
    "error": 0xED4245,
}

MAX_FIELD_VALUE_LENGTH = 1024
MAX_DESCRIPTION_LENGTH = 4096
MAX_TODO_CONTENT_LENGTH = 200
MAX_THREAD_NAME_LENGTH = 100

# Embed fields that can be switched on through DISCORD_WEBHOOK_SEND_PARAMS
SEND_PARAM_KEYS = frozenset({
    "sessionID",
    "projectID",
    "directory",
    "share",
    "permissionID",
    "permission",
    "patterns",
    "messageID",
    "callID",
    "partID",
    "role",
})

_WHITESPACE_RE = re.compile(r"\s+")

# Mentions Discord actually resolves for webhooks without role/user ids
_PING_MENTIONS = ("@everyone", "@here")


def safe_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def to_iso_timestamp(ms: Any) -> Optional[str]:
    """Epoch milliseconds to ``YYYY-MM-DDTHH:MM:SS.mmmZ``, None for anything else"""
    if isinstance(ms, bool) or not isinstance(ms, (int, float)):
        return None
    if not math.isfinite(ms):
        return None
    seconds, millis = divmod(math.floor(ms), 1000)
    try:
        dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{millis:03d}Z"


def truncate_text(value: str, max_length: int) -> str:
    if len(value) <= max_length:
        return value
    if max_length <= 3:
        return value[:max_length]
    return value[: max_length - 3] + "..."


def build_fields(
    pairs: Iterable[tuple[str, Any]],
    inline: bool = False,
) -> Optional[list[dict[str, Any]]]:
    """Embed fields from ``(name, value)`` pairs; empty values are left out"""
    fields = []
    for name, raw_value in pairs:
        value = safe_string(raw_value)
        if not value:
            continue
        fields.append({
            "name": name,
            "value": truncate_text(value, MAX_FIELD_VALUE_LENGTH),
            "inline": inline,
        })
    return fields or None


def get_todo_status_marker(status: Any) -> str:
    if status == "completed":
        return "[✓]"
    if status == "in_progress":
        return "[▶]"
    return "[ ]"


def normalize_thread_title(value: Any) -> str:
    return _WHITESPACE_RE.sub(" ", safe_string(value)).strip()


def build_todo_checklist(todos: Any) -> str:
    """
    Render todos as a quoted checklist for an embed description.

    Cancelled and empty items are skipped. When items were skipped or the
    description ran out of room a final ``> ...and more`` line is added.
    """
    items = todos if isinstance(todos, list) else []

    lines: list[str] = []
    length = 0
    truncated = False

    for item in items:
        status = item.get("status") if isinstance(item, dict) else None
        if status == "cancelled":
            continue

        content = normalize_thread_title(item.get("content") if isinstance(item, dict) else None)
        if not content:
            continue

        line = f"> {get_todo_status_marker(status)} {truncate_text(content, MAX_TODO_CONTENT_LENGTH)}"
        added = len(line) + (1 if lines else 0)
        if length + added > MAX_DESCRIPTION_LENGTH:
            truncated = True
            break
        lines.append(line)
        length += added

    if not lines:
        return "> (no todos)"

    description = "\n".join(lines)
    if truncated or len(lines) < len(items):
        more = "\n> ...and more"
        if len(description) + len(more) <= MAX_DESCRIPTION_LENGTH:
            description += more
    return description


def build_mention(mention: Optional[str], name_for_log: str) -> Optional[dict[str, Any]]:
    """
    ``content`` / ``allowed_mentions`` for a configured mention.

    Only @everyone and @here are allowed to ping; anything else is sent as
    plain text with pings disabled.
    """
    if not mention:
        return None

    if mention in _PING_MENTIONS:
        return {
            "content": mention,
            "allowed_mentions": {"parse": ["everyone"]},
        }

    logger.warning(
        f"{name_for_log} is set but unsupported: {mention}. "
        "Only @everyone/@here are supported.",
        extra_data={"setting": name_for_log}
    )
    return {
        "content": mention,
        "allowed_mentions": {"parse": []},
    }


def parse_send_params(raw: Optional[str]) -> frozenset[str]:
    """Comma-separated embed field keys; unknown keys are dropped"""
    if not raw:
        return frozenset()
    keys = {part.strip() for part in raw.split(",")}
    return frozenset(key for key in keys if key in SEND_PARAM_KEYS)


def is_input_context_text(text: str) -> bool:
    """Attached file context the host injects as a user text part"""
    return text.lstrip().startswith("<file>")
