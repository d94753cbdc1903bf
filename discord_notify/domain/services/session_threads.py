"""
Session to thread mapping

Filled by the queue worker once Discord confirms a thread; read by the event
handler to decide whether a new message still goes through thread creation.
Lives for the process lifetime only, queued rows keep their own copy.
"""
from typing import Optional, Protocol

from discord_notify.core.logging import get_logger

logger = get_logger(__name__)


class ThreadCreatedListener(Protocol):
    def on_thread_created(self, session_id: str, thread_id: str) -> None:
        ...


class SessionThreadState:
    """In-memory ``session_id -> thread_id`` map; first thread per session wins"""

    def __init__(self) -> None:
        self._threads: dict[str, str] = {}

    def get(self, session_id: str) -> Optional[str]:
        return self._threads.get(session_id)

    def has(self, session_id: str) -> bool:
        return session_id in self._threads

    def on_thread_created(self, session_id: str, thread_id: str) -> None:
        existing = self._threads.get(session_id)
        if existing is not None:
            if existing != thread_id:
                logger.warning(
                    "Ignoring second thread for session",
                    extra_data={
                        "session_id": session_id,
                        "thread_id": existing,
                        "ignored_thread_id": thread_id,
                    }
                )
            return
        self._threads[session_id] = thread_id
        logger.info(
            "Discord thread created",
            extra_data={"session_id": session_id, "thread_id": thread_id}
        )

    def __len__(self) -> int:
        return len(self._threads)
