"""
Persistent Queue - durable FIFO of pending Discord webhook calls

Every operation opens its own session and commits before returning, so a
crash between two calls never leaves a half-applied change behind.
Operations of one queue are serialized: SQLite has a single writer and an
in-memory database shares one connection between sessions. Storage
errors are not caught here; the worker decides what to do with them.
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, List

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from discord_notify.core.logging import get_logger
from discord_notify.db.models.queued_message import QueuedMessage, QueueMessage

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class PersistentQueue:
    """Async CRUD over the ``discord_queue`` table"""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        self._lock = asyncio.Lock()

    async def enqueue(
        self,
        session_id: str,
        thread_id: str | None,
        webhook_body: dict[str, Any],
    ) -> int:
        """Append a message and return its id"""
        row = QueuedMessage(
            session_id=session_id,
            thread_id=thread_id,
            webhook_body=json.dumps(webhook_body, ensure_ascii=False),
            created_at=_now_ms(),
            retry_count=0,
            last_error=None,
        )
        async with self._lock, self._session_maker() as session:
            session.add(row)
            await session.commit()
            message_id = row.id

        logger.debug(
            "Message enqueued",
            extra_data={
                "message_id": message_id,
                "session_id": session_id,
                "has_thread": thread_id is not None,
            }
        )
        return message_id

    async def dequeue(self, limit: int) -> List[QueueMessage]:
        """
        Return up to ``limit`` oldest messages without removing them.

        Order is ``(created_at, id)`` ascending, across all sessions.
        """
        stmt = (
            select(QueuedMessage)
            .order_by(QueuedMessage.created_at.asc(), QueuedMessage.id.asc())
            .limit(limit)
        )
        async with self._lock, self._session_maker() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        return [
            QueueMessage(
                id=row.id,
                session_id=row.session_id,
                thread_id=row.thread_id,
                webhook_body=json.loads(row.webhook_body),
                created_at=row.created_at,
                retry_count=row.retry_count,
                last_error=row.last_error,
            )
            for row in rows
        ]

    async def delete(self, message_id: int) -> None:
        """Remove a message; deleting an unknown id is a no-op"""
        async with self._lock, self._session_maker() as session:
            await session.execute(
                delete(QueuedMessage).where(QueuedMessage.id == message_id)
            )
            await session.commit()

    async def update_thread_id(self, session_id: str, thread_id: str) -> None:
        """Attach ``thread_id`` to every message of the session still lacking one"""
        stmt = (
            update(QueuedMessage)
            .where(
                QueuedMessage.session_id == session_id,
                QueuedMessage.thread_id.is_(None),
            )
            .values(thread_id=thread_id)
        )
        async with self._lock, self._session_maker() as session:
            result = await session.execute(stmt)
            await session.commit()

        logger.debug(
            "Thread id propagated to queued messages",
            extra_data={
                "session_id": session_id,
                "thread_id": thread_id,
                "rows": result.rowcount,
            }
        )

    async def update_retry_count(
        self,
        message_id: int,
        retry_count: int,
        last_error: str | None,
    ) -> None:
        stmt = (
            update(QueuedMessage)
            .where(QueuedMessage.id == message_id)
            .values(retry_count=retry_count, last_error=last_error)
        )
        async with self._lock, self._session_maker() as session:
            await session.execute(stmt)
            await session.commit()

    async def count(self) -> int:
        async with self._lock, self._session_maker() as session:
            result = await session.execute(
                select(func.count()).select_from(QueuedMessage)
            )
            return int(result.scalar_one())
