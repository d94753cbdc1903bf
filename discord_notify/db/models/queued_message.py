"""
Queued Message Model - durable Discord delivery queue
"""
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Column, Index, Integer, String, Text

from discord_notify.db.database import Base


class QueuedMessage(Base):
    """One pending outbound webhook call; deleted once delivered or discarded"""

    __tablename__ = "discord_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)

    session_id = Column(String, nullable=False)
    # NULL until the session's thread has been created
    thread_id = Column(String, nullable=True)

    # JSON-serialized webhook payload
    webhook_body = Column(Text, nullable=False)

    # Epoch milliseconds; primary FIFO key, id breaks ties
    created_at = Column(Integer, nullable=False)

    # Retry tracking
    retry_count = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_session_created", "session_id", "created_at"),
        # Ids are never reused, alert keys are built from them
        {"sqlite_autoincrement": True},
    )


@dataclass
class QueueMessage:
    """Row handed to the worker, with ``webhook_body`` already decoded"""

    id: int
    session_id: str
    thread_id: str | None
    webhook_body: dict[str, Any]
    created_at: int
    retry_count: int = 0
    last_error: str | None = None
