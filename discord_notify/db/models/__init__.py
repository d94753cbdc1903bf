"""
Database Models
"""
from discord_notify.db.models.queued_message import QueuedMessage, QueueMessage

__all__ = ["QueuedMessage", "QueueMessage"]
