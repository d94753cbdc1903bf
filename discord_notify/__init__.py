"""
Discord Notify Bridge

Forwards agent-session events to a Discord webhook through a durable queue.
"""
