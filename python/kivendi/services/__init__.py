"""Business logic services.

This module contains service-layer functions that implement business logic.
Services are called by route handlers, socket loops and scheduled jobs, and
orchestrate database operations. Each module is imported by name, e.g.
`from kivendi.services import boosts as boosts_service`.
"""

from kivendi.services.boosts import expire_boosts
from kivendi.services.conversations import open_conversation
from kivendi.services.notifications import NotificationType, send_push

__all__ = [
    "NotificationType",
    "expire_boosts",
    "open_conversation",
    "send_push",
]
