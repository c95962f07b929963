"""
notifier.py — Real-time Event Publishing
========================================
The engine announces state changes to a game's subscribers through a
Notifier. Delivery is best-effort: a failed publish is logged and never
undoes or blocks the state change that triggered it.

Message format on the wire:
    {
        "event": "task_completed",
        "data": {...}
    }
"""

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def publish(self, game_id: str, event: str, data: dict[str, Any]) -> None: ...


async def notify(notifier: Notifier | None, game_id: str, event: str, data: dict[str, Any]) -> None:
    if notifier is None:
        return
    try:
        await notifier.publish(game_id, event, data)
    except Exception as e:
        logger.warning(f"⚠️  Failed to publish {event} for game {game_id}: {e}")
