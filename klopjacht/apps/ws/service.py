"""
service.py — WebSocket Connection Manager
==========================================
Central registry of WebSocket connections, grouped per game room.

RESPONSIBILITIES:
-----------------
✅ Register/remove connections
✅ Broadcast (everyone in a game room)
✅ Notifier for the game engine (`publish`)

USAGE:
------
    manager = ConnectionManager()

    # Someone subscribed to a game
    await manager.connect("game123", "player-id", websocket)

    # Everyone in the room
    await manager.broadcast("game123", {"event": "game_started", ...})

    # Engine side
    await manager.publish("game123", "task_completed", {...})
"""

import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from klopjacht.apps.ws.schema import ServerEvent

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Keeps WebSocket connections per game room.

    Structure:
    {
        "game_id_1": {
            "<player_id>": WebSocket,
            "watch-3f2a": WebSocket,     # observer without a player id
        },
    }
    """

    def __init__(self):
        # game_id → {connection_id → WebSocket}
        self.active_connections: Dict[str, Dict[str, WebSocket]] = {}

    async def connect(self, game_id: str, connection_id: str, websocket: WebSocket):
        """
        Accept the socket and add it to the game room.

        The rest of the room is told that someone connected.
        """
        await websocket.accept()

        self.active_connections.setdefault(game_id, {})[connection_id] = websocket
        logger.info(f"✅ {connection_id} connected to game {game_id} ({self.get_connection_count(game_id)} in room)")

        await self.broadcast(
            game_id,
            {
                "event": "player_connected",
                "data": {
                    "player_id": connection_id,
                    "connected": self.get_connected_ids(game_id),
                },
            },
            exclude=[connection_id],
        )

    def disconnect(self, game_id: str, connection_id: str):
        room = self.active_connections.get(game_id)
        if room is None:
            return
        if room.pop(connection_id, None) is not None:
            logger.info(f"❌ {connection_id} disconnected from game {game_id}")
        if not room:
            del self.active_connections[game_id]
            logger.info(f"🗑️  Room for game {game_id} closed (no connections)")

    async def broadcast(
        self,
        game_id: str,
        message: dict,
        exclude: Optional[list[str]] = None,
    ):
        """
        Send a message to every connection in a game room.

        Connections that fail to receive are dropped from the room.
        """
        exclude = exclude or []
        room = self.active_connections.get(game_id)
        if not room:
            logger.debug(f"No connections for game {game_id}, {message.get('event')} dropped")
            return

        payload = jsonable_encoder(message)
        dead = []
        for connection_id, websocket in list(room.items()):
            if connection_id in exclude:
                continue
            try:
                await websocket.send_json(payload)
                logger.debug(f"📢 {payload.get('event')} → {connection_id}")
            except Exception as e:
                logger.error(f"❌ Failed to broadcast to {connection_id}: {e}")
                dead.append(connection_id)

        for connection_id in dead:
            self.disconnect(game_id, connection_id)

    async def publish(self, game_id: str, event: str, data: dict[str, Any]) -> None:
        """Notifier entry point used by the game engine."""
        await self.broadcast(game_id, ServerEvent(event=event, data=data).model_dump())

    def get_connected_ids(self, game_id: str) -> list[str]:
        return list(self.active_connections.get(game_id, {}).keys())

    def get_connection_count(self, game_id: str) -> int:
        return len(self.active_connections.get(game_id, {}))


# ═══════════════════════════════════════════════════
# SINGLETON INSTANCE
# ═══════════════════════════════════════════════════

manager = ConnectionManager()
