"""
router.py — WebSocket Router
=============================
Real-time channel per game.

ENDPOINT:
---------
WS /ws/{game_id}?player_id=<id>

Without `player_id` the connection only listens (game master screen,
spectator map).

FLOW:
-----
1. Client connects, joins the game room
2. Player (if any) is marked online
3. Event loop: heartbeat, update_location, chat_message
4. On disconnect the player is marked offline
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as SchemaValidationError

from klopjacht.apps.games.models import get_game
from klopjacht.apps.players.models import PlayerRecord, get_player, modify_player
from klopjacht.apps.ws.schema import ChatMessageData, LocationUpdateData
from klopjacht.apps.ws.service import manager
from klopjacht.core.dependencies import Engine, get_engine
from klopjacht.core.errors import GameError

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════
# ROUTER SETUP
# ═══════════════════════════════════════════════════

router = APIRouter(tags=["websocket"])


def _set_online(player_id: str, online: bool, engine: Engine) -> Optional[PlayerRecord]:
    now = engine.clock.now()

    def _apply(p: PlayerRecord) -> PlayerRecord:
        p.is_online = online
        p.last_seen = now
        return p

    return modify_player(player_id, _apply)


async def _send_error(websocket: WebSocket, code: str, message: str):
    await websocket.send_json({
        "event": "error",
        "data": {"code": code, "message": message},
    })


# ═══════════════════════════════════════════════════
# WEBSOCKET ENDPOINT
# ═══════════════════════════════════════════════════

@router.websocket("/ws/{game_id}")
async def websocket_endpoint(
    websocket: WebSocket,
    game_id: str,
    player_id: Optional[str] = Query(None),
    engine: Engine = Depends(get_engine),
):
    """
    Client message format:
        {"event": "update_location", "data": {"latitude": 52.37, "longitude": 4.89}}

    Server message format:
        {"event": "location_updated", "data": {...}}
    """
    game = get_game(game_id)
    if game is None:
        await websocket.close(code=4404)
        return

    player = None
    if player_id is not None:
        player = get_player(player_id)
        if player is None or player.game_id != game_id:
            await websocket.close(code=4403)
            return

    connection_id = player_id or f"watch-{uuid.uuid4().hex[:8]}"
    await manager.connect(game_id, connection_id, websocket)
    if player is not None:
        _set_online(player.id, True, engine)

    await websocket.send_json({
        "event": "connected",
        "data": {
            "game_id": game_id,
            "player_id": player_id,
            "game_status": game.status.value,
            "heartbeat_interval": engine.settings.WS_HEARTBEAT_INTERVAL,
            "connected": manager.get_connected_ids(game_id),
        },
    })

    # ═══ MESSAGE LOOP ═══
    try:
        while True:
            data = await websocket.receive_json()
            if not isinstance(data, dict) or "event" not in data:
                await _send_error(websocket, "invalid_format", "Message must be JSON with an 'event' field")
                continue

            await handle_client_event(
                engine=engine,
                game_id=game_id,
                player=player,
                event_type=data["event"],
                event_data=data.get("data") or {},
                websocket=websocket,
            )

    except WebSocketDisconnect:
        logger.info(f"🔌 WebSocket disconnected: {game_id}/{connection_id}")
    except Exception as e:
        logger.error(f"❌ WebSocket error for {game_id}/{connection_id}: {e}")
    finally:
        manager.disconnect(game_id, connection_id)
        if player is not None:
            _set_online(player.id, False, engine)
            await manager.broadcast(game_id, {
                "event": "player_disconnected",
                "data": {
                    "player_id": player.id,
                    "player_name": player.name,
                    "connected": manager.get_connected_ids(game_id),
                },
            })


# ═══════════════════════════════════════════════════
# EVENT HANDLERS
# ═══════════════════════════════════════════════════

async def handle_client_event(
    engine: Engine,
    game_id: str,
    player: Optional[PlayerRecord],
    event_type: str,
    event_data: dict,
    websocket: WebSocket,
):
    """
    Event Types:
        - heartbeat: keep-alive, refreshes last seen
        - update_location: position fix (players only)
        - chat_message: text to the whole room
    """

    # ═══ HEARTBEAT ═══
    if event_type == "heartbeat":
        if player is not None:
            _set_online(player.id, True, engine)
        await websocket.send_json({
            "event": "heartbeat_ack",
            "data": {"timestamp": engine.clock.now().isoformat()},
        })

    # ═══ LOCATION ═══
    elif event_type == "update_location":
        if player is None:
            await _send_error(websocket, "player_required", "Only players can send locations")
            return
        try:
            fix = LocationUpdateData.model_validate(event_data)
            result = await engine.tracker.update_location(
                player.id,
                fix.latitude,
                fix.longitude,
                accuracy=fix.accuracy,
                trigger=fix.trigger,
            )
        except SchemaValidationError as e:
            await _send_error(websocket, "invalid_location", str(e))
            return
        except GameError as e:
            await _send_error(websocket, e.code, e.message)
            return

        await websocket.send_json({
            "event": "location_update_success",
            "data": {
                "location": result.player.current_location.model_dump(mode="json"),
                "escaped": result.escaped,
            },
        })

    # ═══ CHAT ═══
    elif event_type == "chat_message":
        try:
            chat = ChatMessageData.model_validate(event_data)
        except SchemaValidationError:
            await _send_error(websocket, "empty_content", "Chat message cannot be empty")
            return

        await manager.broadcast(game_id, {
            "event": "chat_message",
            "data": {
                "player_id": player.id if player else None,
                "player_name": player.name if player else "Game Master",
                "message": chat.message,
                "timestamp": engine.clock.now(),
            },
        })

    # ═══ UNKNOWN EVENT ═══
    else:
        await _send_error(websocket, "unknown_event", f"Unknown event type: {event_type}")
        logger.warning(f"⚠️  Unknown event on game {game_id}: {event_type}")
