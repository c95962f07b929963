"""
schema.py — WebSocket Event Schemas
====================================
Message types exchanged over /ws/{game_id}.

MESSAGE FORMAT:
---------------
{
    "event": "event_name",
    "data": {...}
}

Server → Client:
    connected, player_connected, player_disconnected, player_joined,
    game_started, game_paused, game_resumed, game_ended, game_cancelled,
    game_message, task_completed, location_updated, player_escaped,
    player_status_changed, chat_message, heartbeat_ack,
    location_update_success, error

Client → Server:
    heartbeat, update_location, chat_message
"""

from typing import Optional

from pydantic import BaseModel, Field

from klopjacht.apps.players.models import LocationTrigger


class ServerEvent(BaseModel):
    event: str
    data: dict


# ═══════════════════════════════════════════════════
# CLIENT → SERVER PAYLOADS
# ═══════════════════════════════════════════════════

class LocationUpdateData(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)
    trigger: LocationTrigger = LocationTrigger.AUTOMATIC


class ChatMessageData(BaseModel):
    message: str = Field(..., min_length=1, max_length=500)
