"""
schema.py — Player Request/Response Models
===========================================
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from klopjacht.apps.games.schema import GameResponse
from klopjacht.apps.players.models import (
    CurrentLocation,
    LocationTrigger,
    MANUAL_STATUSES,
    PlayerRecord,
    PlayerRole,
    PlayerStats,
    PlayerStatus,
)


# ═══════════════════════════════════════════════════
# REQUEST MODELS
# ═══════════════════════════════════════════════════

class JoinRequest(BaseModel):
    """
    Join a game by its code.

    Either claim a predefined slot (`slot_id` + `password`) or join
    freely with a `name` and `role`.
    """
    game_code: str = Field(..., min_length=6, max_length=6)
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    role: Optional[PlayerRole] = None
    team: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=30)
    slot_id: Optional[str] = Field(None, description="Predefined player slot to claim")
    password: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "game_code": "ABC123",
                "name": "Sanne",
                "role": "fugitive",
            }
        }


class RestoreSessionRequest(BaseModel):
    player_id: str
    game_code: str = Field(..., min_length=6, max_length=6)


class LocationUpdateRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)
    trigger: LocationTrigger = LocationTrigger.MANUAL


class StatusUpdateRequest(BaseModel):
    status: PlayerStatus
    caught_by: Optional[str] = Field(None, description="Hunter that made the catch")
    location: Optional[CurrentLocation] = None

    @field_validator("status")
    @classmethod
    def settable_status(cls, v: PlayerStatus) -> PlayerStatus:
        if v not in MANUAL_STATUSES:
            raise ValueError(f"status {v.value} follows the game and cannot be set directly")
        return v


class CompleteTaskRequest(BaseModel):
    task_number: int = Field(..., ge=1, le=6)
    answer: str = Field(..., min_length=1, max_length=100)
    location: Optional[CurrentLocation] = None


# ═══════════════════════════════════════════════════
# RESPONSE MODELS
# ═══════════════════════════════════════════════════

class PlayerResponse(BaseModel):
    id: str
    game_id: str
    name: str
    role: PlayerRole
    status: PlayerStatus
    team: Optional[str] = None
    current_location: CurrentLocation
    tasks_completed: int
    current_task_number: int
    stats: PlayerStats
    caught_at: Optional[datetime] = None
    caught_by: Optional[str] = None
    is_online: bool
    last_seen: Optional[datetime] = None
    joined_at: datetime

    @classmethod
    def from_record(cls, player: PlayerRecord) -> "PlayerResponse":
        return cls(
            id=player.id,
            game_id=player.game_id,
            name=player.name,
            role=player.role,
            status=player.status,
            team=player.team,
            current_location=player.current_location,
            tasks_completed=player.tasks_completed,
            current_task_number=player.current_task_number,
            stats=player.stats,
            caught_at=player.caught_at,
            caught_by=player.caught_by,
            is_online=player.is_online,
            last_seen=player.last_seen,
            joined_at=player.joined_at,
        )


class JoinResponse(BaseModel):
    player: PlayerResponse
    game: GameResponse
    rejoined: bool = Field(False, description="True when an already claimed slot was re-entered")


class PlayerListResponse(BaseModel):
    players: List[PlayerResponse]
    counts: Dict[str, Dict[str, int]] = Field(
        ..., description='{"role": {"fugitive": 2, ...}, "status": {"active": 3, ...}}'
    )


class LocationUpdateResponse(BaseModel):
    player: PlayerResponse
    escaped: bool


class PlayerStatsResponse(BaseModel):
    player_id: str
    name: str
    role: PlayerRole
    status: PlayerStatus
    tasks_completed: int
    current_task_number: int
    distance_traveled: float = Field(..., description="meters")
    time_active: float = Field(..., description="seconds")
    last_location_update: Optional[datetime] = None
    seconds_since_location_update: Optional[int] = None
    is_online: bool
