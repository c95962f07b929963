"""
schema.py — Game Request/Response Models
=========================================
Pydantic models for the /api/games endpoints.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from klopjacht.apps.games.models import (
    EndReason,
    ExtractionPoint,
    GameResults,
    GameSettings,
    GameStatus,
    GeoPoint,
    TaskSpec,
)
from klopjacht.apps.players.models import PlayerRole


# ═══════════════════════════════════════════════════
# REQUEST MODELS
# ═══════════════════════════════════════════════════

class GameCreateRequest(BaseModel):
    name: str = Field(..., min_length=3, max_length=100, description="Game name")
    description: Optional[str] = Field(None, max_length=500)
    duration: int = Field(default=120, ge=30, le=480, description="Game duration in minutes")
    extraction_point: ExtractionPoint
    settings: GameSettings = Field(default_factory=GameSettings)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Klopjacht Amsterdam",
                "description": "Zaterdagavond in de binnenstad",
                "duration": 120,
                "extraction_point": {
                    "latitude": 52.3702,
                    "longitude": 4.8952,
                    "address": "Dam, Amsterdam",
                    "radius": 50,
                },
                "settings": {"max_players": 20},
            }
        }


class GameUpdateRequest(BaseModel):
    """Partial update. Only the fields that are sent are changed."""
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    duration: Optional[int] = Field(None, ge=30, le=480)
    extraction_point: Optional[ExtractionPoint] = None
    settings: Optional[GameSettings] = None


class TasksRequest(BaseModel):
    """
    The complete task list of a game, in play order.

    The count is checked by the task ledger so that a wrong count
    surfaces as INVALID_TASK_COUNT rather than a schema error.
    """
    tasks: List[TaskSpec]

    class Config:
        json_schema_extra = {
            "example": {
                "tasks": [
                    {
                        "question": "Hoeveel treden heeft de trap van het Paleis?",
                        "answer": "12",
                        "location": {"latitude": 52.3731, "longitude": 4.8913},
                    }
                ]
            }
        }


# Reasons a game master can give. Expiry and cancellation are recorded by the engine.
MANUAL_END_REASONS = (EndReason.MANUAL, EndReason.ALL_FUGITIVES_CAUGHT, EndReason.FUGITIVES_ESCAPED)


class EndGameRequest(BaseModel):
    reason: EndReason = EndReason.MANUAL

    @field_validator("reason")
    @classmethod
    def manual_reason(cls, v: EndReason) -> EndReason:
        if v not in MANUAL_END_REASONS:
            raise ValueError(f"reason {v.value} cannot be given for a manual end")
        return v


class MessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=500)
    sender: str = Field(default="Game Master", max_length=50)


class PredefinedSlotCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    role: PlayerRole
    team: Optional[str] = Field(None, max_length=50)
    password: str = Field(..., min_length=3, max_length=20)


class PredefinedPlayersRequest(BaseModel):
    players: List[PredefinedSlotCreate] = Field(..., min_length=1)


class PredefinedSlotUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    role: Optional[PlayerRole] = None
    team: Optional[str] = Field(None, max_length=50)
    password: Optional[str] = Field(None, min_length=3, max_length=20)


# ═══════════════════════════════════════════════════
# RESPONSE MODELS
# ═══════════════════════════════════════════════════

class PlayerCounts(BaseModel):
    total: int = 0
    fugitives: int = 0
    hunters: int = 0
    spectators: int = 0


class GameResponse(BaseModel):
    """Admin view of a game."""
    id: str
    game_code: str = Field(..., description="6 character join code (ABC123)")
    name: str
    description: Optional[str] = None
    status: GameStatus
    duration: int
    extraction_point: ExtractionPoint
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    remaining_time: Optional[int] = Field(None, description="Seconds of playing time left")
    settings: GameSettings
    results: GameResults
    task_count: int
    player_counts: PlayerCounts
    created_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class GameListResponse(BaseModel):
    games: List[GameResponse]
    pagination: Pagination


class TaskAdminView(BaseModel):
    id: str
    task_number: int
    question: str
    answer: str
    location: GeoPoint
    code: str
    completions: int


class TaskPublicView(BaseModel):
    task_number: int
    question: str
    location: GeoPoint


class SlotView(BaseModel):
    """Predefined slot without its password."""
    id: str
    name: str
    role: PlayerRole
    team: Optional[str] = None
    is_joined: bool
    player_id: Optional[str] = None


class PublicGameResponse(BaseModel):
    """What a player sees after entering a game code."""
    id: str
    game_code: str
    name: str
    description: Optional[str] = None
    status: GameStatus
    duration: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    remaining_time: Optional[int] = None
    extraction_point: ExtractionPoint
    player_count: int
    max_players: int
    available_slots: List[SlotView]
    predefined_players: List[SlotView]
    tasks: List[TaskPublicView]


class MessageResponse(BaseModel):
    message: str
    sender: str
    sent_at: datetime
    recipients: int
