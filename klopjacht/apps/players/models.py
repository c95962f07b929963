"""
Player records, stored as documents in the shared in-memory store.
A player belongs to exactly one game.
"""

from collections.abc import Callable
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from klopjacht.core.database import PLAYERS, db


class PlayerRole(str, Enum):
    FUGITIVE = "fugitive"
    HUNTER = "hunter"
    SPECTATOR = "spectator"


class PlayerStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    PAUSED = "paused"
    CAUGHT = "caught"
    ESCAPED = "escaped"
    DISCONNECTED = "disconnected"
    COMPLETED = "completed"


# Statuses a game master may set directly. `paused` and `completed` follow the game.
MANUAL_STATUSES = (
    PlayerStatus.WAITING,
    PlayerStatus.ACTIVE,
    PlayerStatus.CAUGHT,
    PlayerStatus.ESCAPED,
    PlayerStatus.DISCONNECTED,
)


class LocationTrigger(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    SURVEILLANCE = "surveillance"
    ATM = "atm"
    PHONE_CALL = "phone_call"
    TASK_COMPLETION = "task_completion"


class CurrentLocation(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    last_updated: datetime | None = None


class LocationSample(BaseModel):
    latitude: float
    longitude: float
    accuracy: float | None = None
    trigger: LocationTrigger = LocationTrigger.MANUAL
    timestamp: datetime


class CompletedTask(BaseModel):
    task_id: str
    task_number: int
    completed_at: datetime
    location: CurrentLocation | None = None


class PlayerStats(BaseModel):
    tasks_completed: int = 0
    distance_traveled: float = 0.0  # meters
    time_active: float = 0.0        # seconds
    last_location_update: datetime | None = None


class PlayerRecord(BaseModel):
    id: str
    game_id: str
    name: str
    role: PlayerRole
    status: PlayerStatus = PlayerStatus.WAITING
    team: str | None = None
    email: str | None = None
    phone_number: str | None = None
    current_location: CurrentLocation = Field(default_factory=CurrentLocation)
    location_history: list[LocationSample] = Field(default_factory=list)
    completed_tasks: list[CompletedTask] = Field(default_factory=list)
    stats: PlayerStats = Field(default_factory=PlayerStats)
    caught_at: datetime | None = None
    caught_by: str | None = None
    caught_location: CurrentLocation | None = None
    is_online: bool = False
    last_seen: datetime | None = None
    joined_at: datetime

    @property
    def tasks_completed(self) -> int:
        return len(self.completed_tasks)

    @property
    def current_task_number(self) -> int:
        return self.tasks_completed + 1


# ── Repository ───────────────────────────────────────

def _load(doc: dict | None) -> PlayerRecord | None:
    return PlayerRecord.model_validate(doc) if doc is not None else None


def get_player(player_id: str) -> PlayerRecord | None:
    return _load(db.get(PLAYERS, player_id))


def save_player(player: PlayerRecord) -> PlayerRecord:
    return _load(db.insert(PLAYERS, player.id, player.model_dump(mode="json")))


def modify_player(player_id: str, fn: Callable[[PlayerRecord], PlayerRecord | None]) -> PlayerRecord | None:
    """Atomic read-modify-write; `fn` returns None to skip the write."""
    def _apply(doc: dict) -> dict | None:
        updated = fn(PlayerRecord.model_validate(doc))
        return updated.model_dump(mode="json") if updated is not None else None

    return _load(db.modify(PLAYERS, player_id, _apply))


def list_players(
    game_id: str | None = None,
    role: PlayerRole | None = None,
    status: PlayerStatus | None = None,
) -> list[PlayerRecord]:
    def _match(doc: dict) -> bool:
        if game_id is not None and doc["game_id"] != game_id:
            return False
        if role is not None and doc["role"] != role:
            return False
        if status is not None and doc["status"] != status:
            return False
        return True

    docs = db.list(PLAYERS, _match)
    docs.sort(key=lambda d: d["joined_at"])
    return [PlayerRecord.model_validate(d) for d in docs]


def count_players(game_id: str) -> int:
    return db.count(PLAYERS, lambda d: d["game_id"] == game_id)


def find_player_by_name(game_id: str, name: str) -> PlayerRecord | None:
    """Case-insensitive lookup within one game."""
    name = name.strip().lower()
    return _load(db.find_one(PLAYERS, lambda d: d["game_id"] == game_id and d["name"].lower() == name))


def set_game_player_status(game_id: str, status: PlayerStatus, only_from: set[PlayerStatus] | None = None) -> int:
    """Bulk status change for one game's players. Returns how many were touched."""
    def _match(doc: dict) -> bool:
        if doc["game_id"] != game_id:
            return False
        return only_from is None or doc["status"] in {s.value for s in only_from}

    return db.update_many(PLAYERS, _match, {"status": status.value})


def delete_player(player_id: str) -> bool:
    return db.delete(PLAYERS, player_id)


def delete_game_players(game_id: str) -> int:
    return db.delete_many(PLAYERS, lambda d: d["game_id"] == game_id)
