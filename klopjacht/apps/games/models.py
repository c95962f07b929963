"""
Game records, stored as documents in the shared in-memory store.

A game owns its tasks, predefined player slots, broadcast messages and
results; none of those are addressable on their own.
"""

import random
import string
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from klopjacht.apps.players.models import CurrentLocation, PlayerRole
from klopjacht.core.database import GAMES, db


class GameStatus(str, Enum):
    SETUP = "setup"
    WAITING = "waiting"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (GameStatus.COMPLETED, GameStatus.CANCELLED)


class Winner(str, Enum):
    FUGITIVES = "fugitives"
    HUNTERS = "hunters"
    NONE = "none"


class EndReason(str, Enum):
    MANUAL = "manual"
    TIME_EXPIRED = "time_expired"
    ALL_FUGITIVES_CAUGHT = "all_fugitives_caught"
    FUGITIVES_ESCAPED = "fugitives_escaped"
    CANCELLED = "cancelled"


class GeoPoint(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: str | None = Field(default=None, max_length=200)


class ExtractionPoint(GeoPoint):
    radius: float = Field(default=50.0, gt=0, description="meters")


class TaskSpec(BaseModel):
    """A task as supplied by a game administrator, before it is numbered and rendered."""
    question: str = Field(min_length=10, max_length=500)
    answer: str = Field(min_length=1, max_length=100)
    location: GeoPoint


class TaskCompletion(BaseModel):
    player_id: str
    completed_at: datetime


class TaskRecord(BaseModel):
    id: str
    task_number: int = Field(ge=1, le=6)
    question: str
    answer: str          # normalized at write time
    location: GeoPoint
    code: str            # rendered scannable code
    completed_by: list[TaskCompletion] = Field(default_factory=list)


class GameSettings(BaseModel):
    max_players: int = Field(default=20, ge=2, le=50)
    location_update_interval: int = 15  # minutes
    timer_warning_minutes: int = 30
    allow_spectators: bool = False


class CaughtFugitive(BaseModel):
    player_id: str
    caught_by: str | None = None
    caught_at: datetime | None = None
    location: CurrentLocation | None = None


class GameResults(BaseModel):
    winner: Winner | None = None
    fugitives_escaped: list[str] = Field(default_factory=list)
    fugitives_caught: list[CaughtFugitive] = Field(default_factory=list)
    completed_tasks: int = 0
    end_reason: EndReason | None = None


class PredefinedSlot(BaseModel):
    id: str
    name: str
    role: PlayerRole
    team: str | None = None
    password: str
    is_joined: bool = False
    player_id: str | None = None


class GameMessage(BaseModel):
    text: str
    sender: str
    sent_at: datetime
    recipients: int


class GameRecord(BaseModel):
    id: str
    game_code: str
    name: str
    description: str | None = None
    status: GameStatus = GameStatus.SETUP
    extraction_point: ExtractionPoint
    tasks: list[TaskRecord] = Field(default_factory=list)
    duration: int = 120  # minutes
    start_time: datetime | None = None
    end_time: datetime | None = None
    paused_at: datetime | None = None
    resumed_at: datetime | None = None
    paused_seconds: float = 0.0
    settings: GameSettings = Field(default_factory=GameSettings)
    results: GameResults = Field(default_factory=GameResults)
    predefined_players: list[PredefinedSlot] = Field(default_factory=list)
    messages: list[GameMessage] = Field(default_factory=list)
    created_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def get_task(self, task_number: int) -> TaskRecord | None:
        return next((t for t in self.tasks if t.task_number == task_number), None)

    def get_slot(self, slot_id: str) -> PredefinedSlot | None:
        return next((s for s in self.predefined_players if s.id == slot_id), None)

    def elapsed_seconds(self, now: datetime) -> float:
        """Playing time since start, paused stretches excluded. Stops at `end_time` once the game is over."""
        if self.start_time is None:
            return 0.0
        if self.is_terminal and self.end_time is not None:
            now = min(now, self.end_time)
        elapsed = (now - self.start_time).total_seconds() - self.paused_seconds
        if self.status == GameStatus.PAUSED and self.paused_at is not None:
            elapsed -= (now - self.paused_at).total_seconds()
        return max(0.0, elapsed)

    def remaining_seconds(self, now: datetime) -> int | None:
        if self.start_time is None or self.status not in (GameStatus.ACTIVE, GameStatus.PAUSED):
            return None
        remaining = self.duration * 60 - self.elapsed_seconds(now)
        return max(0, int(remaining))

    def progress(self, now: datetime) -> float:
        """Percentage of the configured duration played so far."""
        if self.start_time is None:
            return 0.0
        return min(100.0, max(0.0, self.elapsed_seconds(now) / (self.duration * 60) * 100))

    def is_expired(self, now: datetime) -> bool:
        if self.start_time is None or self.status != GameStatus.ACTIVE:
            return False
        return self.elapsed_seconds(now) >= self.duration * 60


# ── Repository ───────────────────────────────────────

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_game_code() -> str:
    """6-character code (ABC123 style), unique among stored games."""
    while True:
        code = "".join(random.choices(CODE_ALPHABET, k=6))
        if find_game_by_code(code) is None:
            return code


def _load(doc: dict | None) -> GameRecord | None:
    return GameRecord.model_validate(doc) if doc is not None else None


def get_game(game_id: str) -> GameRecord | None:
    return _load(db.get(GAMES, game_id))


def save_game(game: GameRecord) -> GameRecord:
    return _load(db.insert(GAMES, game.id, game.model_dump(mode="json")))


def modify_game(game_id: str, fn: Callable[[GameRecord], GameRecord | None]) -> GameRecord | None:
    """Atomic read-modify-write; `fn` returns None to skip the write."""
    def _apply(doc: dict) -> dict | None:
        updated = fn(GameRecord.model_validate(doc))
        return updated.model_dump(mode="json") if updated is not None else None

    return _load(db.modify(GAMES, game_id, _apply))


def find_game_by_code(code: str) -> GameRecord | None:
    code = code.upper()
    return _load(db.find_one(GAMES, lambda d: d["game_code"] == code))


def list_games(status: GameStatus | None = None) -> list[GameRecord]:
    """Newest first."""
    docs = db.list(GAMES, (lambda d: d["status"] == status) if status else None)
    games = [GameRecord.model_validate(d) for d in docs]
    games.sort(key=lambda g: g.created_at, reverse=True)
    return games


def delete_game(game_id: str) -> bool:
    return db.delete(GAMES, game_id)
