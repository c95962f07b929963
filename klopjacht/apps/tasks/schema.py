"""
schema.py — Task Request/Response Models
=========================================
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from klopjacht.apps.games.models import ExtractionPoint, GameStatus, GeoPoint
from klopjacht.apps.players.models import CurrentLocation, PlayerStatus


# ═══════════════════════════════════════════════════
# REQUEST MODELS
# ═══════════════════════════════════════════════════

class SubmitAnswerRequest(BaseModel):
    player_id: str
    answer: str = Field(..., min_length=1, max_length=100)
    location: Optional[CurrentLocation] = None

    class Config:
        json_schema_extra = {
            "example": {
                "player_id": "5f1c0c3e9a2b4d1e8f7a6b5c4d3e2f1a",
                "answer": "Rembrandt",
                "location": {"latitude": 52.3667, "longitude": 4.9012},
            }
        }


# ═══════════════════════════════════════════════════
# RESPONSE MODELS
# ═══════════════════════════════════════════════════

class SubmitAnswerResponse(BaseModel):
    """
    Outcome of an answer. A wrong answer is `correct: false`, not an error.

    `next_step` is either
        {"type": "next_task", "next_task_number", "next_location", "remaining_tasks", ...}
    or, after the last task,
        {"type": "extraction", "extraction_point", "remaining_time", ...}
    """
    correct: bool
    message: str
    task_number: int
    tasks_completed: int
    total_tasks: int
    next_step: Optional[Dict[str, Any]] = None


class PublicTaskResponse(BaseModel):
    """Task as shown after scanning its code. Never carries the answer."""
    game_id: str
    game_name: str
    game_status: GameStatus
    task_number: int
    total_tasks: int
    question: str
    location: GeoPoint


class NextTaskView(BaseModel):
    task_number: int
    location: GeoPoint


class CurrentTaskResponse(BaseModel):
    player_id: str
    tasks_completed: int
    total_tasks: int
    all_tasks_completed: bool
    current_task: Optional[NextTaskView] = None
    extraction_point: Optional[ExtractionPoint] = None
    remaining_time: Optional[int] = None


class CompletedTaskView(BaseModel):
    task_number: int
    question: str
    completed_at: datetime
    location: Optional[CurrentLocation] = None


class FugitiveProgress(BaseModel):
    player_id: str
    name: str
    status: PlayerStatus
    tasks_completed: int
    progress: float = Field(..., description="Percentage of tasks done")


class TaskProgress(BaseModel):
    task_number: int
    completions: int


class ProgressStats(BaseModel):
    total_fugitives: int
    active_fugitives: int
    caught_fugitives: int
    escaped_fugitives: int
    average_tasks_completed: float


class GameProgressResponse(BaseModel):
    game_id: str
    status: GameStatus
    remaining_time: Optional[int] = None
    time_progress: float = Field(..., description="Percentage of the duration played")
    fugitives: List[FugitiveProgress]
    tasks: List[TaskProgress]
    stats: ProgressStats
