"""
router.py — Task REST Endpoints
================================
Scanned task view, answer submission and task progress.
"""

import logging

from fastapi import APIRouter, Depends, Path

from klopjacht.apps.tasks import service
from klopjacht.apps.tasks.schema import (
    CompletedTaskView,
    CurrentTaskResponse,
    GameProgressResponse,
    PublicTaskResponse,
    SubmitAnswerRequest,
    SubmitAnswerResponse,
)
from klopjacht.core.dependencies import Engine, get_engine

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════
# ROUTER SETUP
# ═══════════════════════════════════════════════════

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


# ═══════════════════════════════════════════════════
# PLAYER / GAME VIEWS
# ═══════════════════════════════════════════════════

@router.get("/player/{player_id}/current", response_model=CurrentTaskResponse)
async def current_task_endpoint(player_id: str, engine: Engine = Depends(get_engine)):
    return await service.get_current_task(engine, player_id)


@router.get("/player/{player_id}/completed", response_model=list[CompletedTaskView])
async def completed_tasks_endpoint(player_id: str):
    return await service.get_completed_tasks(player_id)


@router.get("/game/{game_id}/progress", response_model=GameProgressResponse)
async def game_progress_endpoint(game_id: str, engine: Engine = Depends(get_engine)):
    """Per-fugitive and per-task completion overview for the game master."""
    return await service.get_game_progress(engine, game_id)


# ═══════════════════════════════════════════════════
# SCANNED TASKS
# ═══════════════════════════════════════════════════

@router.get("/{game_id}/{task_number}", response_model=PublicTaskResponse)
async def get_task_endpoint(
    game_id: str,
    task_number: int = Path(..., ge=1, le=6),
    engine: Engine = Depends(get_engine),
):
    """
    Task behind a scanned code.

    Returns:
        200: Question and location (no answer)
        404: Unknown game or task
    """
    return await service.get_public_task(engine, game_id, task_number)


@router.post("/{game_id}/{task_number}/submit", response_model=SubmitAnswerResponse)
async def submit_answer_endpoint(
    game_id: str,
    req: SubmitAnswerRequest,
    task_number: int = Path(..., ge=1, le=6),
    engine: Engine = Depends(get_engine),
):
    """
    Submit an answer to a task.

    Returns:
        200: `correct` true or false
        400: Game not active or expired, player not active,
             out of order or already completed
        403: Not a fugitive, or not in this game
        404: Unknown game, player or task
    """
    result = await engine.tracker.submit_answer(
        game_id,
        req.player_id,
        task_number,
        req.answer,
        location=req.location,
    )
    return service.submission_response(result)
