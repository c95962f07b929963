"""
service.py — Task Views
========================
Read side of the task ledger for players and game masters. Answer
submission itself goes through the progress tracker.
"""

import logging

from klopjacht.apps.games.models import GameRecord
from klopjacht.apps.games.service import get_game_or_404
from klopjacht.apps.players.models import PlayerRole, PlayerStatus, list_players
from klopjacht.apps.players.service import get_player_or_404
from klopjacht.apps.tasks.schema import (
    CompletedTaskView,
    CurrentTaskResponse,
    FugitiveProgress,
    GameProgressResponse,
    NextTaskView,
    ProgressStats,
    PublicTaskResponse,
    SubmitAnswerResponse,
    TaskProgress,
)
from klopjacht.core.dependencies import Engine
from klopjacht.core.progress import SubmissionResult

logger = logging.getLogger(__name__)


def submission_response(result: SubmissionResult) -> SubmitAnswerResponse:
    if not result.correct:
        message = "Incorrect answer. Try again!"
    elif result.tasks_completed >= result.total_tasks:
        message = "All tasks completed! Head to the extraction point."
    else:
        message = f"Correct! Task {result.task_number} completed."
    return SubmitAnswerResponse(
        correct=result.correct,
        message=message,
        task_number=result.task_number,
        tasks_completed=result.tasks_completed,
        total_tasks=result.total_tasks,
        next_step=result.next_step,
    )


async def get_public_task(engine: Engine, game_id: str, task_number: int) -> PublicTaskResponse:
    game = get_game_or_404(game_id)
    task = engine.ledger.get_task(game, task_number)
    return PublicTaskResponse(
        game_id=game.id,
        game_name=game.name,
        game_status=game.status,
        task_number=task.task_number,
        total_tasks=engine.rules.tasks_per_game,
        question=task.question,
        location=task.location,
    )


async def get_current_task(engine: Engine, player_id: str) -> CurrentTaskResponse:
    """
    Where a player has to go now.

    Only the next task's location is revealed; once every task is done
    the extraction point takes its place.
    """
    player = get_player_or_404(player_id)
    game = get_game_or_404(player.game_id)
    total = engine.rules.tasks_per_game
    next_task = engine.ledger.next_task_for(game, player)
    done = player.tasks_completed >= total

    return CurrentTaskResponse(
        player_id=player.id,
        tasks_completed=player.tasks_completed,
        total_tasks=total,
        all_tasks_completed=done,
        current_task=(
            NextTaskView(task_number=next_task.task_number, location=next_task.location)
            if next_task is not None else None
        ),
        extraction_point=game.extraction_point if done else None,
        remaining_time=game.remaining_seconds(engine.clock.now()),
    )


async def get_completed_tasks(player_id: str) -> list[CompletedTaskView]:
    player = get_player_or_404(player_id)
    game = get_game_or_404(player.game_id)
    views = []
    for done in sorted(player.completed_tasks, key=lambda c: c.task_number):
        task = game.get_task(done.task_number)
        views.append(CompletedTaskView(
            task_number=done.task_number,
            question=task.question if task is not None else "",
            completed_at=done.completed_at,
            location=done.location,
        ))
    return views


def _fugitive_stats(fugitives: list[FugitiveProgress]) -> ProgressStats:
    total = len(fugitives)
    return ProgressStats(
        total_fugitives=total,
        active_fugitives=sum(1 for f in fugitives if f.status == PlayerStatus.ACTIVE),
        caught_fugitives=sum(1 for f in fugitives if f.status == PlayerStatus.CAUGHT),
        escaped_fugitives=sum(1 for f in fugitives if f.status == PlayerStatus.ESCAPED),
        average_tasks_completed=(
            round(sum(f.tasks_completed for f in fugitives) / total, 2) if total else 0.0
        ),
    )


async def get_game_progress(engine: Engine, game_id: str) -> GameProgressResponse:
    game: GameRecord = get_game_or_404(game_id)
    total = engine.rules.tasks_per_game
    now = engine.clock.now()

    fugitives = [
        FugitiveProgress(
            player_id=p.id,
            name=p.name,
            status=p.status,
            tasks_completed=p.tasks_completed,
            progress=round(p.tasks_completed / total * 100, 1),
        )
        for p in list_players(game.id, role=PlayerRole.FUGITIVE)
    ]

    return GameProgressResponse(
        game_id=game.id,
        status=game.status,
        remaining_time=game.remaining_seconds(now),
        time_progress=round(game.progress(now), 1),
        fugitives=fugitives,
        tasks=[
            TaskProgress(task_number=t.task_number, completions=len(t.completed_by))
            for t in sorted(game.tasks, key=lambda t: t.task_number)
        ],
        stats=_fugitive_stats(fugitives),
    )
