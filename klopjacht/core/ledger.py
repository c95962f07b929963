"""
ledger.py — Task Ledger
=======================
Owns a game's ordered list of tasks and the record of who completed
which task when.

The ledger only stores: it never decides whether a submission is in
order or correct. That is the progress tracker's job.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Protocol

from klopjacht.apps.games.models import (
    GameRecord,
    GameStatus,
    TaskCompletion,
    TaskRecord,
    TaskSpec,
    modify_game,
)
from klopjacht.apps.players.models import PlayerRecord
from klopjacht.core.config import GameRules
from klopjacht.core.errors import (
    GameAlreadyActiveError,
    InvalidTaskCountError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


def normalize_answer(raw: str) -> str:
    return raw.strip().lower()


class CodeRenderer(Protocol):
    def render(self, payload: dict) -> str: ...


class PayloadCodeRenderer:
    """
    Renders a task code as its scannable payload (compact JSON).

    Turning the payload into an image is left to whoever prints the codes.
    """

    def __init__(self, frontend_url: str):
        self.frontend_url = frontend_url.rstrip("/")

    def render(self, payload: dict) -> str:
        payload = {
            **payload,
            "url": f"{self.frontend_url}/task/{payload['gameId']}/{payload['taskNumber']}",
        }
        return json.dumps(payload, separators=(",", ":"))


class TaskLedger:
    def __init__(self, rules: GameRules, renderer: CodeRenderer):
        self.rules = rules
        self.renderer = renderer

    async def attach_tasks(self, game_id: str, tasks: list[TaskSpec]) -> GameRecord:
        """
        Replace the game's task list.

        Tasks are numbered 1..N in the order given, answers are normalized
        and a code is rendered for each. A `setup` game becomes `waiting`
        once it has its tasks.

        Raises:
            InvalidTaskCountError: not exactly `tasks_per_game` tasks
            GameAlreadyActiveError: the game is active or paused
            NotFoundError: unknown game
        """
        if len(tasks) != self.rules.tasks_per_game:
            raise InvalidTaskCountError(len(tasks), self.rules.tasks_per_game)

        records = [
            TaskRecord(
                id=uuid.uuid4().hex,
                task_number=number,
                question=spec.question.strip(),
                answer=normalize_answer(spec.answer),
                location=spec.location,
                code=self.renderer.render({
                    "gameId": game_id,
                    "taskId": f"task_{number}",
                    "taskNumber": number,
                    "question": spec.question.strip(),
                }),
            )
            for number, spec in enumerate(tasks, start=1)
        ]

        def _replace(game: GameRecord) -> GameRecord:
            if game.status in (GameStatus.ACTIVE, GameStatus.PAUSED):
                raise GameAlreadyActiveError("Cannot update tasks of a game that has started")
            game.tasks = records
            if game.status == GameStatus.SETUP:
                game.status = GameStatus.WAITING
            return game

        game = modify_game(game_id, _replace)
        if game is None:
            raise NotFoundError("GAME_NOT_FOUND", f"Game {game_id} not found")
        logger.info(f"📋 {len(records)} tasks attached to game {game.game_code}")
        return game

    def get_task(self, game: GameRecord, ordinal: int) -> TaskRecord:
        task = game.get_task(ordinal)
        if task is None:
            raise NotFoundError("TASK_NOT_FOUND", f"Task {ordinal} not found")
        return task

    async def record_completion(
        self,
        game_id: str,
        task_number: int,
        player_id: str,
        timestamp: datetime,
        player_tasks_completed: int | None = None,
    ) -> GameRecord | None:
        """
        Append a completion record to a task. Pure append: no ordering or
        correctness checks happen here.
        """
        def _append(game: GameRecord) -> GameRecord | None:
            task = game.get_task(task_number)
            if task is None:
                return None
            task.completed_by.append(TaskCompletion(player_id=player_id, completed_at=timestamp))
            if player_tasks_completed is not None:
                game.results.completed_tasks = max(game.results.completed_tasks, player_tasks_completed)
            return game

        return modify_game(game_id, _append)

    def next_task_for(self, game: GameRecord, player: PlayerRecord) -> TaskRecord | None:
        """The task the player has to do next, or None once every task is done."""
        next_number = player.tasks_completed + 1
        if next_number > self.rules.tasks_per_game:
            return None
        return game.get_task(next_number)
