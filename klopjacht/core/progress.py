"""
progress.py — Player Progress Tracker
=====================================
Answer submission, location updates and status changes for players.

SUBMISSION FLOW:
----------------
1. Game must be active and not expired
2. Only fugitives progress through tasks
3. Player must be active (a waiting player is promoted on success)
4. Task N only after task N-1
5. Answers are compared trimmed and lowercased
6. On a match the player's record, the task's record and the player's
   stats are updated, and the caller is told where to go next

A wrong answer is a normal outcome ({"correct": False}), not an error.

Steps 3-4 are re-checked inside the atomic write, so two concurrent
submissions for the same task cannot both be counted.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from klopjacht.apps.games.models import (
    CaughtFugitive,
    GameRecord,
    GameStatus,
    get_game,
    modify_game,
)
from klopjacht.apps.players.models import (
    CompletedTask,
    CurrentLocation,
    LocationSample,
    LocationTrigger,
    MANUAL_STATUSES,
    PlayerRecord,
    PlayerRole,
    PlayerStatus,
    get_player,
    modify_player,
)
from klopjacht.core.clock import Clock
from klopjacht.core.config import GameRules
from klopjacht.core.errors import (
    GameExpiredError,
    GameNotActiveError,
    InactiveContextError,
    InvalidGameStatusError,
    InvalidPlayerStatusError,
    InvalidRoleError,
    NotFoundError,
    PlayerGameMismatchError,
    PlayerNotActiveError,
    SequentialCompletionRequiredError,
    TaskAlreadyCompletedError,
    TasksRemainingError,
)
from klopjacht.core.geo import distance_meters, is_within_radius
from klopjacht.core.ledger import TaskLedger, normalize_answer
from klopjacht.core.notifier import Notifier, notify

logger = logging.getLogger(__name__)

SUBMITTABLE_STATUSES = (PlayerStatus.ACTIVE, PlayerStatus.WAITING)


@dataclass
class SubmissionResult:
    correct: bool
    task_number: int
    tasks_completed: int
    total_tasks: int
    next_step: dict[str, Any] | None = None
    player: PlayerRecord | None = field(default=None, repr=False)


@dataclass
class LocationResult:
    player: PlayerRecord
    escaped: bool = False


class ProgressTracker:
    def __init__(self, rules: GameRules, ledger: TaskLedger, clock: Clock, notifier: Notifier | None = None):
        self.rules = rules
        self.ledger = ledger
        self.clock = clock
        self.notifier = notifier

    # ═══════════════════════════════════════════════════
    # LOOKUPS
    # ═══════════════════════════════════════════════════

    @staticmethod
    def load_game(game_id: str) -> GameRecord:
        game = get_game(game_id)
        if game is None:
            raise NotFoundError("GAME_NOT_FOUND", f"Game {game_id} not found")
        return game

    @staticmethod
    def load_player(player_id: str) -> PlayerRecord:
        player = get_player(player_id)
        if player is None:
            raise NotFoundError("PLAYER_NOT_FOUND", f"Player {player_id} not found")
        return player

    def _check_sequence(self, player: PlayerRecord, ordinal: int) -> None:
        completed = player.tasks_completed
        if ordinal <= completed:
            raise TaskAlreadyCompletedError(ordinal)
        if ordinal != completed + 1:
            raise SequentialCompletionRequiredError(completed + 1)

    # ═══════════════════════════════════════════════════
    # TASK SUBMISSION
    # ═══════════════════════════════════════════════════

    async def submit_answer(
        self,
        game_id: str,
        player_id: str,
        ordinal: int,
        raw_answer: str,
        location: CurrentLocation | None = None,
    ) -> SubmissionResult:
        """
        Check a fugitive's answer for task `ordinal` and record it when correct.

        Args:
            game_id: Game the task belongs to
            player_id: Submitting player
            ordinal: Task number (1-6)
            raw_answer: Answer as typed by the player
            location: Where the player was when submitting (optional)

        Returns:
            SubmissionResult: `correct=False` leaves all state untouched

        Raises:
            GameNotActiveError, GameExpiredError, InvalidRoleError,
            PlayerNotActiveError, TaskAlreadyCompletedError,
            SequentialCompletionRequiredError, NotFoundError,
            PlayerGameMismatchError
        """
        now = self.clock.now()
        game = self.load_game(game_id)
        if game.status != GameStatus.ACTIVE:
            raise GameNotActiveError()
        if game.is_expired(now):
            raise GameExpiredError()

        player = self.load_player(player_id)
        if player.game_id != game.id:
            raise PlayerGameMismatchError()
        if player.role != PlayerRole.FUGITIVE:
            raise InvalidRoleError()
        if player.status not in SUBMITTABLE_STATUSES:
            raise PlayerNotActiveError()

        self._check_sequence(player, ordinal)
        task = self.ledger.get_task(game, ordinal)
        total = self.rules.tasks_per_game

        if normalize_answer(raw_answer) != task.answer:
            logger.info(f"❌ Wrong answer from {player.name} for task {ordinal} in {game.game_code}")
            return SubmissionResult(
                correct=False,
                task_number=ordinal,
                tasks_completed=player.tasks_completed,
                total_tasks=total,
                player=player,
            )

        def _complete(current: PlayerRecord) -> PlayerRecord:
            if current.status not in SUBMITTABLE_STATUSES:
                raise PlayerNotActiveError()
            self._check_sequence(current, ordinal)
            current.completed_tasks.append(CompletedTask(
                task_id=task.id,
                task_number=ordinal,
                completed_at=now,
                location=location if location is not None else current.current_location,
            ))
            current.stats.tasks_completed = current.tasks_completed
            current.status = PlayerStatus.ACTIVE
            current.last_seen = now
            return current

        player = modify_player(player_id, _complete)
        if player is None:
            raise NotFoundError("PLAYER_NOT_FOUND", f"Player {player_id} not found")

        await self.ledger.record_completion(
            game.id, ordinal, player.id, now, player_tasks_completed=player.tasks_completed,
        )
        logger.info(f"✅ {player.name} completed task {ordinal}/{total} in {game.game_code}")

        if location is not None and location.latitude is not None and location.longitude is not None:
            located = await self.update_location(
                player.id,
                location.latitude,
                location.longitude,
                accuracy=location.accuracy,
                trigger=LocationTrigger.TASK_COMPLETION,
            )
            player = located.player

        await notify(self.notifier, game.id, "task_completed", {
            "player_id": player.id,
            "player_name": player.name,
            "task_number": ordinal,
            "completed_tasks": player.tasks_completed,
            "location": player.current_location.model_dump(mode="json"),
        })

        return SubmissionResult(
            correct=True,
            task_number=ordinal,
            tasks_completed=player.tasks_completed,
            total_tasks=total,
            next_step=self.next_step(game, player),
            player=player,
        )

    def next_step(self, game: GameRecord, player: PlayerRecord) -> dict[str, Any] | None:
        """Where the player should head: the next task, or the extraction point once all are done."""
        total = self.rules.tasks_per_game
        if player.tasks_completed >= total:
            return {
                "type": "extraction",
                "message": "All tasks completed! Head to the extraction point.",
                "extraction_point": game.extraction_point.model_dump(mode="json"),
                "remaining_time": game.remaining_seconds(self.clock.now()),
            }
        next_task = self.ledger.next_task_for(game, player)
        if next_task is None:
            return None
        return {
            "type": "next_task",
            "message": f"Task {player.tasks_completed} completed! Head to the next location.",
            "next_task_number": next_task.task_number,
            "next_location": next_task.location.model_dump(mode="json"),
            "remaining_tasks": total - player.tasks_completed,
        }

    # ═══════════════════════════════════════════════════
    # LOCATION
    # ═══════════════════════════════════════════════════

    async def update_location(
        self,
        player_id: str,
        latitude: float,
        longitude: float,
        accuracy: float | None = None,
        trigger: LocationTrigger = LocationTrigger.MANUAL,
    ) -> LocationResult:
        """
        Record a position fix for an active player in an active game.

        A fugitive who has finished every task and is inside the
        extraction radius escapes.

        Raises:
            InactiveContextError: game or player not active
            NotFoundError: unknown player or game
        """
        now = self.clock.now()
        player = self.load_player(player_id)
        game = self.load_game(player.game_id)
        if game.status != GameStatus.ACTIVE or player.status != PlayerStatus.ACTIVE:
            raise InactiveContextError()

        limit = self.rules.location_history_limit
        elapsed = game.elapsed_seconds(now)

        def _record(current: PlayerRecord) -> PlayerRecord:
            if current.status != PlayerStatus.ACTIVE:
                raise InactiveContextError()
            previous = current.current_location
            if previous.latitude is not None and previous.longitude is not None:
                current.stats.distance_traveled += distance_meters(
                    previous.latitude, previous.longitude, latitude, longitude,
                )
            current.current_location = CurrentLocation(
                latitude=latitude,
                longitude=longitude,
                accuracy=accuracy,
                last_updated=now,
            )
            current.location_history.append(LocationSample(
                latitude=latitude,
                longitude=longitude,
                accuracy=accuracy,
                trigger=trigger,
                timestamp=now,
            ))
            if len(current.location_history) > limit:
                current.location_history = current.location_history[-limit:]
            current.stats.last_location_update = now
            current.stats.time_active = elapsed
            current.last_seen = now
            return current

        player = modify_player(player_id, _record)
        if player is None:
            raise NotFoundError("PLAYER_NOT_FOUND", f"Player {player_id} not found")

        await notify(self.notifier, game.id, "location_updated", {
            "player_id": player.id,
            "player_name": player.name,
            "role": player.role.value,
            "location": player.current_location.model_dump(mode="json"),
            "trigger": trigger.value,
        })

        escaped = False
        if self._reached_extraction(game, player):
            escaped_player = modify_player(player.id, self._escape)
            if escaped_player is not None:
                player = escaped_player
                escaped = True
                logger.info(f"🏁 {player.name} escaped from game {game.game_code}")
                await notify(self.notifier, game.id, "player_escaped", {
                    "player_id": player.id,
                    "player_name": player.name,
                    "location": player.current_location.model_dump(mode="json"),
                })

        return LocationResult(player=player, escaped=escaped)

    def _reached_extraction(self, game: GameRecord, player: PlayerRecord) -> bool:
        if player.role != PlayerRole.FUGITIVE:
            return False
        if player.tasks_completed < self.rules.tasks_per_game:
            return False
        return is_within_radius(player.current_location, game.extraction_point, game.extraction_point.radius)

    @staticmethod
    def _escape(current: PlayerRecord) -> PlayerRecord | None:
        if current.status != PlayerStatus.ACTIVE:
            return None
        current.status = PlayerStatus.ESCAPED
        return current

    # ═══════════════════════════════════════════════════
    # STATUS (game master)
    # ═══════════════════════════════════════════════════

    async def set_status(
        self,
        player_id: str,
        status: PlayerStatus,
        caught_by: str | None = None,
        location: CurrentLocation | None = None,
    ) -> PlayerRecord:
        """
        Force a player's status, typically a hunter's capture.

        A capture stores when, where and by whom the fugitive was caught,
        and adds the capture to the game's results.

        Raises:
            InvalidPlayerStatusError: `paused` or `completed`, which follow the game
            InvalidGameStatusError: the game is already over
            InvalidRoleError: capturing or releasing a non-fugitive
            TasksRemainingError: releasing a fugitive with tasks left
        """
        now = self.clock.now()
        player = self.load_player(player_id)
        game = self.load_game(player.game_id)
        if game.is_terminal:
            raise InvalidGameStatusError(f"Game is already {game.status.value}", game.status.value)
        if status not in MANUAL_STATUSES:
            raise InvalidPlayerStatusError(status.value)
        if status in (PlayerStatus.CAUGHT, PlayerStatus.ESCAPED) and player.role != PlayerRole.FUGITIVE:
            raise InvalidRoleError(f"Only fugitives can be {status.value}")
        if status == PlayerStatus.ESCAPED and player.tasks_completed < self.rules.tasks_per_game:
            raise TasksRemainingError(player.tasks_completed, self.rules.tasks_per_game)

        old_status = player.status
        newly_caught = status == PlayerStatus.CAUGHT and old_status != PlayerStatus.CAUGHT

        def _apply(current: PlayerRecord) -> PlayerRecord:
            current.status = status
            if newly_caught:
                current.caught_at = now
                current.caught_by = caught_by
                current.caught_location = location or current.current_location
            return current

        player = modify_player(player_id, _apply)
        if player is None:
            raise NotFoundError("PLAYER_NOT_FOUND", f"Player {player_id} not found")

        if newly_caught:
            capture = CaughtFugitive(
                player_id=player.id,
                caught_by=caught_by,
                caught_at=now,
                location=player.caught_location,
            )

            def _record_capture(current: GameRecord) -> GameRecord:
                current.results.fugitives_caught.append(capture)
                return current

            modify_game(game.id, _record_capture)
            logger.info(f"🚨 {player.name} caught in game {game.game_code}")

        await notify(self.notifier, game.id, "player_status_changed", {
            "player_id": player.id,
            "player_name": player.name,
            "old_status": old_status.value,
            "new_status": player.status.value,
            "location": player.current_location.model_dump(mode="json"),
        })
        return player
