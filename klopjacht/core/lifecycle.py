"""
lifecycle.py — Game Lifecycle State Machine
===========================================

    setup ──► waiting ──► active ◄──► paused ──► completed
      │          │          │           │
      └──────────┴──────────┴───────────┴──────► cancelled

completed and cancelled are terminal. Every transition is a
compare-and-set on the stored status, so a manual `end` racing the
expiration sweeper ends the game exactly once.

Players follow the game:
    start   waiting → active
    pause   active  → paused
    resume  paused  → active
    end     *       → completed
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable

from klopjacht.apps.games.models import (
    CaughtFugitive,
    EndReason,
    GameRecord,
    GameResults,
    GameStatus,
    Winner,
    delete_game,
    get_game,
    modify_game,
)
from klopjacht.apps.players.models import (
    PlayerRecord,
    PlayerRole,
    PlayerStatus,
    count_players,
    delete_game_players,
    list_players,
    set_game_player_status,
)
from klopjacht.core.clock import Clock
from klopjacht.core.config import GameRules
from klopjacht.core.errors import (
    GameAlreadyActiveError,
    IncompleteTasksError,
    InvalidGameStatusError,
    NoPlayersError,
    NotFoundError,
)
from klopjacht.core.notifier import Notifier, notify

logger = logging.getLogger(__name__)

STARTABLE = (GameStatus.SETUP, GameStatus.WAITING)
ENDABLE = (GameStatus.ACTIVE, GameStatus.PAUSED)


def determine_winner(fugitives: Iterable[PlayerRecord]) -> Winner:
    """
    Same rule for every way a game can end:
    any fugitive escaped → fugitives, all fugitives caught → hunters,
    anything else → none.
    """
    fugitives = list(fugitives)
    if any(f.status == PlayerStatus.ESCAPED for f in fugitives):
        return Winner.FUGITIVES
    if fugitives and all(f.status == PlayerStatus.CAUGHT for f in fugitives):
        return Winner.HUNTERS
    return Winner.NONE


class GameLifecycle:
    def __init__(self, rules: GameRules, clock: Clock, notifier: Notifier | None = None):
        self.rules = rules
        self.clock = clock
        self.notifier = notifier

    @staticmethod
    def _load(game_id: str) -> GameRecord:
        game = get_game(game_id)
        if game is None:
            raise NotFoundError("GAME_NOT_FOUND", f"Game {game_id} not found")
        return game

    @staticmethod
    def _require(game: GameRecord, allowed: tuple[GameStatus, ...], action: str) -> None:
        if game.status not in allowed:
            raise InvalidGameStatusError(
                f"Cannot {action} a game that is {game.status.value}",
                game.status.value,
            )

    @staticmethod
    def _close_pause(game: GameRecord, now: datetime) -> None:
        """Fold a pause that is still open into `paused_seconds`."""
        if game.paused_at is not None:
            game.paused_seconds += (now - game.paused_at).total_seconds()
            game.paused_at = None

    def _transition(self, game_id: str, allowed: tuple[GameStatus, ...], action: str, fn) -> GameRecord:
        """Re-check the source status under the store lock, then apply `fn`."""
        def _apply(game: GameRecord) -> GameRecord:
            self._require(game, allowed, action)
            fn(game)
            return game

        game = modify_game(game_id, _apply)
        if game is None:
            raise NotFoundError("GAME_NOT_FOUND", f"Game {game_id} not found")
        return game

    # ═══════════════════════════════════════════════════
    # START / PAUSE / RESUME
    # ═══════════════════════════════════════════════════

    async def start(self, game_id: str) -> GameRecord:
        """
        Start a game.

        Requires setup/waiting status, the full task list and at least
        one joined player. Waiting players become active.
        """
        game = self._load(game_id)
        self._require(game, STARTABLE, "start")
        if len(game.tasks) != self.rules.tasks_per_game:
            raise IncompleteTasksError(self.rules.tasks_per_game)
        if count_players(game.id) == 0:
            raise NoPlayersError()

        now = self.clock.now()

        def _start(g: GameRecord) -> None:
            g.status = GameStatus.ACTIVE
            g.start_time = now
            g.end_time = now + timedelta(minutes=g.duration)
            g.paused_at = None
            g.paused_seconds = 0.0

        game = self._transition(game_id, STARTABLE, "start", _start)
        set_game_player_status(game.id, PlayerStatus.ACTIVE, only_from={PlayerStatus.WAITING})

        logger.info(f"🚀 Game {game.game_code} started ({game.duration} min)")
        await notify(self.notifier, game.id, "game_started", {
            "game_id": game.id,
            "start_time": game.start_time,
            "end_time": game.end_time,
            "duration": game.duration,
        })
        return game

    async def pause(self, game_id: str) -> GameRecord:
        now = self.clock.now()

        def _pause(g: GameRecord) -> None:
            g.status = GameStatus.PAUSED
            g.paused_at = now

        game = self._transition(game_id, (GameStatus.ACTIVE,), "pause", _pause)
        set_game_player_status(game.id, PlayerStatus.PAUSED, only_from={PlayerStatus.ACTIVE})

        logger.info(f"⏸️  Game {game.game_code} paused")
        await notify(self.notifier, game.id, "game_paused", {
            "game_id": game.id,
            "paused_at": game.paused_at,
        })
        return game

    async def resume(self, game_id: str) -> GameRecord:
        """Resume a paused game. The pause is added to `paused_seconds` and the end time moves back by it."""
        now = self.clock.now()

        def _resume(g: GameRecord) -> None:
            if g.paused_at is not None:
                pause = now - g.paused_at
                g.paused_seconds += pause.total_seconds()
                if g.end_time is not None:
                    g.end_time = g.end_time + pause
            g.status = GameStatus.ACTIVE
            g.paused_at = None
            g.resumed_at = now

        game = self._transition(game_id, (GameStatus.PAUSED,), "resume", _resume)
        set_game_player_status(game.id, PlayerStatus.ACTIVE, only_from={PlayerStatus.PAUSED})

        logger.info(f"▶️  Game {game.game_code} resumed")
        await notify(self.notifier, game.id, "game_resumed", {
            "game_id": game.id,
            "resumed_at": game.resumed_at,
            "end_time": game.end_time,
            "remaining_time": game.remaining_seconds(now),
        })
        return game

    # ═══════════════════════════════════════════════════
    # END / CANCEL / DELETE
    # ═══════════════════════════════════════════════════

    def _results(self, game: GameRecord, reason: EndReason) -> GameResults:
        fugitives = list_players(game.id, role=PlayerRole.FUGITIVE)
        return GameResults(
            winner=determine_winner(fugitives),
            fugitives_escaped=[f.id for f in fugitives if f.status == PlayerStatus.ESCAPED],
            fugitives_caught=[
                CaughtFugitive(
                    player_id=f.id,
                    caught_by=f.caught_by,
                    caught_at=f.caught_at,
                    location=f.caught_location,
                )
                for f in fugitives if f.status == PlayerStatus.CAUGHT
            ],
            completed_tasks=game.results.completed_tasks,
            end_reason=reason,
        )

    async def end(self, game_id: str, reason: EndReason = EndReason.MANUAL) -> GameRecord:
        """
        End an active or paused game and compute the results.

        Raises:
            InvalidGameStatusError: game is not active/paused (including
                the case where another caller ended it first)
        """
        game = self._load(game_id)
        self._require(game, ENDABLE, "end")
        now = self.clock.now()
        results = self._results(game, reason)

        def _end(g: GameRecord) -> None:
            g.status = GameStatus.COMPLETED
            g.end_time = now
            self._close_pause(g, now)
            g.results = results

        game = self._transition(game_id, ENDABLE, "end", _end)
        set_game_player_status(game.id, PlayerStatus.COMPLETED)

        logger.info(
            f"🏁 Game {game.game_code} ended ({reason.value}), winner: {results.winner.value}"
        )
        await notify(self.notifier, game.id, "game_ended", {
            "game_id": game.id,
            "end_time": game.end_time,
            "reason": reason.value,
            "results": game.results.model_dump(mode="json"),
        })
        return game

    async def try_end(self, game_id: str, reason: EndReason) -> GameRecord | None:
        """`end`, except losing the race to another caller returns None instead of raising."""
        game = get_game(game_id)
        if game is None or game.status not in ENDABLE:
            return None
        try:
            return await self.end(game_id, reason)
        except InvalidGameStatusError:
            logger.info(f"Game {game_id} was already ended elsewhere")
            return None

    async def cancel(self, game_id: str) -> GameRecord:
        """Stop a game from any non-terminal status without a winner."""
        now = self.clock.now()
        allowed = (GameStatus.SETUP, GameStatus.WAITING, GameStatus.ACTIVE, GameStatus.PAUSED)

        def _cancel(g: GameRecord) -> None:
            g.status = GameStatus.CANCELLED
            g.end_time = now
            self._close_pause(g, now)
            g.results.winner = Winner.NONE
            g.results.end_reason = EndReason.CANCELLED

        game = self._transition(game_id, allowed, "cancel", _cancel)
        set_game_player_status(game.id, PlayerStatus.COMPLETED)

        logger.info(f"🛑 Game {game.game_code} cancelled")
        await notify(self.notifier, game.id, "game_cancelled", {
            "game_id": game.id,
            "end_time": game.end_time,
        })
        return game

    async def delete(self, game_id: str) -> int:
        """Hard delete of a game and its players. Returns the number of players removed."""
        game = self._load(game_id)
        if game.status == GameStatus.ACTIVE:
            raise GameAlreadyActiveError("Cannot delete an active game")
        removed = delete_game_players(game.id)
        delete_game(game.id)
        logger.info(f"🗑️  Game {game.game_code} deleted with {removed} players")
        return removed
