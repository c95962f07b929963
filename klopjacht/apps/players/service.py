"""
service.py — Player Business Logic
===================================
Joining a game (free or through a predefined slot), restoring a session,
listing, removing and reporting on players.

Location updates, status changes and task completion are handled by the
progress tracker of the game engine.
"""

import logging
import uuid
from collections import Counter
from typing import Optional

from klopjacht.apps.games.models import (
    GameRecord,
    GameStatus,
    find_game_by_code,
    get_game,
    modify_game,
)
from klopjacht.apps.players.models import (
    PlayerRecord,
    PlayerRole,
    PlayerStatus,
    count_players,
    delete_player,
    find_player_by_name,
    get_player,
    list_players,
    modify_player,
    save_player,
)
from klopjacht.apps.players.schema import (
    JoinRequest,
    PlayerListResponse,
    PlayerResponse,
    PlayerStatsResponse,
)
from klopjacht.core.dependencies import Engine
from klopjacht.core.errors import (
    ConflictError,
    GameAlreadyActiveError,
    GameClosedError,
    GameFullError,
    InvalidPasswordError,
    InvalidRoleError,
    NotFoundError,
    PlayerGameMismatchError,
    SlotAlreadyJoinedError,
    ValidationError,
)
from klopjacht.core.notifier import notify

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════

def get_player_or_404(player_id: str) -> PlayerRecord:
    player = get_player(player_id)
    if player is None:
        raise NotFoundError("PLAYER_NOT_FOUND", f"Player {player_id} not found")
    return player


def _initial_status(game: GameRecord) -> PlayerStatus:
    if game.status == GameStatus.ACTIVE:
        return PlayerStatus.ACTIVE
    if game.status == GameStatus.PAUSED:
        return PlayerStatus.PAUSED
    return PlayerStatus.WAITING


def _new_player(engine: Engine, game: GameRecord, name: str, role: PlayerRole, team: Optional[str], req: JoinRequest) -> PlayerRecord:
    now = engine.clock.now()
    return PlayerRecord(
        id=uuid.uuid4().hex,
        game_id=game.id,
        name=name,
        role=role,
        status=_initial_status(game),
        team=team,
        email=req.email,
        phone_number=req.phone_number,
        last_seen=now,
        joined_at=now,
    )


# ═══════════════════════════════════════════════════
# JOIN
# ═══════════════════════════════════════════════════

async def join_game(engine: Engine, req: JoinRequest) -> tuple[PlayerRecord, GameRecord, bool]:
    """
    Join a game by code.

    Returns:
        (player, game, rejoined)

    Raises:
        NotFoundError: unknown game code or slot
        GameClosedError: game completed or cancelled
        InvalidPasswordError: wrong slot password
        GameFullError: max_players reached (free join)
        ConflictError: name already taken (free join)
    """
    game = find_game_by_code(req.game_code)
    if game is None:
        raise NotFoundError("GAME_NOT_FOUND", f"No game with code {req.game_code.upper()}")
    if game.is_terminal:
        raise GameClosedError(f"Game is {game.status.value}")

    if req.slot_id:
        return await _join_slot(engine, game, req)
    return await _join_free(engine, game, req)


async def _join_slot(engine: Engine, game: GameRecord, req: JoinRequest) -> tuple[PlayerRecord, GameRecord, bool]:
    slot = game.get_slot(req.slot_id)
    if slot is None:
        raise NotFoundError("SLOT_NOT_FOUND", f"Player slot {req.slot_id} not found")
    if req.password != slot.password:
        raise InvalidPasswordError()

    if slot.is_joined and slot.player_id:
        existing = _rejoin(engine, game, slot.player_id)
        if existing is not None:
            logger.info(f"🔁 {existing.name} rejoined {game.game_code}")
            return existing, game, True

    taken = find_player_by_name(game.id, slot.name)
    if taken is not None and taken.id != slot.player_id:
        raise ConflictError("PLAYER_NAME_TAKEN", f"Name {slot.name} is already taken in this game")

    player = _new_player(engine, game, slot.name, slot.role, slot.team, req)

    def _claim(g: GameRecord) -> GameRecord:
        s = g.get_slot(slot.id)
        if s is None:
            raise NotFoundError("SLOT_NOT_FOUND", f"Player slot {slot.id} not found")
        if s.is_joined and s.player_id != slot.player_id:
            raise SlotAlreadyJoinedError()
        s.is_joined = True
        s.player_id = player.id
        return g

    claimed = modify_game(game.id, _claim)
    if claimed is None:
        raise NotFoundError("GAME_NOT_FOUND", f"Game {game.id} not found")
    game = claimed
    player = save_player(player)
    await _announce_join(engine, game, player)
    return player, game, False


def _rejoin(engine: Engine, game: GameRecord, player_id: str) -> Optional[PlayerRecord]:
    """Re-enter a claimed slot: refresh last seen and bring a disconnected player back into play."""
    now = engine.clock.now()

    def _refresh(p: PlayerRecord) -> PlayerRecord:
        p.last_seen = now
        if p.status == PlayerStatus.DISCONNECTED:
            p.status = _initial_status(game)
        return p

    return modify_player(player_id, _refresh)


async def _join_free(engine: Engine, game: GameRecord, req: JoinRequest) -> tuple[PlayerRecord, GameRecord, bool]:
    if not req.name or not req.role:
        raise ValidationError("NAME_AND_ROLE_REQUIRED", "Name and role are required to join without a player slot")
    if req.role == PlayerRole.SPECTATOR and not game.settings.allow_spectators:
        raise InvalidRoleError("Spectators are not allowed in this game")

    name = req.name.strip()
    if find_player_by_name(game.id, name) is not None:
        raise ConflictError("PLAYER_NAME_TAKEN", f"Name {name} is already taken in this game")
    if any(s.name.lower() == name.lower() for s in game.predefined_players):
        raise ConflictError("PLAYER_NAME_TAKEN", f"Name {name} is reserved for a player slot")
    if count_players(game.id) >= game.settings.max_players:
        raise GameFullError()

    player = save_player(_new_player(engine, game, name, req.role, req.team, req))
    await _announce_join(engine, game, player)
    return player, game, False


async def _announce_join(engine: Engine, game: GameRecord, player: PlayerRecord) -> None:
    logger.info(f"👤 {player.name} joined {game.game_code} as {player.role.value}")
    await notify(engine.notifier, game.id, "player_joined", {
        "player_id": player.id,
        "player_name": player.name,
        "role": player.role.value,
        "team": player.team,
    })


async def restore_session(player_id: str, game_code: str) -> tuple[PlayerRecord, GameRecord]:
    """Look a player up again after a reload, from the id and code kept on the device."""
    game = find_game_by_code(game_code)
    if game is None:
        raise NotFoundError("GAME_NOT_FOUND", f"No game with code {game_code.upper()}")
    if game.status == GameStatus.CANCELLED:
        raise GameClosedError("Game has been cancelled")
    player = get_player_or_404(player_id)
    if player.game_id != game.id:
        raise PlayerGameMismatchError()
    return player, game


# ═══════════════════════════════════════════════════
# QUERIES
# ═══════════════════════════════════════════════════

async def list_game_players(
    game_id: Optional[str] = None,
    role: Optional[PlayerRole] = None,
    status: Optional[PlayerStatus] = None,
) -> PlayerListResponse:
    players = list_players(game_id, role=role, status=status)
    return PlayerListResponse(
        players=[PlayerResponse.from_record(p) for p in players],
        counts={
            "role": dict(Counter(p.role.value for p in players)),
            "status": dict(Counter(p.status.value for p in players)),
        },
    )


async def get_player_stats(engine: Engine, player_id: str) -> PlayerStatsResponse:
    player = get_player_or_404(player_id)
    last_update = player.stats.last_location_update
    since = None
    if last_update is not None:
        since = int((engine.clock.now() - last_update).total_seconds())
    return PlayerStatsResponse(
        player_id=player.id,
        name=player.name,
        role=player.role,
        status=player.status,
        tasks_completed=player.tasks_completed,
        current_task_number=player.current_task_number,
        distance_traveled=round(player.stats.distance_traveled, 1),
        time_active=player.stats.time_active,
        last_location_update=last_update,
        seconds_since_location_update=since,
        is_online=player.is_online,
    )


async def remove_player(player_id: str) -> None:
    """
    Remove a player from their game. A claimed predefined slot is freed again.

    Raises:
        GameAlreadyActiveError: the game is running
    """
    player = get_player_or_404(player_id)
    game = get_game(player.game_id)
    if game is not None and game.status == GameStatus.ACTIVE:
        raise GameAlreadyActiveError("Cannot remove a player from an active game")

    if game is not None:
        def _release(g: GameRecord) -> Optional[GameRecord]:
            slot = next((s for s in g.predefined_players if s.player_id == player.id), None)
            if slot is None:
                return None
            slot.is_joined = False
            slot.player_id = None
            return g

        modify_game(game.id, _release)

    delete_player(player.id)
    logger.info(f"🚪 {player.name} removed from game {player.game_id}")
