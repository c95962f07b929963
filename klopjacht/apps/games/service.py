"""
service.py — Game Business Logic
=================================
Game creation and administration, the public view behind a game code,
predefined player slots and broadcast messages.

Lifecycle transitions (start/pause/resume/end/cancel/delete) and task
attachment live in the game engine; the router calls it directly.
"""

import logging
import math
import uuid
from datetime import datetime
from typing import Optional

from klopjacht.apps.games.models import (
    GameMessage,
    GameRecord,
    GameStatus,
    PredefinedSlot,
    find_game_by_code,
    generate_game_code,
    get_game,
    list_games,
    modify_game,
    save_game,
)
from klopjacht.apps.games.schema import (
    GameCreateRequest,
    GameListResponse,
    GameResponse,
    GameUpdateRequest,
    MessageRequest,
    Pagination,
    PlayerCounts,
    PredefinedSlotCreate,
    PredefinedSlotUpdate,
    PublicGameResponse,
    SlotView,
    TaskAdminView,
    TaskPublicView,
)
from klopjacht.apps.players.models import PlayerRole, count_players, list_players
from klopjacht.core.dependencies import Engine
from klopjacht.core.errors import (
    ConflictError,
    GameAlreadyActiveError,
    NoPlayersError,
    NotFoundError,
    SlotAlreadyJoinedError,
    ValidationError,
)
from klopjacht.core.notifier import notify

logger = logging.getLogger(__name__)

IN_PROGRESS = (GameStatus.ACTIVE, GameStatus.PAUSED)


# ═══════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════

def get_game_or_404(game_id: str) -> GameRecord:
    game = get_game(game_id)
    if game is None:
        raise NotFoundError("GAME_NOT_FOUND", f"Game {game_id} not found")
    return game


def player_counts(game_id: str) -> PlayerCounts:
    players = list_players(game_id)
    return PlayerCounts(
        total=len(players),
        fugitives=sum(1 for p in players if p.role == PlayerRole.FUGITIVE),
        hunters=sum(1 for p in players if p.role == PlayerRole.HUNTER),
        spectators=sum(1 for p in players if p.role == PlayerRole.SPECTATOR),
    )


def to_response(game: GameRecord, now: datetime) -> GameResponse:
    return GameResponse(
        id=game.id,
        game_code=game.game_code,
        name=game.name,
        description=game.description,
        status=game.status,
        duration=game.duration,
        extraction_point=game.extraction_point,
        start_time=game.start_time,
        end_time=game.end_time,
        paused_at=game.paused_at,
        remaining_time=game.remaining_seconds(now),
        settings=game.settings,
        results=game.results,
        task_count=len(game.tasks),
        player_counts=player_counts(game.id),
        created_at=game.created_at,
    )


def _slot_view(slot: PredefinedSlot) -> SlotView:
    return SlotView(**slot.model_dump(exclude={"password"}))


# ═══════════════════════════════════════════════════
# GAME SERVICE FUNCTIONS
# ═══════════════════════════════════════════════════

async def create_game(engine: Engine, req: GameCreateRequest) -> GameRecord:
    """
    Create a game in `setup` with a fresh 6 character code.

    Tasks are attached separately; the game moves to `waiting` once it
    has all of them.
    """
    game = GameRecord(
        id=uuid.uuid4().hex,
        game_code=generate_game_code(),
        name=req.name,
        description=req.description,
        duration=req.duration,
        extraction_point=req.extraction_point,
        settings=req.settings,
        created_at=engine.clock.now(),
    )
    game = save_game(game)
    logger.info(f"🎮 Game created: {game.game_code} ({game.name})")
    return game


async def list_games_page(
    engine: Engine,
    status: Optional[GameStatus] = None,
    page: int = 1,
    limit: int = 10,
) -> GameListResponse:
    games = list_games(status)
    total = len(games)
    start = (page - 1) * limit
    now = engine.clock.now()
    return GameListResponse(
        games=[to_response(g, now) for g in games[start:start + limit]],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit) if total else 0,
        ),
    )


async def update_game(game_id: str, req: GameUpdateRequest) -> GameRecord:
    """
    Change name, description, duration, extraction point or settings.

    Raises:
        GameAlreadyActiveError: the game is running or paused
    """
    changes = req.model_dump(exclude_unset=True)
    if not changes:
        return get_game_or_404(game_id)

    def _update(game: GameRecord) -> GameRecord:
        if game.status in IN_PROGRESS:
            raise GameAlreadyActiveError("Cannot update a game that has started")
        if "name" in changes and req.name is not None:
            game.name = req.name.strip()
        if "description" in changes:
            game.description = req.description
        if "duration" in changes and req.duration is not None:
            game.duration = req.duration
        if "extraction_point" in changes and req.extraction_point is not None:
            game.extraction_point = req.extraction_point
        if "settings" in changes and req.settings is not None:
            game.settings = req.settings
        return game

    game = modify_game(game_id, _update)
    if game is None:
        raise NotFoundError("GAME_NOT_FOUND", f"Game {game_id} not found")
    logger.info(f"✏️  Game {game.game_code} updated: {sorted(changes)}")
    return game


async def get_public_game(engine: Engine, code: str) -> PublicGameResponse:
    """Game view for players joining by code. Task answers and slot passwords stay hidden."""
    game = find_game_by_code(code)
    if game is None:
        raise NotFoundError("GAME_NOT_FOUND", f"No game with code {code.upper()}")

    slots = [_slot_view(s) for s in game.predefined_players]
    return PublicGameResponse(
        id=game.id,
        game_code=game.game_code,
        name=game.name,
        description=game.description,
        status=game.status,
        duration=game.duration,
        start_time=game.start_time,
        end_time=game.end_time,
        remaining_time=game.remaining_seconds(engine.clock.now()),
        extraction_point=game.extraction_point,
        player_count=count_players(game.id),
        max_players=game.settings.max_players,
        available_slots=[s for s in slots if not s.is_joined],
        predefined_players=slots,
        tasks=[
            TaskPublicView(task_number=t.task_number, question=t.question, location=t.location)
            for t in sorted(game.tasks, key=lambda t: t.task_number)
        ],
    )


async def list_tasks(game_id: str) -> list[TaskAdminView]:
    game = get_game_or_404(game_id)
    return [
        TaskAdminView(
            id=t.id,
            task_number=t.task_number,
            question=t.question,
            answer=t.answer,
            location=t.location,
            code=t.code,
            completions=len(t.completed_by),
        )
        for t in sorted(game.tasks, key=lambda t: t.task_number)
    ]


async def broadcast_message(engine: Engine, game_id: str, req: MessageRequest) -> GameMessage:
    """
    Send a message from the game master to every player of a game.

    Raises:
        NoPlayersError: nobody has joined yet
    """
    game = get_game_or_404(game_id)
    recipients = count_players(game.id)
    if recipients == 0:
        raise NoPlayersError("No players in this game to message")

    message = GameMessage(
        text=req.message.strip(),
        sender=req.sender,
        sent_at=engine.clock.now(),
        recipients=recipients,
    )

    def _append(g: GameRecord) -> GameRecord:
        g.messages.append(message)
        return g

    modify_game(game.id, _append)
    logger.info(f"📣 Message to {recipients} players in {game.game_code}")
    await notify(engine.notifier, game.id, "game_message", {
        "message": message.text,
        "sender": message.sender,
        "timestamp": message.sent_at,
    })
    return message


# ═══════════════════════════════════════════════════
# PREDEFINED PLAYER SLOTS
# ═══════════════════════════════════════════════════

def _ensure_editable(game: GameRecord) -> None:
    if game.status == GameStatus.ACTIVE:
        raise GameAlreadyActiveError("Cannot change player slots of an active game")


async def add_predefined_players(game_id: str, slots: list[PredefinedSlotCreate]) -> list[SlotView]:
    """
    Add named player slots that players claim with a password.

    Names must be unique (case-insensitive) within the batch and against
    the slots already on the game.
    """
    batch_names = [s.name.strip().lower() for s in slots]
    duplicates = sorted({n for n in batch_names if batch_names.count(n) > 1})
    if duplicates:
        raise ValidationError("DUPLICATE_PLAYER_NAMES", "Player names must be unique", {"names": duplicates})

    new_slots = [
        PredefinedSlot(
            id=uuid.uuid4().hex,
            name=s.name.strip(),
            role=s.role,
            team=s.team,
            password=s.password,
        )
        for s in slots
    ]

    def _add(game: GameRecord) -> GameRecord:
        _ensure_editable(game)
        existing = {s.name.lower() for s in game.predefined_players}
        taken = sorted(n for n in batch_names if n in existing)
        if taken:
            raise ConflictError("PLAYER_NAME_EXISTS", "Player names already exist in this game", {"names": taken})
        game.predefined_players.extend(new_slots)
        return game

    game = modify_game(game_id, _add)
    if game is None:
        raise NotFoundError("GAME_NOT_FOUND", f"Game {game_id} not found")
    logger.info(f"👥 {len(new_slots)} player slots added to {game.game_code}")
    return [_slot_view(s) for s in new_slots]


async def list_predefined_players(game_id: str) -> list[SlotView]:
    game = get_game_or_404(game_id)
    return [_slot_view(s) for s in game.predefined_players]


async def update_predefined_player(game_id: str, slot_id: str, req: PredefinedSlotUpdate) -> SlotView:
    changes = req.model_dump(exclude_unset=True, exclude_none=True)

    def _update(game: GameRecord) -> GameRecord:
        _ensure_editable(game)
        slot = game.get_slot(slot_id)
        if slot is None:
            raise NotFoundError("SLOT_NOT_FOUND", f"Player slot {slot_id} not found")
        if slot.is_joined:
            raise SlotAlreadyJoinedError("Cannot edit a player slot that has been joined")
        if "name" in changes:
            name = changes["name"].strip()
            clash = any(
                s.id != slot_id and s.name.lower() == name.lower()
                for s in game.predefined_players
            )
            if clash:
                raise ConflictError("PLAYER_NAME_EXISTS", f"A player named {name} already exists")
            slot.name = name
        if "role" in changes:
            slot.role = changes["role"]
        if "team" in changes:
            slot.team = changes["team"]
        if "password" in changes:
            slot.password = changes["password"]
        return game

    game = modify_game(game_id, _update)
    if game is None:
        raise NotFoundError("GAME_NOT_FOUND", f"Game {game_id} not found")
    return _slot_view(game.get_slot(slot_id))


async def delete_predefined_player(game_id: str, slot_id: str) -> None:
    def _delete(game: GameRecord) -> GameRecord:
        _ensure_editable(game)
        slot = game.get_slot(slot_id)
        if slot is None:
            raise NotFoundError("SLOT_NOT_FOUND", f"Player slot {slot_id} not found")
        if slot.is_joined:
            raise SlotAlreadyJoinedError("Cannot delete a player slot that has been joined")
        game.predefined_players = [s for s in game.predefined_players if s.id != slot_id]
        return game

    if modify_game(game_id, _delete) is None:
        raise NotFoundError("GAME_NOT_FOUND", f"Game {game_id} not found")
