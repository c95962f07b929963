"""
router.py — Game REST Endpoints
================================
Game administration: creation, tasks, lifecycle, player slots, messages.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status

from klopjacht.apps.games import service
from klopjacht.apps.games.models import GameStatus
from klopjacht.apps.games.schema import (
    EndGameRequest,
    GameCreateRequest,
    GameListResponse,
    GameResponse,
    GameUpdateRequest,
    MessageRequest,
    MessageResponse,
    PredefinedPlayersRequest,
    PredefinedSlotUpdate,
    PublicGameResponse,
    SlotView,
    TaskAdminView,
    TasksRequest,
)
from klopjacht.core.dependencies import Engine, get_engine

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════
# ROUTER SETUP
# ═══════════════════════════════════════════════════

router = APIRouter(prefix="/api/games", tags=["games"])


# ═══════════════════════════════════════════════════
# GAMES
# ═══════════════════════════════════════════════════

@router.post("/", response_model=GameResponse, status_code=status.HTTP_201_CREATED)
async def create_game_endpoint(req: GameCreateRequest, engine: Engine = Depends(get_engine)):
    """
    Create a new game.

    Returns:
        201: Game created in `setup`, with its join code
        422: Invalid parameters
    """
    game = await service.create_game(engine, req)
    return service.to_response(game, engine.clock.now())


@router.get("/", response_model=GameListResponse)
async def list_games_endpoint(
    status: Optional[GameStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    engine: Engine = Depends(get_engine),
):
    """All games, newest first."""
    return await service.list_games_page(engine, status, page, limit)


@router.get("/code/{game_code}", response_model=PublicGameResponse)
async def get_game_by_code_endpoint(game_code: str, engine: Engine = Depends(get_engine)):
    """
    Public game info for the join screen.

    Returns:
        200: Game, available player slots and tasks (without answers)
        404: No game with this code
    """
    return await service.get_public_game(engine, game_code)


@router.get("/{game_id}", response_model=GameResponse)
async def get_game_endpoint(game_id: str, engine: Engine = Depends(get_engine)):
    game = service.get_game_or_404(game_id)
    return service.to_response(game, engine.clock.now())


@router.put("/{game_id}", response_model=GameResponse)
async def update_game_endpoint(game_id: str, req: GameUpdateRequest, engine: Engine = Depends(get_engine)):
    game = await service.update_game(game_id, req)
    return service.to_response(game, engine.clock.now())


@router.delete("/{game_id}")
async def delete_game_endpoint(game_id: str, engine: Engine = Depends(get_engine)):
    """
    Permanently delete a game and its players.

    Returns:
        200: Deleted
        400: Game is active
        404: Game not found
    """
    removed = await engine.lifecycle.delete(game_id)
    return {"message": "Game deleted", "players_removed": removed}


# ═══════════════════════════════════════════════════
# TASKS
# ═══════════════════════════════════════════════════

@router.post("/{game_id}/tasks", response_model=list[TaskAdminView])
async def add_tasks_endpoint(game_id: str, req: TasksRequest, engine: Engine = Depends(get_engine)):
    """
    Attach the game's tasks (exactly 6, in play order).

    Returns:
        200: Tasks numbered 1-6 with their codes
        400: Wrong task count, or the game has started
        404: Game not found
    """
    await engine.ledger.attach_tasks(game_id, req.tasks)
    return await service.list_tasks(game_id)


@router.put("/{game_id}/tasks", response_model=list[TaskAdminView])
async def replace_tasks_endpoint(game_id: str, req: TasksRequest, engine: Engine = Depends(get_engine)):
    await engine.ledger.attach_tasks(game_id, req.tasks)
    return await service.list_tasks(game_id)


@router.get("/{game_id}/tasks", response_model=list[TaskAdminView])
async def list_tasks_endpoint(game_id: str):
    """Admin task list, answers and codes included."""
    return await service.list_tasks(game_id)


# ═══════════════════════════════════════════════════
# LIFECYCLE
# ═══════════════════════════════════════════════════

@router.post("/{game_id}/start", response_model=GameResponse)
async def start_game_endpoint(game_id: str, engine: Engine = Depends(get_engine)):
    """
    Start the game.

    Returns:
        200: Game active, waiting players activated
        400: Wrong status, tasks missing or no players
    """
    game = await engine.lifecycle.start(game_id)
    return service.to_response(game, engine.clock.now())


@router.post("/{game_id}/pause", response_model=GameResponse)
async def pause_game_endpoint(game_id: str, engine: Engine = Depends(get_engine)):
    game = await engine.lifecycle.pause(game_id)
    return service.to_response(game, engine.clock.now())


@router.post("/{game_id}/resume", response_model=GameResponse)
async def resume_game_endpoint(game_id: str, engine: Engine = Depends(get_engine)):
    game = await engine.lifecycle.resume(game_id)
    return service.to_response(game, engine.clock.now())


@router.post("/{game_id}/end", response_model=GameResponse)
async def end_game_endpoint(
    game_id: str,
    req: Optional[EndGameRequest] = Body(None),
    engine: Engine = Depends(get_engine),
):
    """End an active or paused game and compute the winner."""
    reason = req.reason if req is not None else EndGameRequest().reason
    game = await engine.lifecycle.end(game_id, reason)
    return service.to_response(game, engine.clock.now())


@router.post("/{game_id}/cancel", response_model=GameResponse)
async def cancel_game_endpoint(game_id: str, engine: Engine = Depends(get_engine)):
    game = await engine.lifecycle.cancel(game_id)
    return service.to_response(game, engine.clock.now())


# ═══════════════════════════════════════════════════
# MESSAGES
# ═══════════════════════════════════════════════════

@router.post("/{game_id}/message", response_model=MessageResponse)
async def send_message_endpoint(game_id: str, req: MessageRequest, engine: Engine = Depends(get_engine)):
    message = await service.broadcast_message(engine, game_id, req)
    return MessageResponse(
        message=message.text,
        sender=message.sender,
        sent_at=message.sent_at,
        recipients=message.recipients,
    )


# ═══════════════════════════════════════════════════
# PREDEFINED PLAYERS
# ═══════════════════════════════════════════════════

@router.post(
    "/{game_id}/predefined-players",
    response_model=list[SlotView],
    status_code=status.HTTP_201_CREATED,
)
async def add_predefined_players_endpoint(game_id: str, req: PredefinedPlayersRequest):
    return await service.add_predefined_players(game_id, req.players)


@router.get("/{game_id}/predefined-players", response_model=list[SlotView])
async def list_predefined_players_endpoint(game_id: str):
    return await service.list_predefined_players(game_id)


@router.put("/{game_id}/predefined-players/{slot_id}", response_model=SlotView)
async def update_predefined_player_endpoint(game_id: str, slot_id: str, req: PredefinedSlotUpdate):
    return await service.update_predefined_player(game_id, slot_id, req)


@router.delete("/{game_id}/predefined-players/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_predefined_player_endpoint(game_id: str, slot_id: str):
    await service.delete_predefined_player(game_id, slot_id)
