"""
router.py — Player REST Endpoints
==================================
Joining, session restore, location updates, status changes, task
completion and stats.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status

from klopjacht.apps.games import service as game_service
from klopjacht.apps.players import service
from klopjacht.apps.players.models import PlayerRole, PlayerStatus
from klopjacht.apps.players.schema import (
    CompleteTaskRequest,
    JoinRequest,
    JoinResponse,
    LocationUpdateRequest,
    LocationUpdateResponse,
    PlayerListResponse,
    PlayerResponse,
    PlayerStatsResponse,
    RestoreSessionRequest,
    StatusUpdateRequest,
)
from klopjacht.apps.tasks.schema import SubmitAnswerResponse
from klopjacht.apps.tasks.service import submission_response
from klopjacht.core.dependencies import Engine, get_engine

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════
# ROUTER SETUP
# ═══════════════════════════════════════════════════

router = APIRouter(prefix="/api/players", tags=["players"])


# ═══════════════════════════════════════════════════
# JOIN / SESSION
# ═══════════════════════════════════════════════════

@router.post("/join", response_model=JoinResponse, status_code=status.HTTP_201_CREATED)
async def join_game_endpoint(req: JoinRequest, engine: Engine = Depends(get_engine)):
    """
    Join a game by code.

    Returns:
        201: Joined (or rejoined a claimed slot)
        400: Game closed or full
        401: Wrong slot password
        404: Unknown game code or slot
        409: Name already taken
    """
    player, game, rejoined = await service.join_game(engine, req)
    return JoinResponse(
        player=PlayerResponse.from_record(player),
        game=game_service.to_response(game, engine.clock.now()),
        rejoined=rejoined,
    )


@router.post("/restore-session", response_model=JoinResponse)
async def restore_session_endpoint(req: RestoreSessionRequest, engine: Engine = Depends(get_engine)):
    player, game = await service.restore_session(req.player_id, req.game_code)
    return JoinResponse(
        player=PlayerResponse.from_record(player),
        game=game_service.to_response(game, engine.clock.now()),
        rejoined=True,
    )


# ═══════════════════════════════════════════════════
# QUERIES
# ═══════════════════════════════════════════════════

@router.get("/", response_model=PlayerListResponse)
async def list_players_endpoint(
    game_id: Optional[str] = None,
    role: Optional[PlayerRole] = None,
    status: Optional[PlayerStatus] = None,
):
    return await service.list_game_players(game_id, role, status)


@router.get("/{player_id}", response_model=PlayerResponse)
async def get_player_endpoint(player_id: str):
    return PlayerResponse.from_record(service.get_player_or_404(player_id))


@router.get("/{player_id}/stats", response_model=PlayerStatsResponse)
async def player_stats_endpoint(player_id: str, engine: Engine = Depends(get_engine)):
    return await service.get_player_stats(engine, player_id)


# ═══════════════════════════════════════════════════
# GAMEPLAY
# ═══════════════════════════════════════════════════

@router.put("/{player_id}/location", response_model=LocationUpdateResponse)
async def update_location_endpoint(
    player_id: str,
    req: LocationUpdateRequest,
    engine: Engine = Depends(get_engine),
):
    """
    Report the player's position.

    Returns:
        200: Location stored; `escaped` is true when this fix got a
             fugitive out through the extraction point
        400: Game or player not active
    """
    result = await engine.tracker.update_location(
        player_id,
        req.latitude,
        req.longitude,
        accuracy=req.accuracy,
        trigger=req.trigger,
    )
    return LocationUpdateResponse(
        player=PlayerResponse.from_record(result.player),
        escaped=result.escaped,
    )


@router.put("/{player_id}/status", response_model=PlayerResponse)
async def update_status_endpoint(
    player_id: str,
    req: StatusUpdateRequest,
    engine: Engine = Depends(get_engine),
):
    """Game master status change, e.g. marking a fugitive as caught."""
    player = await engine.tracker.set_status(
        player_id,
        req.status,
        caught_by=req.caught_by,
        location=req.location,
    )
    return PlayerResponse.from_record(player)


@router.post("/{player_id}/complete-task", response_model=SubmitAnswerResponse)
async def complete_task_endpoint(
    player_id: str,
    req: CompleteTaskRequest,
    engine: Engine = Depends(get_engine),
):
    """Same as submitting an answer through /api/tasks, addressed by player."""
    player = service.get_player_or_404(player_id)
    result = await engine.tracker.submit_answer(
        player.game_id,
        player.id,
        req.task_number,
        req.answer,
        location=req.location,
    )
    return submission_response(result)


@router.delete("/{player_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_player_endpoint(player_id: str):
    await service.remove_player(player_id)
