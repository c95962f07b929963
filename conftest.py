"""Shared test fixtures for the Klopjacht backend."""

import uuid
from typing import Any

import pytest

from klopjacht.apps.games.models import (
    ExtractionPoint,
    GameRecord,
    GeoPoint,
    TaskSpec,
    get_game,
    save_game,
    generate_game_code,
)
from klopjacht.apps.players.models import (
    PlayerRecord,
    PlayerRole,
    PlayerStatus,
    get_player,
    save_player,
)
from klopjacht.core.clock import FrozenClock
from klopjacht.core.config import Settings
from klopjacht.core.database import db
from klopjacht.core.dependencies import Engine, build_engine

# Extraction point on the Dam, Amsterdam
EXTRACTION = (52.37, 4.90)
NEAR_EXTRACTION = (52.3701, 4.9001)   # ~13 m away
FAR_FROM_EXTRACTION = (52.38, 4.90)   # ~1.1 km away


def task_specs(count: int = 6) -> list[TaskSpec]:
    """Task list whose answers are "Answer 1", "Answer 2", ..."""
    return [
        TaskSpec(
            question=f"What is written on plaque number {n}?",
            answer=f"Answer {n}",
            location=GeoPoint(latitude=52.36 + n * 0.001, longitude=4.88 + n * 0.001),
        )
        for n in range(1, count + 1)
    ]


class RecordingNotifier:
    """Notifier that keeps every published event."""

    def __init__(self):
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    async def publish(self, game_id: str, event: str, data: dict[str, Any]) -> None:
        self.events.append((game_id, event, data))

    def names(self) -> list[str]:
        return [event for _, event, _ in self.events]


class GameFactory:
    """Builds games and players straight into the store."""

    def __init__(self, engine: Engine, clock: FrozenClock):
        self.engine = engine
        self.clock = clock

    def game(self, duration: int = 60, radius: float = 50.0) -> GameRecord:
        return save_game(GameRecord(
            id=uuid.uuid4().hex,
            game_code=generate_game_code(),
            name="Klopjacht Test",
            duration=duration,
            extraction_point=ExtractionPoint(
                latitude=EXTRACTION[0],
                longitude=EXTRACTION[1],
                radius=radius,
            ),
            created_at=self.clock.now(),
        ))

    async def game_with_tasks(self, duration: int = 60) -> GameRecord:
        game = self.game(duration=duration)
        return await self.engine.ledger.attach_tasks(game.id, task_specs())

    def player(
        self,
        game: GameRecord,
        name: str = "Sanne",
        role: PlayerRole = PlayerRole.FUGITIVE,
        status: PlayerStatus = PlayerStatus.WAITING,
    ) -> PlayerRecord:
        return save_player(PlayerRecord(
            id=uuid.uuid4().hex,
            game_id=game.id,
            name=name,
            role=role,
            status=status,
            joined_at=self.clock.now(),
        ))

    async def running_game(self, fugitives: int = 1, hunters: int = 0, duration: int = 60):
        """Started game with fugitives (and hunters). Returns (game, fugitives, hunters)."""
        game = await self.game_with_tasks(duration=duration)
        fugitive_ids = [self.player(game, name=f"Fugitive {i}").id for i in range(fugitives)]
        hunter_ids = [
            self.player(game, name=f"Hunter {i}", role=PlayerRole.HUNTER).id
            for i in range(hunters)
        ]
        game = await self.engine.lifecycle.start(game.id)
        return (
            game,
            [get_player(pid) for pid in fugitive_ids],
            [get_player(pid) for pid in hunter_ids],
        )

    async def complete_all_tasks(self, game: GameRecord, player: PlayerRecord) -> PlayerRecord:
        for n in range(1, 7):
            await self.engine.tracker.submit_answer(game.id, player.id, n, f"answer {n}")
        return get_player(player.id)

    @staticmethod
    def reload(game: GameRecord) -> GameRecord:
        return get_game(game.id)


@pytest.fixture(autouse=True)
def fresh_db():
    """Every test starts with an empty store."""
    db.clear()
    yield
    db.clear()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def settings() -> Settings:
    return Settings(EXPIRY_SWEEPER_ENABLED=False, FRONTEND_URL="https://klopjacht.test")


@pytest.fixture
def engine(settings, clock, notifier) -> Engine:
    return build_engine(settings=settings, clock=clock, notifier=notifier)


@pytest.fixture
def factory(engine, clock) -> GameFactory:
    return GameFactory(engine, clock)

