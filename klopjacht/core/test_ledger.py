"""Unit tests for the task ledger."""

import json

import pytest

from conftest import task_specs
from klopjacht.apps.games.models import GameStatus, get_game, modify_game
from klopjacht.core.errors import GameAlreadyActiveError, InvalidTaskCountError, NotFoundError
from klopjacht.core.ledger import PayloadCodeRenderer, normalize_answer


class TestAttachTasks:
    """Test TaskLedger.attach_tasks."""

    @pytest.mark.asyncio
    async def test_numbers_and_normalizes(self, engine, factory):
        game = factory.game()
        specs = task_specs()
        specs[0].answer = "  De Wallen "

        game = await engine.ledger.attach_tasks(game.id, specs)

        assert [t.task_number for t in game.tasks] == [1, 2, 3, 4, 5, 6]
        assert game.tasks[0].answer == "de wallen"
        assert game.tasks[1].answer == "answer 2"

    @pytest.mark.asyncio
    async def test_setup_game_becomes_waiting(self, engine, factory):
        game = factory.game()
        assert game.status == GameStatus.SETUP

        game = await engine.ledger.attach_tasks(game.id, task_specs())

        assert game.status == GameStatus.WAITING

    @pytest.mark.asyncio
    async def test_renders_a_code_per_task(self, engine, factory):
        game = await factory.game_with_tasks()

        payload = json.loads(game.tasks[2].code)
        assert payload["gameId"] == game.id
        assert payload["taskNumber"] == 3
        assert payload["taskId"] == "task_3"
        assert payload["url"] == f"https://klopjacht.test/task/{game.id}/3"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, 5, 7])
    async def test_requires_exactly_six(self, engine, factory, count):
        game = factory.game()

        with pytest.raises(InvalidTaskCountError):
            await engine.ledger.attach_tasks(game.id, task_specs(count))

        assert get_game(game.id).tasks == []

    @pytest.mark.asyncio
    async def test_replacing_tasks_before_start(self, engine, factory):
        game = await factory.game_with_tasks()
        specs = task_specs()
        specs[5].answer = "Nieuw"

        game = await engine.ledger.attach_tasks(game.id, specs)

        assert len(game.tasks) == 6
        assert game.get_task(6).answer == "nieuw"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [GameStatus.ACTIVE, GameStatus.PAUSED])
    async def test_rejected_once_started(self, engine, factory, status):
        game = await factory.game_with_tasks()

        def _set(g):
            g.status = status
            return g

        modify_game(game.id, _set)

        with pytest.raises(GameAlreadyActiveError):
            await engine.ledger.attach_tasks(game.id, task_specs())

    @pytest.mark.asyncio
    async def test_unknown_game(self, engine):
        with pytest.raises(NotFoundError):
            await engine.ledger.attach_tasks("nope", task_specs())


class TestLedgerLookups:
    """Test get_task, record_completion and next_task_for."""

    @pytest.mark.asyncio
    async def test_get_task(self, engine, factory):
        game = await factory.game_with_tasks()

        assert engine.ledger.get_task(game, 4).task_number == 4
        with pytest.raises(NotFoundError):
            engine.ledger.get_task(game, 7)

    @pytest.mark.asyncio
    async def test_record_completion_is_a_plain_append(self, engine, factory, clock):
        game = await factory.game_with_tasks()

        await engine.ledger.record_completion(game.id, 3, "p1", clock.now())
        game = await engine.ledger.record_completion(game.id, 3, "p1", clock.now())

        assert [c.player_id for c in game.get_task(3).completed_by] == ["p1", "p1"]

    @pytest.mark.asyncio
    async def test_next_task_for(self, engine, factory):
        game = await factory.game_with_tasks()
        player = factory.player(game)

        assert engine.ledger.next_task_for(game, player).task_number == 1

        player = await factory.complete_all_tasks(await engine.lifecycle.start(game.id), player)
        assert engine.ledger.next_task_for(game, player) is None


def test_normalize_answer():
    assert normalize_answer("  ANSWER ") == "answer"


def test_payload_renderer_strips_trailing_slash():
    renderer = PayloadCodeRenderer("https://example.org/")
    payload = json.loads(renderer.render({"gameId": "g", "taskNumber": 1}))
    assert payload["url"] == "https://example.org/task/g/1"
