"""Unit tests for the player progress tracker."""

import pytest

from conftest import FAR_FROM_EXTRACTION, NEAR_EXTRACTION
from klopjacht.apps.games.models import GameStatus, Winner, get_game
from klopjacht.apps.players.models import (
    CurrentLocation,
    LocationTrigger,
    PlayerRole,
    PlayerStatus,
    get_player,
    modify_player,
)
from klopjacht.core.config import GameRules
from klopjacht.core.errors import (
    GameExpiredError,
    GameNotActiveError,
    InactiveContextError,
    InvalidGameStatusError,
    InvalidPlayerStatusError,
    InvalidRoleError,
    PlayerGameMismatchError,
    PlayerNotActiveError,
    SequentialCompletionRequiredError,
    TaskAlreadyCompletedError,
    TasksRemainingError,
)
from klopjacht.core.progress import ProgressTracker


def _set_status(player_id, status):
    def _apply(p):
        p.status = status
        return p
    return modify_player(player_id, _apply)


class TestSubmitAnswer:
    """Test ProgressTracker.submit_answer."""

    @pytest.mark.asyncio
    async def test_correct_answer_records_everything(self, engine, factory, notifier):
        game, (fugitive,), _ = await factory.running_game()

        result = await engine.tracker.submit_answer(game.id, fugitive.id, 1, "Answer 1")

        assert result.correct
        assert result.tasks_completed == 1
        player = get_player(fugitive.id)
        assert [c.task_number for c in player.completed_tasks] == [1]
        assert player.stats.tasks_completed == 1
        task = get_game(game.id).get_task(1)
        assert [c.player_id for c in task.completed_by] == [fugitive.id]
        assert get_game(game.id).results.completed_tasks == 1
        assert "task_completed" in notifier.names()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["answer 1", "  Answer 1 ", "ANSWER 1", "\tanswer 1\n"])
    async def test_answer_is_normalized(self, engine, factory, raw):
        game, (fugitive,), _ = await factory.running_game()

        result = await engine.tracker.submit_answer(game.id, fugitive.id, 1, raw)

        assert result.correct

    @pytest.mark.asyncio
    async def test_wrong_answer_is_not_an_error_and_changes_nothing(self, engine, factory, notifier):
        game, (fugitive,), _ = await factory.running_game()
        before = len(notifier.events)

        result = await engine.tracker.submit_answer(game.id, fugitive.id, 1, "Answer 2")

        assert result.correct is False
        assert result.tasks_completed == 0
        assert get_player(fugitive.id).completed_tasks == []
        assert get_game(game.id).get_task(1).completed_by == []
        assert len(notifier.events) == before

    @pytest.mark.asyncio
    async def test_next_step_points_at_next_task(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()

        result = await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")

        assert result.next_step["type"] == "next_task"
        assert result.next_step["next_task_number"] == 2
        assert result.next_step["remaining_tasks"] == 5
        assert result.next_step["next_location"]["latitude"] == game.get_task(2).location.latitude

    @pytest.mark.asyncio
    async def test_next_step_after_last_task_is_extraction(self, engine, factory, clock):
        game, (fugitive,), _ = await factory.running_game(duration=60)
        for n in range(1, 6):
            await engine.tracker.submit_answer(game.id, fugitive.id, n, f"answer {n}")
        clock.advance(minutes=10)

        result = await engine.tracker.submit_answer(game.id, fugitive.id, 6, "answer 6")

        assert result.tasks_completed == 6
        assert result.next_step["type"] == "extraction"
        assert result.next_step["extraction_point"]["radius"] == 50
        assert result.next_step["remaining_time"] == 50 * 60

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ordinal", [2, 3, 4, 5, 6])
    async def test_out_of_order_is_rejected_without_mutation(self, engine, factory, ordinal):
        game, (fugitive,), _ = await factory.running_game()

        with pytest.raises(SequentialCompletionRequiredError) as exc:
            await engine.tracker.submit_answer(game.id, fugitive.id, ordinal, f"answer {ordinal}")

        assert exc.value.details["expected_task_number"] == 1
        assert get_player(fugitive.id).tasks_completed == 0
        assert get_game(game.id).get_task(ordinal).completed_by == []

    @pytest.mark.asyncio
    async def test_resubmission_is_rejected_and_not_counted(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()

        first = await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")
        with pytest.raises(TaskAlreadyCompletedError):
            await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")

        assert first.correct
        assert get_player(fugitive.id).tasks_completed == 1
        assert len(get_game(game.id).get_task(1).completed_by) == 1

    @pytest.mark.asyncio
    async def test_earlier_task_counts_as_already_completed(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()
        await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")
        await engine.tracker.submit_answer(game.id, fugitive.id, 2, "answer 2")

        with pytest.raises(TaskAlreadyCompletedError):
            await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")

    @pytest.mark.asyncio
    async def test_concurrent_submission_is_counted_once(self, engine, factory, monkeypatch):
        game, (fugitive,), _ = await factory.running_game()
        stale = get_player(fugitive.id)
        first = await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")

        # The second submitter read the player before the first one was written.
        monkeypatch.setattr("klopjacht.core.progress.get_player", lambda player_id: stale)
        with pytest.raises(TaskAlreadyCompletedError):
            await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")

        assert first.correct
        player = get_player(fugitive.id)
        assert [c.task_number for c in player.completed_tasks] == [1]
        assert player.stats.tasks_completed == 1
        assert len(get_game(game.id).get_task(1).completed_by) == 1

    @pytest.mark.asyncio
    async def test_submission_after_capture_is_refused_atomically(self, engine, factory, monkeypatch):
        game, (fugitive,), _ = await factory.running_game()
        stale = get_player(fugitive.id)
        await engine.tracker.set_status(fugitive.id, PlayerStatus.CAUGHT)

        monkeypatch.setattr("klopjacht.core.progress.get_player", lambda player_id: stale)
        with pytest.raises(PlayerNotActiveError):
            await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")

        assert get_player(fugitive.id).completed_tasks == []
        assert get_game(game.id).get_task(1).completed_by == []

    @pytest.mark.asyncio
    async def test_only_fugitives_submit(self, engine, factory):
        game, _, (hunter,) = await factory.running_game(hunters=1)

        with pytest.raises(InvalidRoleError):
            await engine.tracker.submit_answer(game.id, hunter.id, 1, "answer 1")

    @pytest.mark.asyncio
    async def test_game_must_be_active(self, engine, factory):
        game = await factory.game_with_tasks()
        fugitive = factory.player(game)

        with pytest.raises(GameNotActiveError):
            await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")

    @pytest.mark.asyncio
    async def test_expired_game_rejects_before_sweep(self, engine, factory, clock):
        game, (fugitive,), _ = await factory.running_game(duration=60)
        clock.advance(minutes=61)

        with pytest.raises(GameExpiredError):
            await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")

    @pytest.mark.asyncio
    async def test_caught_player_cannot_submit(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()
        _set_status(fugitive.id, PlayerStatus.CAUGHT)

        with pytest.raises(PlayerNotActiveError):
            await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")

    @pytest.mark.asyncio
    async def test_waiting_player_is_promoted(self, engine, factory):
        game, _, _ = await factory.running_game()
        late = factory.player(game, name="Late", status=PlayerStatus.WAITING)

        result = await engine.tracker.submit_answer(game.id, late.id, 1, "answer 1")

        assert result.correct
        assert get_player(late.id).status == PlayerStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_player_from_other_game(self, engine, factory):
        game, _, _ = await factory.running_game()
        other, (stranger,), _ = await factory.running_game()

        with pytest.raises(PlayerGameMismatchError):
            await engine.tracker.submit_answer(game.id, stranger.id, 1, "answer 1")

    @pytest.mark.asyncio
    async def test_location_on_submission_is_recorded(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()
        where = CurrentLocation(latitude=52.361, longitude=4.881)

        await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1", location=where)

        player = get_player(fugitive.id)
        assert player.completed_tasks[0].location.latitude == 52.361
        assert player.current_location.latitude == 52.361
        assert player.location_history[-1].trigger == LocationTrigger.TASK_COMPLETION

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_undo_progress(self, engine, factory):
        class BrokenNotifier:
            async def publish(self, game_id, event, data):
                raise ConnectionError("socket gone")

        game, (fugitive,), _ = await factory.running_game()
        engine.tracker.notifier = BrokenNotifier()

        result = await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")

        assert result.correct
        assert get_player(fugitive.id).tasks_completed == 1


class TestUpdateLocation:
    """Test ProgressTracker.update_location."""

    @pytest.mark.asyncio
    async def test_stores_location_and_history(self, engine, factory, notifier):
        game, (fugitive,), _ = await factory.running_game()

        result = await engine.tracker.update_location(fugitive.id, *FAR_FROM_EXTRACTION, accuracy=5)

        assert not result.escaped
        player = get_player(fugitive.id)
        assert player.current_location.latitude == FAR_FROM_EXTRACTION[0]
        assert player.current_location.accuracy == 5
        assert len(player.location_history) == 1
        assert player.stats.last_location_update is not None
        assert "location_updated" in notifier.names()

    @pytest.mark.asyncio
    async def test_history_is_capped_oldest_first(self, engine, factory, clock, notifier):
        game, (fugitive,), _ = await factory.running_game()
        tracker = ProgressTracker(GameRules(location_history_limit=3), engine.ledger, clock, notifier)

        for i in range(5):
            await tracker.update_location(fugitive.id, 52.0 + i * 0.01, 4.9)

        history = get_player(fugitive.id).location_history
        assert [round(h.latitude, 2) for h in history] == [52.02, 52.03, 52.04]

    @pytest.mark.asyncio
    async def test_distance_accumulates(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()

        await engine.tracker.update_location(fugitive.id, 52.0, 4.9)
        await engine.tracker.update_location(fugitive.id, 52.01, 4.9)
        await engine.tracker.update_location(fugitive.id, 52.02, 4.9)

        assert get_player(fugitive.id).stats.distance_traveled == pytest.approx(2 * 1111.95, rel=1e-3)

    @pytest.mark.asyncio
    async def test_inactive_game(self, engine, factory):
        game = await factory.game_with_tasks()
        fugitive = factory.player(game, status=PlayerStatus.ACTIVE)

        with pytest.raises(InactiveContextError):
            await engine.tracker.update_location(fugitive.id, *NEAR_EXTRACTION)

    @pytest.mark.asyncio
    async def test_inactive_player(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()
        _set_status(fugitive.id, PlayerStatus.CAUGHT)

        with pytest.raises(InactiveContextError):
            await engine.tracker.update_location(fugitive.id, *NEAR_EXTRACTION)

    @pytest.mark.asyncio
    async def test_fugitive_with_all_tasks_escapes(self, engine, factory, notifier):
        game, (fugitive,), _ = await factory.running_game()
        await factory.complete_all_tasks(game, fugitive)

        result = await engine.tracker.update_location(fugitive.id, *NEAR_EXTRACTION)

        assert result.escaped
        assert get_player(fugitive.id).status == PlayerStatus.ESCAPED
        assert "player_escaped" in notifier.names()

    @pytest.mark.asyncio
    async def test_no_escape_outside_radius(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()
        await factory.complete_all_tasks(game, fugitive)

        result = await engine.tracker.update_location(fugitive.id, *FAR_FROM_EXTRACTION)

        assert not result.escaped
        assert get_player(fugitive.id).status == PlayerStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_no_escape_with_tasks_left(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()
        await engine.tracker.submit_answer(game.id, fugitive.id, 1, "answer 1")

        result = await engine.tracker.update_location(fugitive.id, *NEAR_EXTRACTION)

        assert not result.escaped
        assert get_player(fugitive.id).status == PlayerStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_hunters_never_escape(self, engine, factory):
        game, _, (hunter,) = await factory.running_game(hunters=1)

        result = await engine.tracker.update_location(hunter.id, *NEAR_EXTRACTION)

        assert not result.escaped
        assert get_player(hunter.id).status == PlayerStatus.ACTIVE


class TestSetStatus:
    """Test ProgressTracker.set_status."""

    @pytest.mark.asyncio
    async def test_catching_a_fugitive(self, engine, factory, clock, notifier):
        game, (fugitive,), (hunter,) = await factory.running_game(hunters=1)
        await engine.tracker.update_location(fugitive.id, *FAR_FROM_EXTRACTION)

        player = await engine.tracker.set_status(fugitive.id, PlayerStatus.CAUGHT, caught_by=hunter.id)

        assert player.status == PlayerStatus.CAUGHT
        assert player.caught_by == hunter.id
        assert player.caught_at == clock.now()
        assert player.caught_location.latitude == FAR_FROM_EXTRACTION[0]
        caught = get_game(game.id).results.fugitives_caught
        assert [c.player_id for c in caught] == [fugitive.id]
        _, event, data = notifier.events[-1]
        assert event == "player_status_changed"
        assert data["old_status"] == "active"
        assert data["new_status"] == "caught"

    @pytest.mark.asyncio
    async def test_hunters_cannot_be_caught(self, engine, factory):
        game, _, (hunter,) = await factory.running_game(hunters=1)

        with pytest.raises(InvalidRoleError):
            await engine.tracker.set_status(hunter.id, PlayerStatus.CAUGHT)

    @pytest.mark.asyncio
    async def test_finished_game_is_frozen(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()
        await engine.lifecycle.end(game.id)

        with pytest.raises(InvalidGameStatusError):
            await engine.tracker.set_status(fugitive.id, PlayerStatus.ACTIVE)

    @pytest.mark.asyncio
    async def test_game_master_can_disconnect_a_player(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()

        player = await engine.tracker.set_status(fugitive.id, PlayerStatus.DISCONNECTED)

        assert player.status == PlayerStatus.DISCONNECTED
        assert player.role == PlayerRole.FUGITIVE
        assert get_game(game.id).status == GameStatus.ACTIVE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [PlayerStatus.PAUSED, PlayerStatus.COMPLETED])
    async def test_game_driven_statuses_cannot_be_forced(self, engine, factory, status):
        game, (fugitive,), _ = await factory.running_game()

        with pytest.raises(InvalidPlayerStatusError):
            await engine.tracker.set_status(fugitive.id, status)
        assert get_player(fugitive.id).status == PlayerStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_escape_needs_all_tasks(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()

        with pytest.raises(TasksRemainingError):
            await engine.tracker.set_status(fugitive.id, PlayerStatus.ESCAPED)

        game = await engine.lifecycle.end(game.id)
        assert game.results.winner == Winner.NONE

    @pytest.mark.asyncio
    async def test_hunters_cannot_escape(self, engine, factory):
        game, _, (hunter,) = await factory.running_game(hunters=1)

        with pytest.raises(InvalidRoleError):
            await engine.tracker.set_status(hunter.id, PlayerStatus.ESCAPED)

    @pytest.mark.asyncio
    async def test_game_master_can_release_a_finished_fugitive(self, engine, factory):
        game, (fugitive,), _ = await factory.running_game()
        await factory.complete_all_tasks(game, fugitive)

        player = await engine.tracker.set_status(fugitive.id, PlayerStatus.ESCAPED)

        assert player.status == PlayerStatus.ESCAPED
        assert (await engine.lifecycle.end(game.id)).results.winner == Winner.FUGITIVES
