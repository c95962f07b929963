"""Unit tests for the expiration sweeper."""

import asyncio
from datetime import timedelta

import pytest

from klopjacht.apps.games.models import EndReason, GameStatus, get_game, modify_game
from klopjacht.apps.players.models import PlayerStatus, list_players
from klopjacht.core.config import GameRules
from klopjacht.core.sweeper import ExpirationSweeper


def _started_minutes_ago(game_id, clock, minutes):
    def _shift(g):
        g.start_time = clock.now() - timedelta(minutes=minutes)
        g.end_time = g.start_time + timedelta(minutes=g.duration)
        return g
    return modify_game(game_id, _shift)


class TestRunOnce:
    """Test ExpirationSweeper.run_once."""

    @pytest.mark.asyncio
    async def test_ends_expired_game(self, engine, factory, clock):
        game, _, _ = await factory.running_game(fugitives=2, hunters=1, duration=60)
        _started_minutes_ago(game.id, clock, 61)

        ended = await engine.sweeper.run_once()

        assert ended == 1
        game = get_game(game.id)
        assert game.status == GameStatus.COMPLETED
        assert game.results.end_reason == EndReason.TIME_EXPIRED
        assert {p.status for p in list_players(game.id)} == {PlayerStatus.COMPLETED}

    @pytest.mark.asyncio
    async def test_leaves_running_games_alone(self, engine, factory, clock):
        game, _, _ = await factory.running_game(duration=60)
        clock.advance(minutes=59)

        assert await engine.sweeper.run_once() == 0
        assert get_game(game.id).status == GameStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_second_sweep_is_a_no_op(self, engine, factory, clock, notifier):
        game, _, _ = await factory.running_game(duration=60)
        clock.advance(minutes=61)

        first = await engine.sweeper.run_once()
        second = await engine.sweeper.run_once()

        assert (first, second) == (1, 0)
        assert notifier.names().count("game_ended") == 1

    @pytest.mark.asyncio
    async def test_paused_games_are_not_swept(self, engine, factory, clock):
        game, _, _ = await factory.running_game(duration=60)
        await engine.lifecycle.pause(game.id)
        clock.advance(minutes=120)

        assert await engine.sweeper.run_once() == 0
        assert get_game(game.id).status == GameStatus.PAUSED

    @pytest.mark.asyncio
    async def test_one_failing_game_does_not_stop_the_sweep(self, engine, factory, clock, monkeypatch):
        broken, _, _ = await factory.running_game(duration=60)
        healthy, _, _ = await factory.running_game(duration=60)
        clock.advance(minutes=61)

        real_try_end = engine.lifecycle.try_end

        async def flaky_try_end(game_id, reason):
            if game_id == broken.id:
                raise RuntimeError("store unavailable")
            return await real_try_end(game_id, reason)

        monkeypatch.setattr(engine.lifecycle, "try_end", flaky_try_end)

        ended = await engine.sweeper.run_once()

        assert ended == 1
        assert get_game(broken.id).status == GameStatus.ACTIVE
        assert get_game(healthy.id).status == GameStatus.COMPLETED


class TestBackgroundLoop:
    """Test ExpirationSweeper.start/stop."""

    @pytest.mark.asyncio
    async def test_loop_sweeps_until_stopped(self, engine, factory, clock):
        sweeper = ExpirationSweeper(engine.lifecycle, GameRules(expiry_check_interval=0.01), clock)
        game, _, _ = await factory.running_game(duration=60)
        clock.advance(minutes=61)

        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert not sweeper.running
        assert get_game(game.id).status == GameStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stop_without_start(self, engine, clock):
        sweeper = ExpirationSweeper(engine.lifecycle, GameRules(), clock)
        await sweeper.stop()
        assert not sweeper.running
