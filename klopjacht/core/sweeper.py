"""
sweeper.py — Expiration Sweeper
===============================
Background task that ends active games whose playing time has run out.

Owned by the application lifespan:

    sweeper.start()        # on startup
    await sweeper.stop()   # on shutdown

`run_once()` is the unit of work and can be called directly (tests,
admin tooling). A failure on one game is logged and the sweep moves on.
"""

import asyncio
import logging

from klopjacht.apps.games.models import EndReason, GameStatus, list_games
from klopjacht.core.clock import Clock
from klopjacht.core.config import GameRules
from klopjacht.core.lifecycle import GameLifecycle

logger = logging.getLogger(__name__)


class ExpirationSweeper:
    def __init__(self, lifecycle: GameLifecycle, rules: GameRules, clock: Clock):
        self.lifecycle = lifecycle
        self.rules = rules
        self.clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Sweep once. Returns the number of games ended."""
        now = self.clock.now()
        expired = [
            g for g in list_games(GameStatus.ACTIVE)
            if g.start_time is not None and g.is_expired(now)
        ]
        if not expired:
            return 0

        ended = 0
        for game in expired:
            try:
                if await self.lifecycle.try_end(game.id, EndReason.TIME_EXPIRED) is not None:
                    ended += 1
            except Exception:
                logger.exception(f"Failed to end expired game {game.game_code}")

        logger.info(f"⏰ Expiration sweep: {ended}/{len(expired)} expired games ended")
        return ended

    async def _loop(self):
        interval = self.rules.expiry_check_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Expiration sweep failed")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Expiration sweeper started (every {self.rules.expiry_check_interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expiration sweeper stopped")
