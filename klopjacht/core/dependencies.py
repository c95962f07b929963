"""
dependencies.py — Engine Wiring
===============================
Builds the game engine (ledger, progress tracker, lifecycle, sweeper)
from Settings and hands it to routers through FastAPI's Depends.

    @router.post("/{game_id}/start")
    async def start_game(game_id: str, engine: Engine = Depends(get_engine)):
        ...

Tests build their own engine with a frozen clock and a recording
notifier and plug it in with `app.dependency_overrides[get_engine]`.
"""

from dataclasses import dataclass

from klopjacht.core.clock import Clock
from klopjacht.core.config import GameRules, Settings, get_settings
from klopjacht.core.ledger import PayloadCodeRenderer, TaskLedger
from klopjacht.core.lifecycle import GameLifecycle
from klopjacht.core.notifier import Notifier
from klopjacht.core.progress import ProgressTracker
from klopjacht.core.sweeper import ExpirationSweeper


@dataclass
class Engine:
    settings: Settings
    rules: GameRules
    clock: Clock
    notifier: Notifier
    ledger: TaskLedger
    tracker: ProgressTracker
    lifecycle: GameLifecycle
    sweeper: ExpirationSweeper


def build_engine(
    settings: Settings | None = None,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
) -> Engine:
    settings = settings or get_settings()
    clock = clock or Clock()
    if notifier is None:
        from klopjacht.apps.ws.service import manager
        notifier = manager

    rules = GameRules.from_settings(settings)
    ledger = TaskLedger(rules, PayloadCodeRenderer(settings.FRONTEND_URL))
    lifecycle = GameLifecycle(rules, clock, notifier)
    return Engine(
        settings=settings,
        rules=rules,
        clock=clock,
        notifier=notifier,
        ledger=ledger,
        tracker=ProgressTracker(rules, ledger, clock, notifier),
        lifecycle=lifecycle,
        sweeper=ExpirationSweeper(lifecycle, rules, clock),
    )


_engine: Engine | None = None


def get_engine() -> Engine:
    """Process-wide engine, built on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine
