import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class GameError(Exception):
    """Caller-facing failure. Carries the error code and the HTTP status it maps to."""

    def __init__(self, code: str, message: str, status: int = 400, details: dict | None = None):
        self.code = code
        self.message = message
        self.status = status
        self.details = details or {}
        super().__init__(message)


class NotFoundError(GameError):
    def __init__(self, code: str = "NOT_FOUND", message: str = "Resource not found", details: dict | None = None):
        super().__init__(code, message, 404, details)


class ValidationError(GameError):
    def __init__(self, code: str = "VALIDATION_ERROR", message: str = "Invalid input", details: dict | None = None):
        super().__init__(code, message, 422, details)


class ConflictError(GameError):
    def __init__(self, code: str = "CONFLICT", message: str = "Resource already exists", details: dict | None = None):
        super().__init__(code, message, 409, details)


# ── Task ledger ──────────────────────────────────────

class InvalidTaskCountError(GameError):
    def __init__(self, count: int, expected: int = 6):
        super().__init__(
            "INVALID_TASK_COUNT",
            f"Exactly {expected} tasks are required, got {count}",
            details={"count": count, "expected": expected},
        )


class GameAlreadyActiveError(GameError):
    def __init__(self, message: str = "Cannot modify a game that has started"):
        super().__init__("GAME_ACTIVE", message)


# ── Progress ─────────────────────────────────────────

class GameNotActiveError(GameError):
    def __init__(self, code: str = "GAME_NOT_ACTIVE", message: str = "Game is not active"):
        super().__init__(code, message)


class GameExpiredError(GameNotActiveError):
    def __init__(self):
        super().__init__("GAME_EXPIRED", "Game has expired")


class InactiveContextError(GameError):
    def __init__(self):
        super().__init__("INACTIVE_PLAYER_OR_GAME", "Cannot update location for inactive player or game")


class InvalidRoleError(GameError):
    def __init__(self, message: str = "Only fugitives can complete tasks"):
        super().__init__("INVALID_PLAYER_ROLE", message, 403)


class PlayerNotActiveError(GameError):
    def __init__(self):
        super().__init__("PLAYER_NOT_ACTIVE", "Player is not active")


class InvalidPlayerStatusError(GameError):
    def __init__(self, status: str):
        super().__init__(
            "INVALID_PLAYER_STATUS",
            f"Status {status} cannot be set directly",
            details={"status": status},
        )


class TasksRemainingError(GameError):
    def __init__(self, completed: int, expected: int = 6):
        super().__init__(
            "TASKS_NOT_COMPLETED",
            f"Only fugitives who completed all {expected} tasks can escape",
            details={"tasks_completed": completed, "expected": expected},
        )


class PlayerGameMismatchError(GameError):
    def __init__(self):
        super().__init__("PLAYER_GAME_MISMATCH", "Player does not belong to this game", 403)


class SequentialCompletionRequiredError(GameError):
    def __init__(self, expected: int):
        super().__init__(
            "SEQUENTIAL_COMPLETION_REQUIRED",
            f"You must complete task {expected} first",
            details={"expected_task_number": expected},
        )


class TaskAlreadyCompletedError(GameError):
    def __init__(self, task_number: int):
        super().__init__(
            "TASK_ALREADY_COMPLETED",
            f"Task {task_number} already completed",
            details={"task_number": task_number},
        )


# ── Lifecycle ────────────────────────────────────────

class InvalidGameStatusError(GameError):
    def __init__(self, message: str, status: str | None = None):
        super().__init__("INVALID_GAME_STATUS", message, details={"status": status} if status else None)


class NoPlayersError(GameError):
    def __init__(self, message: str = "Game must have at least one player"):
        super().__init__("NO_PLAYERS", message)


class IncompleteTasksError(GameError):
    def __init__(self, expected: int = 6):
        super().__init__("INCOMPLETE_TASKS", f"Game must have exactly {expected} tasks")


# ── Joining ──────────────────────────────────────────

class GameClosedError(GameError):
    def __init__(self, message: str = "Game is no longer accepting players"):
        super().__init__("GAME_CLOSED", message)


class GameFullError(GameError):
    def __init__(self):
        super().__init__("GAME_FULL", "Game is full")


class InvalidPasswordError(GameError):
    def __init__(self):
        super().__init__("INVALID_PASSWORD", "Invalid password for this player slot", 401)


class SlotAlreadyJoinedError(GameError):
    def __init__(self, message: str = "Player slot has already been joined"):
        super().__init__("PLAYER_ALREADY_JOINED", message)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(GameError)
    async def game_error_handler(request: Request, exc: GameError):
        return JSONResponse(
            status_code=exc.status,
            content={
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "details": exc.details,
                }
            },
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc!r}")
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": str(exc) if app.debug else "Internal server error",
                    "details": {},
                }
            },
        )
