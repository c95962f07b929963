from dataclasses import dataclass

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ═══════════════════════════════════════════════════
    # FastAPI Application Settings
    # ═══════════════════════════════════════════════════
    APP_NAME: str = "Klopjacht"
    VERSION: str = "0.1.0"
    ENV: str = "development"  # "development" | "production"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # ═══════════════════════════════════════════════════
    # Server Configuration
    # ═══════════════════════════════════════════════════
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Base URL of the player frontend, embedded in task codes
    FRONTEND_URL: str = "http://localhost:3000"

    # ═══════════════════════════════════════════════════
    # Game Rules
    # ═══════════════════════════════════════════════════
    LOCATION_HISTORY_LIMIT: int = 100  # fixes kept per player

    # ═══════════════════════════════════════════════════
    # Expiration Sweeper
    # ═══════════════════════════════════════════════════
    EXPIRY_SWEEPER_ENABLED: bool = True
    EXPIRY_CHECK_INTERVAL_SECONDS: float = 60.0

    # ═══════════════════════════════════════════════════
    # WebSocket Configuration
    # ═══════════════════════════════════════════════════
    WS_HEARTBEAT_INTERVAL: int = 30  # seconds

    # ═══════════════════════════════════════════════════
    # CORS Configuration
    # ═══════════════════════════════════════════════════
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:3001"]
    CORS_CREDENTIALS: bool = True
    CORS_METHODS: list[str] = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    CORS_HEADERS: list[str] = ["Content-Type", "Authorization"]

    class Config:
        env_file = ".env"
        extra = "ignore"


@dataclass(frozen=True)
class GameRules:
    """
    Game rules handed to the engine components.

    Built once from Settings so that the ledger, tracker, lifecycle and
    sweeper never read the environment while a request is running.
    """
    tasks_per_game: int = 6
    location_history_limit: int = 100
    expiry_check_interval: float = 60.0

    @classmethod
    def from_settings(cls, settings: "Settings") -> "GameRules":
        return cls(
            location_history_limit=settings.LOCATION_HISTORY_LIMIT,
            expiry_check_interval=settings.EXPIRY_CHECK_INTERVAL_SECONDS,
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Process-wide Settings instance.

    Usable as a FastAPI dependency:

    @app.get("/info")
    def info(settings: Settings = Depends(get_settings)):
        return {"env": settings.ENV}
    """
    global _settings
    if not _settings:
        _settings = Settings()
    return _settings
