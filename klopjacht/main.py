"""
main.py — FastAPI Application Factory
======================================
Klopjacht Backend API

Builds and configures the FastAPI application. The factory makes it
easy to spin up differently configured apps in tests.

Usage:
    # Development mode (hot-reload)
    uvicorn klopjacht.main:app --reload

    # Or directly
    python -m klopjacht.main

    # Production mode
    uvicorn klopjacht.main:app --host 0.0.0.0 --port 8000
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from klopjacht.core.config import get_settings
from klopjacht.core.dependencies import get_engine
from klopjacht.core.errors import register_error_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle manager.
    Starts the expiration sweeper on startup and stops it on shutdown.
    """
    # ═══════════════════════════════════════════════════
    # STARTUP
    # ═══════════════════════════════════════════════════
    settings = get_settings()
    logger.info(f"🚀 Starting {settings.APP_NAME} v{settings.VERSION}")
    logger.info(f"📍 Environment: {settings.ENV}")

    engine = get_engine()
    if settings.EXPIRY_SWEEPER_ENABLED:
        engine.sweeper.start()
    else:
        logger.info("⚠️  Expiration sweeper disabled")

    yield

    # ═══════════════════════════════════════════════════
    # SHUTDOWN
    # ═══════════════════════════════════════════════════
    await engine.sweeper.stop()
    logger.info("👋 Shutting down gracefully...")


def create_app() -> FastAPI:
    """
    FastAPI application factory.

    Returns:
        FastAPI: configured application
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # ═══════════════════════════════════════════════════
    # FastAPI App
    # ═══════════════════════════════════════════════════
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="Klopjacht: location-based chase game",
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    # ═══════════════════════════════════════════════════
    # CORS Middleware (player and admin frontends)
    # ═══════════════════════════════════════════════════
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_CREDENTIALS,
        allow_methods=settings.CORS_METHODS,
        allow_headers=settings.CORS_HEADERS,
    )

    # ═══════════════════════════════════════════════════
    # Request Timing Middleware
    # ═══════════════════════════════════════════════════
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.4f}s"
        return response

    register_error_handlers(app)

    # ═══════════════════════════════════════════════════
    # Health Check Endpoint
    # ═══════════════════════════════════════════════════
    @app.get("/health", tags=["system"])
    def health_check():
        """For load balancers and monitoring."""
        return {
            "status": "ok",
            "app": settings.APP_NAME,
            "version": settings.VERSION,
            "environment": settings.ENV,
        }

    @app.get("/", tags=["system"])
    def root():
        return {
            "message": f"{settings.APP_NAME} API",
            "version": settings.VERSION,
            "environment": settings.ENV,
            "docs": "/docs" if settings.DEBUG else "disabled",
        }

    # ═══════════════════════════════════════════════════
    # Routers
    # ═══════════════════════════════════════════════════
    from klopjacht.apps.games.router import router as games_router
    from klopjacht.apps.players.router import router as players_router
    from klopjacht.apps.tasks.router import router as tasks_router
    from klopjacht.apps.ws.router import router as ws_router

    app.include_router(games_router)
    app.include_router(players_router)
    app.include_router(tasks_router)
    app.include_router(ws_router)

    return app


# ═══════════════════════════════════════════════════
# Application Instance (for uvicorn)
# ═══════════════════════════════════════════════════
app = create_app()


# ═══════════════════════════════════════════════════
# CLI Entry Point (python -m klopjacht.main)
# ═══════════════════════════════════════════════════
if __name__ == "__main__":
    import uvicorn
    settings = get_settings()

    print("=" * 60)
    print(f"🎯 {settings.APP_NAME}")
    print("=" * 60)
    print(f"📡 Starting server at http://{settings.HOST}:{settings.PORT}")
    print(f"📚 API Docs: http://{settings.HOST}:{settings.PORT}/docs")
    print("=" * 60)

    uvicorn.run(
        "klopjacht.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
    )
