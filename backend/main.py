# backend/main.py

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import Settings, settings as default_settings
from core.logging import setup_logging, get_logger
from core.state import AppState
from api.routes import health, turn
from api import websocket as websocket_module
from services.housekeeping import run_periodically

# Configure logging first
setup_logging()
logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, app_state: Optional[AppState] = None) -> FastAPI:
    """
    Build the signaling application.

    Each call gets its own room registry and rate limiter, so tests (or
    several apps in one process) never share state.
    """
    settings = settings or default_settings
    app_state = app_state or AppState(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Signaling relay starting (env=%s)", settings.APP_ENV)

        # Periodic housekeeping in the background
        tasks = [
            asyncio.create_task(
                run_periodically(
                    "rate-limit", settings.RATE_LIMIT_SWEEP_SECONDS, app_state.rate_limiter.sweep
                )
            ),
            asyncio.create_task(
                run_periodically("room", settings.ROOM_SWEEP_SECONDS, app_state.room_registry.sweep_expired)
            ),
        ]
        try:
            yield
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Signaling relay stopped")

    app = FastAPI(title="P2P File Transfer Signaling Relay", lifespan=lifespan)
    app.state.signaling = app_state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # REST routes
    app.include_router(health.router)
    app.include_router(turn.router)

    # WebSocket routes
    app.include_router(websocket_module.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=default_settings.HOST, port=default_settings.PORT)

# ============================================================================
# END OF FILE
# ============================================================================
