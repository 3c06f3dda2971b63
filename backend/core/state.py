# backend/core/state.py
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable

from core.config import Settings
from services.admission import ConnectionRateLimiter
from services.connection_manager import ConnectionManager
from services.room_registry import RoomRegistry


class AppState:
    """
    Everything the signaling core keeps in memory, owned by one app instance.

    Built by ``main.create_app`` and stored on ``app.state.signaling`` so that
    handlers reach it through the request/websocket instead of module globals.
    Room ages use wall-clock time; rate-limit windows use a monotonic clock.
    Tests build their own instance with fake clocks.
    """

    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], float] = time.time,
        rate_clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.room_registry = RoomRegistry(
            room_timeout=settings.ROOM_TIMEOUT_SECONDS,
            clock=clock,
        )
        self.rate_limiter = ConnectionRateLimiter(
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            max_connections=settings.MAX_CONNECTIONS_PER_IP,
            clock=rate_clock,
        )
        self.connection_manager = ConnectionManager(registry=self.room_registry)
        self.started_at: datetime = datetime.now(timezone.utc)
