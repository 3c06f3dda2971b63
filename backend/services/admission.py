# backend/services/admission.py

from __future__ import annotations

import logging
import time
from typing import Callable, Dict

from models.models import ConnectionRateState

logger = logging.getLogger(__name__)


class RateLimitExceeded(Exception):
    """Raised when a source address has used up its connection quota."""

    def __init__(self, address: str) -> None:
        super().__init__("Rate limit exceeded")
        self.address = address


# ============================================================================
# CONNECTION ADMISSION CONTROL
# ============================================================================

class ConnectionRateLimiter:
    """
    Fixed-window limiter on new realtime connections, keyed by source address.

    Each address may open ``max_connections`` connections inside a window of
    ``window_seconds`` that starts at its first attempt. Once the window has
    elapsed, the next attempt opens a fresh window.

    Data Structures:
        states: Maps address -> ConnectionRateState(count, window_start)
                Example: {"203.0.113.7": ConnectionRateState(count=3, window_start=...)}

    All methods are synchronous and never await, so on a single event loop
    they cannot interleave with each other.
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        max_connections: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_connections = max_connections
        self.clock = clock
        self.states: Dict[str, ConnectionRateState] = {}

    def admit(self, address: str) -> None:
        """
        Record a connection attempt from ``address``.

        Raises:
            RateLimitExceeded: the address already made ``max_connections``
                attempts inside the current window.
        """
        now = self.clock()
        state = self.states.get(address)

        if state is None:
            self.states[address] = ConnectionRateState(count=1, window_start=now)
            return

        if now - state.window_start <= self.window_seconds:
            if state.count >= self.max_connections:
                logger.warning("Connection rate limit exceeded for %s", address)
                raise RateLimitExceeded(address)
            state.count += 1
        else:
            self.states[address] = ConnectionRateState(count=1, window_start=now)

    def sweep(self) -> int:
        """Drop entries whose window has expired. Returns how many were removed."""
        now = self.clock()
        expired = [
            address
            for address, state in self.states.items()
            if now - state.window_start > self.window_seconds
        ]
        for address in expired:
            del self.states[address]
        if expired:
            logger.debug("Swept %d rate limit entries", len(expired))
        return len(expired)
