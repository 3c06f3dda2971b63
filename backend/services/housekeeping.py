# backend/services/housekeeping.py

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


async def run_periodically(name: str, interval: float, sweep: Callable[[], int]) -> None:
    """
    Call ``sweep`` every ``interval`` seconds until cancelled.

    A failing sweep is logged and the loop keeps going; cancellation (at
    application shutdown) ends it.
    """
    logger.info("✓ %s sweep every %ss", name, interval)
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                removed = sweep()
            except Exception as e:
                logger.error("%s sweep failed: %s", name, e, exc_info=True)
                continue
            if removed:
                logger.info("%s sweep removed %d entries", name, removed)
    except asyncio.CancelledError:
        logger.info("%s sweep stopped", name)
        raise
