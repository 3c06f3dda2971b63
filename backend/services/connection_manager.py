# backend/services/connection_manager.py

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Iterable, Optional

from fastapi import WebSocket

from models.models import ServerEvent
from services.room_registry import RoomRegistry

logger = logging.getLogger(__name__)

# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

def build_frame(event: ServerEvent, data: Any = None, **extra: Any) -> dict:
    """Outbound frame: {"type": <event>, "data": <payload>}; bare events carry no data."""
    frame: Dict[str, Any] = {"type": event.value}
    frame.update(extra)
    if data is not None:
        frame["data"] = data
    return frame


class ConnectionManager:
    """
    Tracks live WebSocket connections and delivers frames to them.

    Room membership lives in the RoomRegistry; this class only knows which
    socket belongs to which connection id, so fan-out reads the member set
    from the registry and looks the sockets up here.

    Data Structures:
        active_connections: Maps connection_id -> WebSocket
                            Example: {"3f2c...": websocket1}

    Ordering:
        Sends are awaited one after another, so frames from one sender reach
        each recipient in the order they were emitted.
    """

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """
        Accept a WebSocket and assign it a fresh connection id.

        The id is announced to the client in a ``connected`` frame so it can
        recognise itself in ``user-joined`` / ``from`` fields.
        """
        await websocket.accept()

        connection_id = str(uuid.uuid4())
        self.active_connections[connection_id] = websocket

        logger.info("✓ Connection %s opened. Total: %d", connection_id, len(self.active_connections))
        await self.send_personal_message(
            connection_id, build_frame(ServerEvent.CONNECTED, {"connectionId": connection_id})
        )
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        """Forget the socket. Room cleanup is done by the registry."""
        if self.active_connections.pop(connection_id, None) is not None:
            logger.info("✗ Connection %s closed. Total: %d", connection_id, len(self.active_connections))

    async def send_personal_message(self, connection_id: str, message: dict) -> bool:
        """
        Send one frame to one connection.

        Returns:
            False if the connection is unknown or the send failed. A failed
            peer is left alone; its own receive loop notices the disconnect
            and runs the cleanup.
        """
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.warning("Send to %s failed: %s", connection_id, e)
            return False
        return True

    async def send_to(self, connection_ids: Iterable[str], message: dict) -> int:
        """Deliver a frame to several connections; returns how many succeeded."""
        delivered = 0
        for connection_id in connection_ids:
            if await self.send_personal_message(connection_id, message):
                delivered += 1
        return delivered

    async def broadcast_to_room(
        self, room_id: str, message: dict, exclude_connection: Optional[str] = None
    ) -> int:
        """
        Relay a frame to every member of ``room_id`` except ``exclude_connection``.

        Unknown rooms are a no-op. The member set is snapshotted before the
        first send.
        """
        targets = self.registry.members(room_id)
        targets.discard(exclude_connection)
        if not targets:
            logger.debug("[routing] Skipped broadcast: room=%s has no other members", room_id)
            return 0

        logger.debug("📨 Relaying %s to room %s: %d clients", message.get("type"), room_id, len(targets))
        return await self.send_to(sorted(targets), message)
