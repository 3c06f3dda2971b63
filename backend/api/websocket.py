# backend/api/websocket.py

from __future__ import annotations

import json
import logging

import anyio
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from core.state import AppState
from models.models import ClientFrame, ServerEvent
from services.admission import RateLimitExceeded
from services.connection_manager import build_frame
from services.signaling import SignalingSession

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for room-based signaling.

    Protocol:
    =========

    Client -> Server frames:
    ------------------------
        {"action": "<event>", "data": <payload>, "ack": <optional id>}

    Check Room:
        {"action": "check-room", "data": {"roomId": "ABCDEFGH"}}
        Response: {"type": "room-info", "data": {"exists": true, "isProtected": false, "hasUsers": true}}
               or {"type": "room-not-found", "data": {"exists": false}}

    Verify Password:
        {"action": "verify-password", "data": {"roomId": "ABCDEFGH", "passwordHash": "..."}}
        Response: {"type": "password-verified", "data": {"valid": true}}

    Join Room:
        {"action": "join-room", "data": "ABCDEFGH", "ack": 1}
        {"action": "join-room", "data": {"roomId": "ABCDEFGH", "passwordHash": "...", "isProtected": true}, "ack": 1}
        Response: {"type": "ack", "ack": 1, "data": {"success": true, "roomId": "ABCDEFGH"}}
        Others in room: {"type": "user-joined", "data": "<connection id>"}

    Signaling Relay:
        {"action": "offer" | "answer", "data": {"roomId": "...", "sdp": {...}}}
        {"action": "ice-candidate", "data": {"roomId": "...", "candidate": {...}}}
        Others in room: {"type": "offer", "data": {"sdp": {...}, "from": "<connection id>"}}

    Transfer Status Relay:
        {"action": "file-meta", "data": {"roomId": "...", "metadata": {"name": "a.zip", "size": 1024}}}
        {"action": "transfer-done" | "transfer-confirmed", "data": {"roomId": "..."}}

    Server -> Client Messages:
    -------------------------
    On connect:
        {"type": "connected", "data": {"connectionId": "<connection id>"}}

    Peer gone:
        {"type": "user-left", "data": {"userId": "<connection id>"}}

    Error:
        {"type": "error", "data": "..."}

    Lifecycle:
    ==========
    1. Source address passes admission control, otherwise closed with 1008
    2. Connection accepted and given a connection id
    3. Frames dispatched to the session handler until the socket closes
    4. On disconnect, removed from every room; peers get "user-left"
    """
    app_state: AppState = websocket.app.state.signaling
    address = websocket.client.host if websocket.client else "unknown"

    try:
        app_state.rate_limiter.admit(address)
    except RateLimitExceeded as e:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(e))
        return

    connections = app_state.connection_manager
    connection_id = await connections.connect(websocket)
    session = SignalingSession(
        connection_id,
        registry=app_state.room_registry,
        connections=connections,
        max_file_size=app_state.settings.MAX_FILE_SIZE_BYTES,
    )

    try:
        while True:
            received = await websocket.receive()
            if received["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(received.get("code", 1000), received.get("reason"))

            data = received.get("text")
            if data is None:
                # Binary frames are not part of the protocol
                await websocket.send_json(build_frame(ServerEvent.ERROR, "Invalid frame"))
                continue

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json(build_frame(ServerEvent.ERROR, "Invalid JSON"))
                continue

            try:
                frame = ClientFrame.model_validate(message)
            except ValidationError:
                await websocket.send_json(build_frame(ServerEvent.ERROR, "Invalid frame"))
                continue

            logger.debug("Websocket input from %s: action=%s", connection_id, frame.action)
            if not await session.dispatch(frame.action, frame.data, frame.ack):
                await websocket.send_json(build_frame(ServerEvent.ERROR, f"Unknown action: {frame.action}"))

    except WebSocketDisconnect:
        logger.info("WebSocket %s disconnected", connection_id)
    except Exception as e:
        logger.error("WebSocket error on %s: %s", connection_id, e, exc_info=True)
        try:
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        except Exception as close_error:
            logger.debug("Error closing WebSocket %s: %s", connection_id, close_error)
    finally:
        # Peers must hear "user-left" even when the handler task is being cancelled
        with anyio.CancelScope(shield=True):
            connections.disconnect(connection_id)
            await session.close()
