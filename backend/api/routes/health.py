# backend/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter()

@router.get("/health")
async def health(request: Request):
    """
    Health check endpoint.

    Returns current system status, connection counts, and room counts.
    Used by container health probes and monitoring.

    Returns:
        dict: Status, open connections, connections in a room, room count
    """
    app_state = request.app.state.signaling
    uptime = datetime.now(timezone.utc) - app_state.started_at
    return {
        "status": "healthy",
        "connections": len(app_state.connection_manager.active_connections),
        "connections_in_rooms": app_state.room_registry.connection_count,
        "rooms": app_state.room_registry.room_count,
        "rate_limited_addresses": len(app_state.rate_limiter.states),
        "uptime_hours": round(uptime.total_seconds() / 3600, 2),
    }
