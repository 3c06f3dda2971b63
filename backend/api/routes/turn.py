# backend/api/routes/turn.py

from fastapi import APIRouter, Request

from services.ice_config import build_ice_config

router = APIRouter(prefix="/api", tags=["ICE"])


@router.get("/turn-config")
async def turn_config(request: Request):
    """
    ICE server configuration for the browser peer connection.

    The client fetches this before it starts signaling and passes it
    straight to its RTCPeerConnection.

    Example Response:
        {
            "iceServers": [
                {"urls": "stun:stun.l.google.com:19302"},
                {"urls": "turn:turn.example.org:3478", "username": "u", "credential": "p"}
            ],
            "iceCandidatePoolSize": 10
        }
    """
    return build_ice_config(request.app.state.signaling.settings).to_wire()
