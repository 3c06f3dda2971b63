# backend/services/signaling.py

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import ValidationError

from models.models import (
    ClientEvent,
    FileMetaPayload,
    IceCandidatePayload,
    JoinRoomRequest,
    JoinResult,
    MAX_FILE_SIZE,
    PasswordVerified,
    RoomNotFound,
    RoomRef,
    SdpPayload,
    ServerEvent,
    UserLeft,
    VerifyPasswordRequest,
)
from services.connection_manager import ConnectionManager, build_frame
from services.room_registry import INVALID_ROOM_ID, RoomRegistry

logger = logging.getLogger(__name__)

AckId = Optional[Union[int, str]]
Handler = Callable[[Any, AckId], Awaitable[None]]


class SignalingSession:
    """
    Protocol handler for one realtime connection.

    Inbound frames are routed through ``handlers``, a table from ClientEvent
    to coroutine. Lookup events (check-room, verify-password) answer only the
    caller; join-room acknowledges and announces the arrival; the signaling
    and transfer-status events are relayed to the rest of the room.

    Malformed relay payloads are dropped without a reply. Only join-room
    reports a validation failure back to the caller.
    """

    def __init__(
        self,
        connection_id: str,
        registry: RoomRegistry,
        connections: ConnectionManager,
        max_file_size: int = MAX_FILE_SIZE,
    ) -> None:
        self.connection_id = connection_id
        self.registry = registry
        self.connections = connections
        self.max_file_size = max_file_size

        self.handlers: Dict[ClientEvent, Handler] = {
            ClientEvent.CHECK_ROOM: self.on_check_room,
            ClientEvent.VERIFY_PASSWORD: self.on_verify_password,
            ClientEvent.JOIN_ROOM: self.on_join_room,
            ClientEvent.OFFER: self.on_offer,
            ClientEvent.ANSWER: self.on_answer,
            ClientEvent.ICE_CANDIDATE: self.on_ice_candidate,
            ClientEvent.FILE_META: self.on_file_meta,
            ClientEvent.TRANSFER_DONE: self.on_transfer_done,
            ClientEvent.TRANSFER_CONFIRMED: self.on_transfer_confirmed,
        }

    async def dispatch(self, action: str, data: Any = None, ack: AckId = None) -> bool:
        """
        Run the handler registered for ``action``.

        Returns:
            False when the action is not part of the protocol, so the caller
            can report it.
        """
        try:
            event = ClientEvent(action)
        except ValueError:
            return False
        await self.handlers[event](data, ack)
        return True

    async def close(self) -> None:
        """Drop this connection from every room and tell the peers left behind."""
        for room_id, remaining in self.registry.leave(self.connection_id):
            logger.info("← %s left %s (%d remaining)", self.connection_id, room_id, len(remaining))
            notice = build_frame(ServerEvent.USER_LEFT, UserLeft(user_id=self.connection_id).to_wire())
            await self.connections.send_to(sorted(remaining), notice)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def reply(self, event: ServerEvent, data: Any = None) -> None:
        await self.connections.send_personal_message(self.connection_id, build_frame(event, data))

    async def relay(self, room_id: str, event: ServerEvent, data: Any = None) -> None:
        await self.connections.broadcast_to_room(
            room_id, build_frame(event, data), exclude_connection=self.connection_id
        )

    def _parse(self, model, data: Any, **context: Any):
        try:
            return model.model_validate(data, context=context or None)
        except ValidationError:
            logger.debug("Dropped malformed %s payload from %s", model.__name__, self.connection_id)
            return None

    # ------------------------------------------------------------------
    # room lookup and membership
    # ------------------------------------------------------------------

    async def on_check_room(self, data: Any, ack: AckId) -> None:
        request = self._parse(RoomRef, data)
        result = self.registry.check_room(request.room_id) if request is not None else RoomNotFound()
        if isinstance(result, RoomNotFound):
            await self.reply(ServerEvent.ROOM_NOT_FOUND, result.to_wire())
        else:
            await self.reply(ServerEvent.ROOM_INFO, result.to_wire())

    async def on_verify_password(self, data: Any, ack: AckId) -> None:
        request = self._parse(VerifyPasswordRequest, data)
        if request is None:
            result = PasswordVerified(valid=False)
        else:
            result = self.registry.verify_password(request.room_id, request.password_hash)
        await self.reply(ServerEvent.PASSWORD_VERIFIED, result.to_wire())

    async def on_join_room(self, data: Any, ack: AckId) -> None:
        # Legacy clients send the bare room id
        if isinstance(data, str):
            data = {"roomId": data}

        request = self._parse(JoinRoomRequest, data)
        if request is None:
            result = JoinResult(success=False, error=INVALID_ROOM_ID)
        else:
            result = self.registry.join_or_create(
                self.connection_id,
                request.room_id,
                password_hash=request.password_hash,
                is_protected=request.is_protected,
            )

        if not result.success:
            if ack is not None:
                await self.connections.send_personal_message(
                    self.connection_id, build_frame(ServerEvent.ACK, result.to_wire(), ack=ack)
                )
            else:
                await self.reply(ServerEvent.ERROR, result.error)
            return

        await self.relay(result.room_id, ServerEvent.USER_JOINED, self.connection_id)
        if ack is not None:
            await self.connections.send_personal_message(
                self.connection_id, build_frame(ServerEvent.ACK, result.to_wire(), ack=ack)
            )

    # ------------------------------------------------------------------
    # connection setup relay
    # ------------------------------------------------------------------

    async def on_offer(self, data: Any, ack: AckId) -> None:
        payload = self._parse(SdpPayload, data)
        if payload is not None:
            await self.relay(payload.room_id, ServerEvent.OFFER, {"sdp": payload.sdp, "from": self.connection_id})

    async def on_answer(self, data: Any, ack: AckId) -> None:
        payload = self._parse(SdpPayload, data)
        if payload is not None:
            await self.relay(payload.room_id, ServerEvent.ANSWER, {"sdp": payload.sdp, "from": self.connection_id})

    async def on_ice_candidate(self, data: Any, ack: AckId) -> None:
        payload = self._parse(IceCandidatePayload, data)
        if payload is not None:
            await self.relay(
                payload.room_id,
                ServerEvent.ICE_CANDIDATE,
                {"candidate": payload.candidate, "from": self.connection_id},
            )

    # ------------------------------------------------------------------
    # transfer status relay
    # ------------------------------------------------------------------

    async def on_file_meta(self, data: Any, ack: AckId) -> None:
        payload = self._parse(FileMetaPayload, data, max_file_size=self.max_file_size)
        if payload is not None:
            await self.relay(payload.room_id, ServerEvent.FILE_META, data["metadata"])

    async def on_transfer_done(self, data: Any, ack: AckId) -> None:
        payload = self._parse(RoomRef, data)
        if payload is not None:
            await self.relay(payload.room_id, ServerEvent.TRANSFER_DONE)

    async def on_transfer_confirmed(self, data: Any, ack: AckId) -> None:
        payload = self._parse(RoomRef, data)
        if payload is not None:
            await self.relay(payload.room_id, ServerEvent.TRANSFER_CONFIRMED)
