# backend/services/room_registry.py

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from models.models import (
    JoinResult,
    PasswordVerified,
    Room,
    RoomInfo,
    RoomNotFound,
    is_valid_room_id,
)

logger = logging.getLogger(__name__)

INVALID_ROOM_ID = "Invalid room ID format"

# ============================================================================
# ROOM REGISTRY
# ============================================================================

class RoomRegistry:
    """
    In-memory store of transient signaling rooms.

    Rooms are created by the first join for an unknown id and are gone as soon
    as their last member leaves. Nothing is persisted; a restart starts empty.

    Data Structures:
        rooms: Maps room_id -> Room
               Example: {"ABCDEFGH": Room(members={"c1", "c2"}, password_hash=None)}

        memberships: Maps connection_id -> Set of room_ids it has joined
                     Example: {"c1": {"ABCDEFGH"}}

    Password hashes are computed by the client; the registry only compares
    strings. Protection is fixed by whichever join creates the room.

    Every method is synchronous with no await, so on one event loop each call
    runs to completion before any other handler or timer touches the maps.

    Usage:
        registry = RoomRegistry(room_timeout=600)
        registry.join_or_create("conn-1", "ABCDEFGH")
        registry.check_room("ABCDEFGH")
    """

    def __init__(self, room_timeout: float = 600.0, clock: Callable[[], float] = time.time) -> None:
        self.room_timeout = room_timeout
        self.clock = clock
        self.rooms: Dict[str, Room] = {}
        self.memberships: Dict[str, Set[str]] = {}

    def get_room(self, room_id: str) -> Optional[Room]:
        return self.rooms.get(room_id)

    def members(self, room_id: str) -> Set[str]:
        """Snapshot of the connection ids currently in ``room_id``."""
        room = self.rooms.get(room_id)
        return set(room.members) if room else set()

    @property
    def room_count(self) -> int:
        return len(self.rooms)

    @property
    def connection_count(self) -> int:
        return len(self.memberships)

    def check_room(self, room_id: str) -> Union[RoomInfo, RoomNotFound]:
        """
        Look up a room without joining it.

        Returns:
            RoomNotFound for a malformed or unknown id, otherwise RoomInfo
            with the protection flag and whether anybody is inside.
        """
        if not is_valid_room_id(room_id):
            return RoomNotFound()
        room = self.rooms.get(room_id)
        if room is None:
            return RoomNotFound()
        return RoomInfo(is_protected=room.is_protected, has_users=room.has_users)

    def verify_password(self, room_id: str, password_hash: Optional[str]) -> PasswordVerified:
        """
        Compare a client-side password hash with the one stored on the room.

        Unknown rooms, unprotected rooms and wrong hashes all come back as
        ``valid=False``; callers cannot tell them apart.
        """
        if not is_valid_room_id(room_id):
            return PasswordVerified(valid=False)
        room = self.rooms.get(room_id)
        if room is None or room.password_hash is None:
            return PasswordVerified(valid=False)
        return PasswordVerified(valid=password_hash == room.password_hash)

    def join_or_create(
        self,
        connection_id: str,
        room_id: str,
        password_hash: Optional[str] = None,
        is_protected: bool = False,
    ) -> JoinResult:
        """
        Add a connection to a room, creating the room on first use.

        Args:
            connection_id: The joining connection
            room_id: Target room id (8-15 alphanumerics)
            password_hash: Client-side hash, stored only when creating
            is_protected: Must be True together with a non-empty hash
                          for a new room to be protected

        Returns:
            JoinResult(success=True, room_id=...) or
            JoinResult(success=False, error=...) with nothing mutated.

        Note:
            An existing room keeps its protection settings and the supplied
            hash is not checked here. Clients call verify_password first.
        """
        if not is_valid_room_id(room_id):
            return JoinResult(success=False, error=INVALID_ROOM_ID)

        room = self.rooms.get(room_id)
        if room is None:
            stored_hash = password_hash if is_protected and password_hash else None
            room = Room(room_id=room_id, password_hash=stored_hash, created_at=self.clock())
            self.rooms[room_id] = room
            logger.info("✓ Created room %s (protected=%s)", room_id, room.is_protected)

        room.members.add(connection_id)
        self.memberships.setdefault(connection_id, set()).add(room_id)

        logger.info("→ %s joined %s (%d members)", connection_id, room_id, len(room.members))
        return JoinResult(success=True, room_id=room_id)

    def leave(self, connection_id: str) -> List[Tuple[str, Set[str]]]:
        """
        Remove a connection from every room it belongs to.

        Returns:
            One (room_id, remaining_members) pair per room the connection
            was removed from, for departure notices. Rooms left empty are
            deleted. A connection with no rooms yields an empty list.
        """
        room_ids = self.memberships.pop(connection_id, set())
        affected: List[Tuple[str, Set[str]]] = []

        for room_id in room_ids:
            room = self.rooms.get(room_id)
            if room is None or connection_id not in room.members:
                continue
            room.members.discard(connection_id)
            affected.append((room_id, set(room.members)))

            if not room.members:
                self.rooms.pop(room_id, None)
                logger.info("✗ Room %s is empty, deleted", room_id)

        return affected

    def sweep_expired(self) -> int:
        """
        Delete empty rooms older than ``room_timeout``.

        Rooms with members are kept regardless of age. Returns the number
        of rooms removed.
        """
        now = self.clock()
        expired = [
            room_id
            for room_id, room in self.rooms.items()
            if not room.members and now - room.created_at > self.room_timeout
        ]
        for room_id in expired:
            self.rooms.pop(room_id, None)
        if expired:
            logger.info("Swept %d expired rooms", len(expired))
        return len(expired)
