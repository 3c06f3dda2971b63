# backend/models/models.py
from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, List, Optional, Set, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    StringConstraints,
    ValidationInfo,
    field_validator,
)

ROOM_ID_PATTERN = r"^[a-zA-Z0-9]{8,15}$"
MAX_FILE_SIZE = 10 * 1024 * 1024 * 1024  # 10 GiB

_ROOM_ID_RE = re.compile(ROOM_ID_PATTERN)

RoomId = Annotated[StrictStr, StringConstraints(pattern=ROOM_ID_PATTERN)]


def is_valid_room_id(value: Any) -> bool:
    return isinstance(value, str) and _ROOM_ID_RE.fullmatch(value) is not None


def _is_present(value: Any) -> bool:
    """Falsy signaling blobs (null, "", 0, false) are treated as missing."""
    if value is None or value is False:
        return False
    if isinstance(value, (str, int, float)) and not value:
        return False
    return True


# ============================================================================
# PROTOCOL VOCABULARY
# ============================================================================

class ClientEvent(str, Enum):
    CHECK_ROOM = "check-room"
    VERIFY_PASSWORD = "verify-password"
    JOIN_ROOM = "join-room"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    FILE_META = "file-meta"
    TRANSFER_DONE = "transfer-done"
    TRANSFER_CONFIRMED = "transfer-confirmed"


class ServerEvent(str, Enum):
    CONNECTED = "connected"
    ACK = "ack"
    ERROR = "error"
    ROOM_NOT_FOUND = "room-not-found"
    ROOM_INFO = "room-info"
    PASSWORD_VERIFIED = "password-verified"
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    FILE_META = "file-meta"
    TRANSFER_DONE = "transfer-done"
    TRANSFER_CONFIRMED = "transfer-confirmed"


class WireModel(BaseModel):
    """Base for payloads that travel with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ============================================================================
# IN-MEMORY STATE
# ============================================================================

class Room(BaseModel):
    room_id: str
    members: Set[str] = Field(default_factory=set)
    password_hash: Optional[str] = None
    created_at: float

    @property
    def is_protected(self) -> bool:
        return self.password_hash is not None

    @property
    def has_users(self) -> bool:
        return bool(self.members)


class ConnectionRateState(BaseModel):
    count: int = 1
    window_start: float


# ============================================================================
# INBOUND FRAMES AND PAYLOADS
# ============================================================================

class ClientFrame(BaseModel):
    action: StrictStr
    data: Any = None
    ack: Optional[Union[StrictInt, StrictStr]] = None


class RoomRef(BaseModel):
    """Inbound payloads accept the camelCase wire keys only."""

    room_id: RoomId = Field(alias="roomId")


class VerifyPasswordRequest(RoomRef):
    password_hash: Optional[StrictStr] = Field(default=None, alias="passwordHash")


class JoinRoomRequest(RoomRef):
    password_hash: Optional[str] = Field(default=None, alias="passwordHash")
    is_protected: bool = Field(default=False, alias="isProtected")

    @field_validator("password_hash", mode="before")
    @classmethod
    def drop_non_string_hash(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    @field_validator("is_protected", mode="before")
    @classmethod
    def only_literal_true(cls, value: Any) -> bool:
        return value is True


class SdpPayload(RoomRef):
    sdp: Any = None

    @field_validator("sdp")
    @classmethod
    def sdp_required(cls, value: Any) -> Any:
        if not _is_present(value):
            raise ValueError("sdp is required")
        return value


class IceCandidatePayload(RoomRef):
    candidate: Any = None

    @field_validator("candidate")
    @classmethod
    def candidate_required(cls, value: Any) -> Any:
        if not _is_present(value):
            raise ValueError("candidate is required")
        return value


class FileMetadata(BaseModel):
    """File description relayed verbatim; unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    name: Annotated[StrictStr, StringConstraints(min_length=1)]
    size: Union[StrictInt, StrictFloat]

    @field_validator("size")
    @classmethod
    def size_in_range(cls, value: Union[int, float], info: ValidationInfo) -> Union[int, float]:
        limit = MAX_FILE_SIZE
        if info.context:
            limit = info.context.get("max_file_size", MAX_FILE_SIZE)
        # NaN fails both comparisons
        if not (0 <= value <= limit):
            raise ValueError("size out of range")
        return value


class FileMetaPayload(RoomRef):
    metadata: FileMetadata


# ============================================================================
# OUTBOUND PAYLOADS
# ============================================================================

class RoomInfo(WireModel):
    exists: bool = True
    is_protected: bool = Field(alias="isProtected")
    has_users: bool = Field(alias="hasUsers")


class RoomNotFound(WireModel):
    exists: bool = False


class PasswordVerified(WireModel):
    valid: bool


class JoinResult(WireModel):
    success: bool
    room_id: Optional[str] = Field(default=None, alias="roomId")
    error: Optional[str] = None


class UserLeft(WireModel):
    user_id: str = Field(alias="userId")


class IceServer(WireModel):
    urls: str
    username: Optional[str] = None
    credential: Optional[str] = None


class IceConfig(WireModel):
    ice_servers: List[IceServer] = Field(alias="iceServers")
    ice_candidate_pool_size: int = Field(default=10, alias="iceCandidatePoolSize")
