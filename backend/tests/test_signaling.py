import pytest

from services.connection_manager import ConnectionManager
from services.room_registry import RoomRegistry
from services.signaling import SignalingSession

pytestmark = pytest.mark.anyio

ROOM = "ABCDEFGH"


@pytest.fixture
def registry(clock):
    return RoomRegistry(room_timeout=600, clock=clock)


@pytest.fixture
def connections(registry):
    return ConnectionManager(registry=registry)


@pytest.fixture
def peer(connections, registry, make_socket):
    """Register a recording socket and return (session, socket)."""

    async def _peer(fail=False):
        socket = make_socket(fail=fail)
        connection_id = await connections.connect(socket)
        socket.sent.clear()
        return SignalingSession(connection_id, registry, connections), socket

    return _peer


async def test_connect_announces_connection_id(connections, make_socket):
    socket = make_socket()
    connection_id = await connections.connect(socket)
    assert socket.accepted
    assert socket.sent == [{"type": "connected", "data": {"connectionId": connection_id}}]


async def test_unknown_action_is_reported_to_caller(peer):
    session, _ = await peer()
    assert await session.dispatch("leave-room", {"roomId": ROOM}) is False
    assert await session.dispatch("check-room", {"roomId": ROOM}) is True


async def test_check_room_and_verify_password(peer):
    owner, _ = await peer()
    lookup, lookup_socket = await peer()

    await lookup.dispatch("check-room", {"roomId": ROOM})
    await owner.dispatch("join-room", {"roomId": ROOM, "passwordHash": "H", "isProtected": True})
    await lookup.dispatch("check-room", {"roomId": ROOM})
    await lookup.dispatch("check-room", "not a dict")
    await lookup.dispatch("verify-password", {"roomId": ROOM, "passwordHash": "H"})
    await lookup.dispatch("verify-password", {"roomId": ROOM, "passwordHash": "X"})
    await lookup.dispatch("verify-password", {"roomId": "bad", "passwordHash": "H"})

    assert lookup_socket.sent == [
        {"type": "room-not-found", "data": {"exists": False}},
        {"type": "room-info", "data": {"exists": True, "isProtected": True, "hasUsers": True}},
        {"type": "room-not-found", "data": {"exists": False}},
        {"type": "password-verified", "data": {"valid": True}},
        {"type": "password-verified", "data": {"valid": False}},
        {"type": "password-verified", "data": {"valid": False}},
    ]


async def test_join_acks_and_announces_only_to_others(peer, registry):
    a, a_socket = await peer()
    b, b_socket = await peer()

    await a.dispatch("join-room", ROOM, ack=1)
    assert a_socket.sent == [{"type": "ack", "ack": 1, "data": {"success": True, "roomId": ROOM}}]

    await b.dispatch("join-room", {"roomId": ROOM}, ack="b-1")
    assert b_socket.sent == [{"type": "ack", "ack": "b-1", "data": {"success": True, "roomId": ROOM}}]
    assert a_socket.sent[-1] == {"type": "user-joined", "data": b.connection_id}
    assert registry.members(ROOM) == {a.connection_id, b.connection_id}


async def test_join_without_ack_is_silent_to_caller(peer):
    a, a_socket = await peer()
    await a.dispatch("join-room", ROOM)
    assert a_socket.sent == []


async def test_invalid_join_reports_error(peer, registry):
    a, a_socket = await peer()

    await a.dispatch("join-room", "bad id", ack=7)
    await a.dispatch("join-room", {"roomId": 123})
    await a.dispatch("join-room", None)

    assert a_socket.sent == [
        {"type": "ack", "ack": 7, "data": {"success": False, "error": "Invalid room ID format"}},
        {"type": "error", "data": "Invalid room ID format"},
        {"type": "error", "data": "Invalid room ID format"},
    ]
    assert registry.rooms == {}


async def test_relay_excludes_sender_and_keeps_order(peer):
    a, a_socket = await peer()
    b, b_socket = await peer()
    c, c_socket = await peer()
    for session in (a, b, c):
        await session.dispatch("join-room", ROOM)
    for socket in (a_socket, b_socket, c_socket):
        socket.sent.clear()

    await a.dispatch("offer", {"roomId": ROOM, "sdp": {"type": "offer"}})
    await a.dispatch("ice-candidate", {"roomId": ROOM, "candidate": {"candidate": "c1"}})
    await a.dispatch("ice-candidate", {"roomId": ROOM, "candidate": {"candidate": "c2"}})

    expected = [
        {"type": "offer", "data": {"sdp": {"type": "offer"}, "from": a.connection_id}},
        {"type": "ice-candidate", "data": {"candidate": {"candidate": "c1"}, "from": a.connection_id}},
        {"type": "ice-candidate", "data": {"candidate": {"candidate": "c2"}, "from": a.connection_id}},
    ]
    assert b_socket.sent == expected
    assert c_socket.sent == expected
    assert a_socket.sent == []


async def test_malformed_relays_are_dropped(peer):
    a, a_socket = await peer()
    b, b_socket = await peer()
    await a.dispatch("join-room", ROOM)
    await b.dispatch("join-room", ROOM)
    a_socket.sent.clear()
    b_socket.sent.clear()

    for action, data in [
        ("offer", {"roomId": ROOM}),
        ("answer", {"roomId": ROOM, "sdp": ""}),
        ("offer", {"roomId": "bad", "sdp": "v=0"}),
        ("ice-candidate", {"roomId": ROOM, "candidate": None}),
        ("ice-candidate", "ABCDEFGH"),
        ("file-meta", {"roomId": ROOM, "metadata": {"name": "x", "size": -5}}),
        ("file-meta", {"roomId": ROOM, "metadata": "x"}),
        ("transfer-done", {"roomId": "ABC"}),
        ("transfer-done", {"room_id": ROOM}),
        ("offer", {"room_id": ROOM, "sdp": "v=0"}),
        ("transfer-confirmed", None),
    ]:
        assert await a.dispatch(action, data) is True

    assert a_socket.sent == []
    assert b_socket.sent == []


async def test_file_meta_and_status_relay(peer):
    a, _ = await peer()
    b, b_socket = await peer()
    await a.dispatch("join-room", ROOM)
    await b.dispatch("join-room", ROOM)

    metadata = {"name": "movie.mkv", "size": 4096, "type": "video/x-matroska"}
    await a.dispatch("file-meta", {"roomId": ROOM, "metadata": metadata})
    await a.dispatch("transfer-done", {"roomId": ROOM})
    await b.dispatch("answer", {"roomId": ROOM, "sdp": "v=0"})
    await a.dispatch("transfer-confirmed", {"roomId": ROOM})

    assert b_socket.sent == [
        {"type": "file-meta", "data": metadata},
        {"type": "transfer-done"},
        {"type": "transfer-confirmed"},
    ]


async def test_file_meta_respects_configured_limit(peer, registry, connections):
    a, _ = await peer()
    b, b_socket = await peer()
    small = SignalingSession(a.connection_id, registry, connections, max_file_size=100)
    await a.dispatch("join-room", ROOM)
    await b.dispatch("join-room", ROOM)

    await small.dispatch("file-meta", {"roomId": ROOM, "metadata": {"name": "big", "size": 101}})
    assert b_socket.sent == []


async def test_relay_to_unknown_room_is_noop(peer):
    a, a_socket = await peer()
    await a.dispatch("offer", {"roomId": "NOBODY000", "sdp": "v=0"})
    assert a_socket.sent == []


async def test_close_notifies_remaining_members(peer, registry):
    a, _ = await peer()
    b, b_socket = await peer()
    await a.dispatch("join-room", ROOM)
    await a.dispatch("join-room", "OTHERROOM1")
    await b.dispatch("join-room", ROOM)
    b_socket.sent.clear()

    await a.close()

    assert b_socket.sent == [{"type": "user-left", "data": {"userId": a.connection_id}}]
    assert registry.get_room("OTHERROOM1") is None
    assert registry.members(ROOM) == {b.connection_id}

    await b.close()
    assert registry.rooms == {}


async def test_close_without_rooms_is_noop(peer):
    a, a_socket = await peer()
    await a.close()
    await a.close()
    assert a_socket.sent == []


async def test_failed_send_does_not_break_fan_out(peer):
    a, _ = await peer()
    broken, _ = await peer(fail=True)
    c, c_socket = await peer()
    for session in (a, broken, c):
        await session.dispatch("join-room", ROOM)
    c_socket.sent.clear()

    await a.dispatch("transfer-done", {"roomId": ROOM})
    assert c_socket.sent == [{"type": "transfer-done"}]
