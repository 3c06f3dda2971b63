from contextlib import ExitStack

import pytest
from fastapi.testclient import TestClient

from core.config import Settings
from core.state import AppState
from main import create_app


class FakeClock:
    """Manually advanced stand-in for time.time / time.monotonic."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSocket:
    """Minimal WebSocket double that keeps every frame sent to it."""

    def __init__(self, fail: bool = False) -> None:
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, message: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)

    def types(self):
        return [frame["type"] for frame in self.sent]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def app_state(settings, clock):
    return AppState(settings, clock=clock)


@pytest.fixture
def client(app_state):
    app = create_app(app_state.settings, app_state)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def open_peer(client):
    """Open /ws connections that stay up until the test ends; returns (ws, connection_id)."""
    with ExitStack() as stack:

        def _open():
            ws = stack.enter_context(client.websocket_connect("/ws"))
            hello = ws.receive_json()
            assert hello["type"] == "connected"
            return ws, hello["data"]["connectionId"]

        yield _open


@pytest.fixture
def make_socket():
    return RecordingSocket
