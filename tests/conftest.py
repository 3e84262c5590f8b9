import asyncio
import time

from starlette.websockets import WebSocketState

from src.relay.peer import Peer


class FakeSocket:
    """Stands in for a starlette WebSocket; records what the relay sends."""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.application_state = WebSocketState.CONNECTED
        self.sent = []
        self.fail = fail
        self.delay = delay
        self.closed = False

    async def send_text(self, text: str):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionResetError("connection reset by peer")
        self.sent.append(text)

    async def close(self, code: int = 1000):
        self.closed = True
        self.application_state = WebSocketState.DISCONNECTED


def make_peer(**kwargs) -> Peer:
    """Helper to build a peer backed by a FakeSocket."""
    return Peer(FakeSocket(**kwargs))


def wait_for_peers(client, count: int, timeout: float = 2.0):
    """Poll the status endpoint until *count* peers are registered."""
    deadline = time.monotonic() + timeout
    while True:
        status = client.get("/peers").json()
        if status["count"] == count or time.monotonic() > deadline:
            return status
        time.sleep(0.01)
