import asyncio
import logging
import uuid
from typing import Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from .errors import PeerSendError

logger = logging.getLogger(__name__)


class Peer:
    def __init__(self, ws: WebSocket, peer_id: Optional[str] = None):
        self.ws = ws
        self.peer_id = peer_id or uuid.uuid4().hex
        self.alive = True
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"Peer({self.peer_id!r}, alive={self.alive})"

    async def send(self, text: str):
        # One writer at a time per socket
        async with self._lock:
            if not self.alive or self.ws.application_state != WebSocketState.CONNECTED:
                self.alive = False
                raise PeerSendError(self.peer_id, "connection is closed")
            try:
                await self.ws.send_text(text)
            except Exception as exc:
                self.alive = False
                raise PeerSendError(self.peer_id, repr(exc)) from exc

    async def close(self):
        self.alive = False
        try:
            await self.ws.close()
        except Exception as exc:
            logger.debug("closing peer %s failed: %r", self.peer_id, exc)
