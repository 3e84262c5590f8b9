"""Minimal relay peer built on the ``websockets`` library.

It sends video commands and keeps a :class:`VideoState` in step with the
commands other peers broadcast.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import websockets

from .errors import MalformedMessageError
from .messages import CommandType, VideoState, encode_command, parse_command

logger = logging.getLogger(__name__)


class SyncClient:
    def __init__(self, url: str):
        self.url = url
        self.state = VideoState()
        self._ws = None

    async def connect(self) -> "SyncClient":
        self._ws = await websockets.connect(self.url, max_size=None)
        return self

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def __aenter__(self) -> "SyncClient":
        return await self.connect()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _socket(self):
        if self._ws is None:
            raise RuntimeError("client is not connected")
        return self._ws

    async def send_command(
        self,
        type: CommandType | str,
        url: Optional[str] = None,
        time: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Send a command and apply it locally, as the relay never echoes it back."""
        command: Dict[str, Any] = {"type": CommandType(type).value}
        if url is not None:
            command["url"] = url
        if time is not None:
            command["time"] = time
        await self._socket().send(encode_command(command))
        self.state.apply(command)
        return command

    async def receive(self) -> Dict[str, Any]:
        """Wait for the next valid command from another peer and apply it."""
        ws = self._socket()
        while True:
            raw = await ws.recv()
            try:
                command = parse_command(raw)
            except MalformedMessageError as exc:
                logger.warning("Ignoring message from relay: %s", exc)
                continue
            self.state.apply(command)
            return command


__all__ = ["SyncClient"]
