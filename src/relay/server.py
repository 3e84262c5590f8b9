import argparse
import asyncio
import logging
import socket
import sys
from typing import Optional, Union

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from .config import HOST, LOG_LEVEL, PORT, SEND_TIMEOUT_S, configure_logging
from .errors import BindError, MalformedMessageError, PeerSendError, RelayError
from .messages import encode_command, parse_command
from .peer import Peer
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------------------
# Relay
# ------------------------------------------------------------------------------
class RelayServer:
    """
    Accepts WebSocket peers and forwards every message from one peer to all
    the others. Owns its registry, so independent instances can coexist.
    """

    def __init__(self, host: str = HOST, send_timeout: float = SEND_TIMEOUT_S):
        self.host = host
        self.send_timeout = send_timeout
        self.registry = ConnectionRegistry()
        self.bound_port: Optional[int] = None
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task] = None
        self.app = self._build_app()

    def _build_app(self) -> FastAPI:
        app = FastAPI(title="watch-party relay", version="0.1.0")

        @app.websocket("/")
        async def relay_socket(ws: WebSocket):
            await self.serve_connection(ws)

        @app.get("/peers")
        async def relay_peers():
            peers = self.registry.peer_ids()
            return JSONResponse({"peers": peers, "count": len(peers)})

        return app

    # --------------------------------------------------------------------------
    # Connection lifecycle
    # --------------------------------------------------------------------------
    async def serve_connection(self, ws: WebSocket):
        await ws.accept()
        peer = Peer(ws)
        await self.on_connect(peer)
        try:
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await self.on_message(peer, raw)
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("Unexpected error on connection %s", peer.peer_id)
            await peer.close()
        finally:
            await self.on_disconnect(peer)

    async def on_connect(self, peer: Peer):
        await self.registry.add(peer)
        logger.info("Client connected: %s (%d connected)", peer.peer_id, len(self.registry))

    async def on_message(self, sender: Peer, raw: Union[str, bytes]) -> int:
        """Forward *raw* to every other live peer; returns the delivery count."""
        try:
            text = encode_command(parse_command(raw))
        except MalformedMessageError as exc:
            # Bad input is dropped; the sender stays connected
            logger.warning("Dropping message from %s: %s", sender.peer_id, exc)
            return 0
        return await self.broadcast(sender, text)

    async def on_disconnect(self, peer: Peer):
        peer.alive = False
        if await self.registry.remove(peer):
            logger.info(
                "Client disconnected: %s (%d connected)", peer.peer_id, len(self.registry)
            )

    # --------------------------------------------------------------------------
    # Fan-out
    # --------------------------------------------------------------------------
    async def broadcast(self, sender: Optional[Peer], text: str) -> int:
        targets = [p for p in await self.registry.snapshot(exclude=sender) if p.alive]
        if not targets:
            return 0
        delivered = await asyncio.gather(*(self._deliver(p, text) for p in targets))
        return sum(delivered)

    async def _deliver(self, peer: Peer, text: str) -> bool:
        try:
            await asyncio.wait_for(peer.send(text), timeout=self.send_timeout)
            return True
        except PeerSendError as exc:
            logger.warning("%s", exc)
        except asyncio.TimeoutError:
            peer.alive = False
            logger.warning(
                "Send to peer %s timed out after %.1fs", peer.peer_id, self.send_timeout
            )
        return False

    # --------------------------------------------------------------------------
    # Startup / shutdown
    # --------------------------------------------------------------------------
    @property
    def started(self) -> bool:
        return self._serve_task is not None

    def _bind(self, port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, port))
            sock.listen()
        except OSError as exc:
            sock.close()
            raise BindError(self.host, port, exc.strerror or str(exc)) from exc
        return sock

    async def start(self, port: int = PORT):
        """Bind *port* and serve in the background. ``port=0`` picks a free one."""
        if self.started:
            raise BindError(self.host, port, "relay already started")
        sock = self._bind(port)
        self.bound_port = sock.getsockname()[1]

        config = uvicorn.Config(self.app, log_config=None, log_level=None)
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))
        while not self._server.started:
            if self._serve_task.done():
                sock.close()
                self._server = self._serve_task = None
                raise RelayError(f"relay on port {self.bound_port} exited during startup")
            await asyncio.sleep(0.01)
        logger.info("Relay server started on ws://%s:%d", self.host, self.bound_port)

    async def stop(self):
        if self._server is None or self._serve_task is None:
            return
        self._server.should_exit = True
        for peer in await self.registry.clear():
            await peer.close()
        await self._serve_task
        self._server = self._serve_task = None
        logger.info("Relay server on port %s stopped", self.bound_port)

    async def wait_closed(self):
        if self._serve_task is not None:
            await self._serve_task


# ------------------------------------------------------------------------------
# Process-wide relay
# ------------------------------------------------------------------------------
_launch_task: Optional["asyncio.Future[RelayServer]"] = None


async def _launch(host: str, port: int) -> RelayServer:
    relay = RelayServer(host=host)
    await relay.start(port)
    return relay


async def ensure_relay(port: int = PORT, host: str = HOST) -> RelayServer:
    """Start the relay on first call; every later call gets the same instance.

    A failed start is not retried: later calls re-raise the same error.
    """
    global _launch_task
    if _launch_task is None:
        _launch_task = asyncio.ensure_future(_launch(host, port))
    return await asyncio.shield(_launch_task)


async def reset_relay():
    """Stop and forget the process-wide relay (used by tests)."""
    global _launch_task
    task, _launch_task = _launch_task, None
    if task is None:
        return
    if not task.done():
        task.cancel()
        return
    if not task.cancelled() and task.exception() is None:
        await task.result().stop()


# ------------------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------------------
async def _run(host: str, port: int):
    try:
        relay = await ensure_relay(port, host)
        await relay.wait_closed()
    finally:
        await reset_relay()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Rebroadcast video sync commands between connected peers."
    )
    parser.add_argument("--host", default=HOST, help="Interface to listen on.")
    parser.add_argument("--port", type=int, default=PORT, help="Port to listen on.")
    parser.add_argument("--log-level", default=LOG_LEVEL, help="Logging level.")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    try:
        asyncio.run(_run(args.host, args.port))
    except BindError as exc:
        logger.error("Relay failed to start: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    return 0


if __name__ == "__main__":
    sys.exit(main())
