"""Exceptions raised by the relay."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay failures."""


class BindError(RelayError):
    """The listening endpoint could not be bound. Fatal at startup."""

    def __init__(self, host: str, port: int, reason: str):
        super().__init__(f"cannot bind {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reason = reason


class MalformedMessageError(RelayError):
    """An inbound payload does not have the shape of a video command."""


class PeerSendError(RelayError):
    """Delivering a message to one peer failed."""

    def __init__(self, peer_id: str, reason: str):
        super().__init__(f"send to peer {peer_id} failed: {reason}")
        self.peer_id = peer_id


__all__ = ["RelayError", "BindError", "MalformedMessageError", "PeerSendError"]
