"""Live set of connected peers."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from .peer import Peer


class ConnectionRegistry:
    """Peers keyed by id, guarded by an asyncio lock.

    Fan-out never iterates the live mapping: it takes a ``snapshot`` under the
    lock and sends outside of it, so a slow peer cannot hold up connects or
    disconnects.
    """

    def __init__(self) -> None:
        self._peers: Dict[str, Peer] = {}
        self._lock = asyncio.Lock()

    async def add(self, peer: Peer) -> None:
        async with self._lock:
            self._peers[peer.peer_id] = peer

    async def remove(self, peer: Peer) -> bool:
        """Drop *peer*; returns False if it was not registered."""
        async with self._lock:
            current = self._peers.get(peer.peer_id)
            if current is not peer:
                return False
            del self._peers[peer.peer_id]
            return True

    async def snapshot(self, exclude: Optional[Peer] = None) -> List[Peer]:
        async with self._lock:
            return [p for p in self._peers.values() if p is not exclude]

    async def clear(self) -> List[Peer]:
        async with self._lock:
            peers = list(self._peers.values())
            self._peers.clear()
            return peers

    def peer_ids(self) -> List[str]:
        return list(self._peers.keys())

    def __contains__(self, peer: object) -> bool:
        return isinstance(peer, Peer) and self._peers.get(peer.peer_id) is peer

    def __len__(self) -> int:
        return len(self._peers)


__all__ = ["ConnectionRegistry"]
