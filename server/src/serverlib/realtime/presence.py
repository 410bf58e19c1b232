"""
Presence tracking (who is online) for the Socket.IO server.

WHY:
- Socket.IO rooms do not give us a cheap "list every connected user" call.
- A single process serves all sockets, so in-memory storage is sufficient.

Design:
- One dict per user_id: holds that user's active socket ids (several tabs/devices)
- One dict per sid: holds metadata (user_id, timestamps)

A user is online while at least one of their sockets is connected.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Set


@dataclass(frozen=True)
class PresenceMember:
    sid: str
    user_id: str
    connected_at: int


class PresenceRegistry:
    def __init__(self):
        self._user_sockets: Dict[str, Set[str]] = {}  # user_id -> set of sids
        self._socket_data: Dict[str, PresenceMember] = {}  # sid -> metadata

    def add_connection(self, *, user_id: str, sid: str) -> bool:
        """
        Register a socket for user_id.
        Returns True if the user just came online (first socket).
        """
        previous = self._socket_data.get(sid)
        if previous is not None and previous.user_id != user_id:
            # Same sid re-registered under another user: move it
            self.remove_connection(sid=sid)

        sockets = self._user_sockets.setdefault(user_id, set())
        came_online = not sockets
        sockets.add(sid)

        if sid not in self._socket_data:
            self._socket_data[sid] = PresenceMember(sid=sid, user_id=user_id, connected_at=int(time.time()))
        return came_online

    def remove_connection(self, *, sid: str) -> Optional[str]:
        """
        Forget a socket.
        Returns the user_id if that user went offline (last socket), else None.
        """
        member = self._socket_data.pop(sid, None)
        if member is None:
            return None

        sockets = self._user_sockets.get(member.user_id)
        if sockets is None:
            return None
        sockets.discard(sid)
        if sockets:
            return None
        # Clean up empty user sets
        del self._user_sockets[member.user_id]
        return member.user_id

    def online_user_ids(self) -> List[str]:
        # Stable ordering for clients
        return sorted(self._user_sockets)

    def clear(self) -> None:
        self._user_sockets.clear()
        self._socket_data.clear()


# Global presence registry instance
presence = PresenceRegistry()
