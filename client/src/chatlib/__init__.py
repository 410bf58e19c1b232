"""
Client-side session/connection lifecycle for the chat app.

- `Gateway`: HTTP calls against `<host>/api` with cookie credentials
- `SessionStore`: who is logged in + busy flags for each auth action
- `ConnectionSupervisor`: the single Socket.IO connection and the online-user set
"""

from chatlib.connection import ConnectionSupervisor, SocketIOChannel, SocketIOChannelFactory
from chatlib.gateway import Gateway, GatewayError
from chatlib.models.identity import Identity
from chatlib.notifications import Notification, Notifier
from chatlib.session_store import SessionSnapshot, SessionStore

__all__ = [
    "ConnectionSupervisor",
    "Gateway",
    "GatewayError",
    "Identity",
    "Notification",
    "Notifier",
    "SessionSnapshot",
    "SessionStore",
    "SocketIOChannel",
    "SocketIOChannelFactory",
]
