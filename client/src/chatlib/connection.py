"""
Connection Supervisor: the one realtime (Socket.IO) connection for the current session.

States:
- absent: no channel
- connecting/connected: channel exists and is connected or still in its initial establishment
- stale: channel exists but dropped for a reason other than our own disconnect();
  left in place (socket.io may still reconnect it) and torn down by the next connect()

Inbound events:
- getOnlineUsers: list of user ids, replaces the online set wholesale
- connect_error: logged only
- disconnect(reason): clears state only when we initiated it
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, FrozenSet, Optional, Protocol

import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from chatlib.helpers import with_query
from chatlib.models.identity import Identity

logger = logging.getLogger(__name__)

ONLINE_USERS_EVENT = "getOnlineUsers"
CONNECT_ERROR_EVENT = "connect_error"
DISCONNECT_EVENT = "disconnect"

# python-socketio reports "client disconnect", socket.io-client "io client disconnect"
LOCAL_DISCONNECT_REASONS = frozenset({"client disconnect", "io client disconnect"})

EventHandler = Callable[..., Awaitable[None]]


class ChannelOpenError(Exception):
    """Initial establishment failed after every reconnection attempt was spent."""


class RealtimeChannel(Protocol):
    @property
    def connected(self) -> bool: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    def off(self, event: str) -> None: ...

    def remove_all_listeners(self) -> None: ...

    def listener_count(self, event: str) -> int: ...

    async def open(self) -> None: ...

    async def close(self) -> None: ...


ChannelFactory = Callable[[Identity], RealtimeChannel]


class SocketIOChannel:
    """python-socketio AsyncClient exposing the listener operations the supervisor needs."""

    NAMESPACE = "/"

    def __init__(
        self,
        url: str,
        *,
        reconnection_attempts: int = 5,
        wait_timeout: float = 5.0,
        client: Optional[socketio.AsyncClient] = None,
    ):
        self.url = url
        self.wait_timeout = wait_timeout
        self._client = client or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=reconnection_attempts,
            logger=False,
            engineio_logger=False,
            handle_sigint=False,
        )

    @property
    def connected(self) -> bool:
        return bool(self._client.connected)

    def on(self, event: str, handler: EventHandler) -> None:
        self._client.on(event, handler)

    def off(self, event: str) -> None:
        self._client.handlers.get(self.NAMESPACE, {}).pop(event, None)

    def remove_all_listeners(self) -> None:
        self._client.handlers.clear()

    def listener_count(self, event: str) -> int:
        return 1 if event in self._client.handlers.get(self.NAMESPACE, {}) else 0

    async def open(self) -> None:
        try:
            # retry=True: initial establishment uses the bounded reconnection attempts
            await self._client.connect(self.url, wait_timeout=self.wait_timeout, retry=True)
        except SocketIOConnectionError as e:
            raise ChannelOpenError(str(e)) from e

    async def close(self) -> None:
        # shutdown() also stops reconnection attempts of a dropped client
        await self._client.shutdown()


class SocketIOChannelFactory:
    def __init__(self, socket_url: str, *, reconnection_attempts: int = 5, wait_timeout: float = 5.0):
        self.socket_url = socket_url
        self.reconnection_attempts = reconnection_attempts
        self.wait_timeout = wait_timeout

    def __call__(self, identity: Identity) -> SocketIOChannel:
        return SocketIOChannel(
            with_query(self.socket_url, userId=identity.id),
            reconnection_attempts=self.reconnection_attempts,
            wait_timeout=self.wait_timeout,
        )


class ConnectionSupervisor:
    def __init__(self, channel_factory: ChannelFactory, *, on_change: Optional[Callable[[], None]] = None):
        self._channel_factory = channel_factory
        self._on_change = on_change
        self._channel: Optional[RealtimeChannel] = None
        self._opening: Optional[RealtimeChannel] = None
        self._online_users: FrozenSet[str] = frozenset()

    @property
    def channel(self) -> Optional[RealtimeChannel]:
        return self._channel

    @property
    def connected(self) -> bool:
        return self._channel is not None and self._channel.connected

    @property
    def online_users(self) -> FrozenSet[str]:
        return self._online_users

    def set_change_listener(self, on_change: Optional[Callable[[], None]]) -> None:
        self._on_change = on_change

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    async def connect(self, identity: Optional[Identity]) -> None:
        """Open a channel for `identity` unless one is already live. Never raises on socket failure."""
        if identity is None:
            return

        current = self._channel
        if current is not None:
            if current.connected or current is self._opening:
                return
            logger.info("Cleaning up stale socket before reconnecting userId=%s", identity.id)
            await self._teardown(current)

        channel = self._channel_factory(identity)
        self._channel = channel
        self._register_handlers(channel)
        self._opening = channel
        self._changed()

        try:
            await channel.open()
        except ChannelOpenError as e:
            # Background concern: logged, never surfaced. The next connect() replaces it.
            logger.warning("Socket connection failed for userId=%s: %s", identity.id, e)
        finally:
            if self._opening is channel:
                self._opening = None

        if self._channel is not channel:
            # disconnect() ran while the handshake was pending
            logger.info("Closing socket for userId=%s opened after disconnect", identity.id)
            channel.remove_all_listeners()
            await channel.close()
            return

        if channel.connected:
            logger.info("Socket connected for userId=%s", identity.id)
        self._changed()

    async def disconnect(self) -> None:
        channel = self._channel
        if channel is None:
            return
        try:
            await channel.close()
        finally:
            channel.remove_all_listeners()
            self._forget(channel)
            logger.info("Socket disconnected")

    async def _teardown(self, channel: RealtimeChannel) -> None:
        channel.remove_all_listeners()
        try:
            await channel.close()
        finally:
            self._forget(channel)

    def _forget(self, channel: RealtimeChannel) -> None:
        if self._channel is channel:
            self._channel = None
        if self._opening is channel:
            self._opening = None
        self._online_users = frozenset()
        self._changed()

    def _register_handlers(self, channel: RealtimeChannel) -> None:
        async def on_online_users(user_ids: Any = None) -> None:
            if self._channel is not channel:
                return
            if not isinstance(user_ids, (list, tuple, set, frozenset)):
                logger.warning("Ignoring %s payload of type %s", ONLINE_USERS_EVENT, type(user_ids).__name__)
                return
            self._online_users = frozenset(str(user_id) for user_id in user_ids)
            self._changed()

        async def on_connect_error(data: Any = None) -> None:
            logger.warning("Socket connect_error: %s", data)

        async def on_disconnect(reason: Any = None) -> None:
            if self._channel is not channel:
                return
            if reason in LOCAL_DISCONNECT_REASONS:
                self._channel = None
                self._online_users = frozenset()
                self._changed()
            else:
                logger.info("Socket dropped (reason=%s); keeping it until the next connect", reason)

        handlers = {
            ONLINE_USERS_EVENT: on_online_users,
            CONNECT_ERROR_EVENT: on_connect_error,
            DISCONNECT_EVENT: on_disconnect,
        }
        for event, handler in handlers.items():
            channel.off(event)
            channel.on(event, handler)
