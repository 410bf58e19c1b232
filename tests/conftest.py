from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from chatlib.connection import ChannelOpenError, ConnectionSupervisor
from chatlib.gateway import GatewayError
from chatlib.models.api import to_json_payload
from chatlib.models.identity import Identity
from chatlib.notifications import Notifier
from chatlib.session_store import SessionStore


class FakeChannel:
    """In-memory stand-in for a Socket.IO client. `on` appends, so duplicate registrations are visible."""

    def __init__(self, identity: Identity, *, fail_open: bool = False, gate: Optional[asyncio.Event] = None):
        self.identity = identity
        self.fail_open = fail_open
        # open() waits on this, when set, before completing the handshake
        self.gate = gate
        self.connected = False
        self.handlers: Dict[str, List[Callable]] = defaultdict(list)
        self.open_calls = 0
        self.close_calls = 0

    def on(self, event, handler):
        self.handlers[event].append(handler)

    def off(self, event):
        self.handlers.pop(event, None)

    def remove_all_listeners(self):
        self.handlers.clear()

    def listener_count(self, event):
        return len(self.handlers.get(event, []))

    async def open(self):
        self.open_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_open:
            raise ChannelOpenError("Connection refused by the server")
        self.connected = True

    async def close(self):
        self.close_calls += 1
        was_connected = self.connected
        self.connected = False
        if was_connected:
            await self.fire("disconnect", "client disconnect")

    async def fire(self, event, *args):
        for handler in list(self.handlers.get(event, [])):
            await handler(*args)

    async def drop(self, reason: str = "transport close"):
        """Simulate the network going away underneath us."""
        self.connected = False
        await self.fire("disconnect", reason)


class FakeChannelFactory:
    def __init__(self):
        self.created: List[FakeChannel] = []
        self.fail_open = False
        self.gate: Optional[asyncio.Event] = None

    def __call__(self, identity: Identity) -> FakeChannel:
        channel = FakeChannel(identity, fail_open=self.fail_open, gate=self.gate)
        self.created.append(channel)
        return channel

    @property
    def connected_channels(self) -> List[FakeChannel]:
        return [c for c in self.created if c.connected]


class FakeGateway:
    """Scripted gateway: each (method, path) answers with a value or raises a GatewayError."""

    def __init__(self):
        self.responses: Dict[Tuple[str, str], Any] = {}
        self.calls: List[Tuple[str, str, Optional[dict]]] = []
        self.on_call: Optional[Callable[[str, str], None]] = None

    def respond(self, method: str, path: str, value: Any) -> None:
        self.responses[(method, path)] = value

    async def request(self, method, path, payload=None):
        self.calls.append((method, path, to_json_payload(payload)))
        if self.on_call is not None:
            self.on_call(method, path)
        value = self.responses.get((method, path))
        if isinstance(value, GatewayError):
            raise value
        return value

    async def get(self, path):
        return await self.request("GET", path)

    async def post(self, path, payload=None):
        return await self.request("POST", path, payload)

    async def put(self, path, payload=None):
        return await self.request("PUT", path, payload)


@pytest.fixture
def channel_factory() -> FakeChannelFactory:
    return FakeChannelFactory()


@pytest.fixture
def supervisor(channel_factory) -> ConnectionSupervisor:
    return ConnectionSupervisor(channel_factory)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def store(gateway, supervisor, notifier) -> SessionStore:
    return SessionStore(gateway, supervisor, notifier)


@pytest.fixture
def user() -> Identity:
    return Identity(id="u1", email="a@b.com")
