import asyncio
import itertools
import logging

from chatlib.connection import (
    CONNECT_ERROR_EVENT,
    DISCONNECT_EVENT,
    ONLINE_USERS_EVENT,
    ConnectionSupervisor,
    SocketIOChannel,
    SocketIOChannelFactory,
)
from chatlib.models.identity import Identity
from conftest import FakeChannelFactory

EVENTS = (ONLINE_USERS_EVENT, CONNECT_ERROR_EVENT, DISCONNECT_EVENT)


def test_connect_without_session_is_noop(supervisor, channel_factory):
    asyncio.run(supervisor.connect(None))

    assert channel_factory.created == []
    assert supervisor.channel is None
    assert supervisor.connected is False


def test_connect_is_idempotent_while_connected(supervisor, channel_factory, user):
    async def scenario():
        await supervisor.connect(user)
        await supervisor.connect(user)

    asyncio.run(scenario())

    assert len(channel_factory.created) == 1
    channel = channel_factory.created[0]
    assert channel.open_calls == 1
    assert supervisor.connected is True
    assert all(channel.listener_count(e) == 1 for e in EVENTS)


def test_connect_carries_identity_as_correlation_key(supervisor, channel_factory):
    asyncio.run(supervisor.connect(Identity(_id="abc123")))

    assert channel_factory.created[0].identity.id == "abc123"


def test_online_users_event_replaces_set(supervisor, channel_factory, user):
    async def scenario():
        await supervisor.connect(user)
        channel = channel_factory.created[0]
        await channel.fire(ONLINE_USERS_EVENT, ["u1", "u9"])
        await channel.fire(ONLINE_USERS_EVENT, ["u2", "u3"])

    asyncio.run(scenario())

    assert supervisor.online_users == {"u2", "u3"}


def test_online_users_event_ignores_non_list_payload(supervisor, channel_factory, user):
    async def scenario():
        await supervisor.connect(user)
        channel = channel_factory.created[0]
        await channel.fire(ONLINE_USERS_EVENT, ["u2"])
        await channel.fire(ONLINE_USERS_EVENT, "u3")

    asyncio.run(scenario())

    assert supervisor.online_users == {"u2"}


def test_connect_error_is_logged_without_state_change(supervisor, channel_factory, user, caplog):
    async def scenario():
        await supervisor.connect(user)
        channel = channel_factory.created[0]
        await channel.fire(ONLINE_USERS_EVENT, ["u2"])
        with caplog.at_level(logging.WARNING, logger="chatlib.connection"):
            await channel.fire(CONNECT_ERROR_EVENT, "xhr poll error")

    asyncio.run(scenario())

    assert "xhr poll error" in caplog.text
    assert supervisor.channel is channel_factory.created[0]
    assert supervisor.online_users == {"u2"}


def test_remote_drop_keeps_stale_channel(supervisor, channel_factory, user):
    async def scenario():
        await supervisor.connect(user)
        channel = channel_factory.created[0]
        await channel.fire(ONLINE_USERS_EVENT, ["u2"])
        await channel.drop("transport close")

    asyncio.run(scenario())

    assert supervisor.channel is channel_factory.created[0]
    assert supervisor.connected is False
    assert supervisor.online_users == {"u2"}


def test_locally_initiated_disconnect_event_clears_state(supervisor, channel_factory, user):
    async def scenario():
        await supervisor.connect(user)
        channel = channel_factory.created[0]
        await channel.fire(ONLINE_USERS_EVENT, ["u2"])
        channel.connected = False
        await channel.fire(DISCONNECT_EVENT, "io client disconnect")

    asyncio.run(scenario())

    assert supervisor.channel is None
    assert supervisor.online_users == frozenset()


def test_connect_tears_down_stale_channel_first(supervisor, channel_factory, user):
    async def scenario():
        await supervisor.connect(user)
        await channel_factory.created[0].drop()
        await supervisor.connect(user)

    asyncio.run(scenario())

    stale, fresh = channel_factory.created
    assert stale.close_calls == 1
    assert all(stale.listener_count(e) == 0 for e in EVENTS)
    assert supervisor.channel is fresh
    assert fresh.connected is True
    assert all(fresh.listener_count(e) == 1 for e in EVENTS)


def test_events_from_replaced_channel_are_ignored(supervisor, channel_factory, user):
    async def scenario():
        await supervisor.connect(user)
        stale = channel_factory.created[0]
        handler = stale.handlers[ONLINE_USERS_EVENT][0]
        await stale.drop()
        await supervisor.connect(user)
        await handler(["ghost"])

    asyncio.run(scenario())

    assert supervisor.online_users == frozenset()


def test_failed_establishment_is_logged_and_replaced_next_time(supervisor, channel_factory, user, caplog):
    async def scenario():
        channel_factory.fail_open = True
        with caplog.at_level(logging.WARNING, logger="chatlib.connection"):
            await supervisor.connect(user)
        assert supervisor.connected is False
        assert supervisor.channel is channel_factory.created[0]

        channel_factory.fail_open = False
        await supervisor.connect(user)

    asyncio.run(scenario())

    assert "Socket connection failed" in caplog.text
    assert len(channel_factory.created) == 2
    assert supervisor.channel is channel_factory.created[1]
    assert supervisor.connected is True


def test_disconnect_without_channel_is_noop(supervisor, channel_factory):
    asyncio.run(supervisor.disconnect())

    assert supervisor.channel is None
    assert supervisor.online_users == frozenset()
    assert channel_factory.created == []


def test_disconnect_closes_and_clears(supervisor, channel_factory, user):
    async def scenario():
        await supervisor.connect(user)
        await channel_factory.created[0].fire(ONLINE_USERS_EVENT, ["u2"])
        await supervisor.disconnect()
        await supervisor.disconnect()

    asyncio.run(scenario())

    channel = channel_factory.created[0]
    assert channel.connected is False
    assert channel.close_calls == 1
    assert all(channel.listener_count(e) == 0 for e in EVENTS)
    assert supervisor.channel is None
    assert supervisor.online_users == frozenset()


def test_disconnect_connect_disconnect_leaves_no_handlers(supervisor, channel_factory, user):
    async def scenario():
        await supervisor.disconnect()
        await supervisor.connect(user)
        for channel in channel_factory.created:
            assert all(channel.listener_count(e) <= 1 for e in EVENTS)
        await supervisor.disconnect()

    asyncio.run(scenario())

    for channel in channel_factory.created:
        assert all(channel.listener_count(e) == 0 for e in EVENTS)


def test_at_most_one_connected_channel_for_any_sequence(user):
    operations = ("connect", "disconnect", "drop", "reconnected")

    async def run(sequence):
        factory = FakeChannelFactory()
        supervisor = ConnectionSupervisor(factory)
        for op in sequence:
            if op == "connect":
                await supervisor.connect(user)
            elif op == "disconnect":
                await supervisor.disconnect()
            elif op == "drop" and supervisor.channel is not None:
                await supervisor.channel.drop()
            elif op == "reconnected" and supervisor.channel is not None:
                # socket.io's own reconnection brought a stale channel back
                supervisor.channel.connected = True
            assert len(factory.connected_channels) <= 1
            for channel in factory.created:
                assert all(channel.listener_count(e) <= 1 for e in EVENTS)

    for sequence in itertools.product(operations, repeat=4):
        asyncio.run(run(sequence))


def test_change_listener_called_on_presence_update(channel_factory, user):
    calls = []
    supervisor = ConnectionSupervisor(channel_factory, on_change=lambda: calls.append(1))

    async def scenario():
        await supervisor.connect(user)
        calls.clear()
        await channel_factory.created[0].fire(ONLINE_USERS_EVENT, ["u2"])

    asyncio.run(scenario())

    assert calls == [1]


def test_socketio_factory_builds_handshake_url():
    factory = SocketIOChannelFactory("http://localhost:5000", reconnection_attempts=3)

    channel = factory(Identity(id="u1"))

    assert isinstance(channel, SocketIOChannel)
    assert channel.url == "http://localhost:5000?userId=u1"
    assert channel.connected is False


def test_socketio_channel_keeps_one_handler_per_event():
    channel = SocketIOChannel("http://localhost:5000?userId=u1")

    async def first(*args):
        pass

    async def second(*args):
        pass

    channel.on(ONLINE_USERS_EVENT, first)
    channel.on(ONLINE_USERS_EVENT, second)
    assert channel.listener_count(ONLINE_USERS_EVENT) == 1

    channel.off(ONLINE_USERS_EVENT)
    assert channel.listener_count(ONLINE_USERS_EVENT) == 0

    channel.on(ONLINE_USERS_EVENT, first)
    channel.on(DISCONNECT_EVENT, second)
    channel.remove_all_listeners()
    assert channel.listener_count(ONLINE_USERS_EVENT) == 0
    assert channel.listener_count(DISCONNECT_EVENT) == 0


def test_disconnect_while_opening_closes_late_socket(supervisor, channel_factory, user):
    async def scenario():
        gate = channel_factory.gate = asyncio.Event()
        pending = asyncio.create_task(supervisor.connect(user))
        await asyncio.sleep(0)
        first = channel_factory.created[0]
        assert supervisor.channel is first

        await supervisor.disconnect()
        assert supervisor.channel is None

        gate.set()
        await pending
        return first

    first = asyncio.run(scenario())

    assert first.connected is False
    assert first.close_calls == 2
    assert all(first.listener_count(e) == 0 for e in EVENTS)
    assert supervisor.channel is None
    assert channel_factory.connected_channels == []


def test_reconnect_after_disconnect_while_opening_keeps_one_socket(supervisor, channel_factory, user):
    async def scenario():
        gate = channel_factory.gate = asyncio.Event()
        pending = asyncio.create_task(supervisor.connect(user))
        await asyncio.sleep(0)
        await supervisor.disconnect()

        channel_factory.gate = None
        await supervisor.connect(user)

        gate.set()
        await pending

    asyncio.run(scenario())

    first, second = channel_factory.created
    assert channel_factory.connected_channels == [second]
    assert supervisor.channel is second
    assert supervisor.connected is True
    assert all(second.listener_count(e) == 1 for e in EVENTS)
    assert all(first.listener_count(e) == 0 for e in EVENTS)


def test_connect_while_opening_is_noop(supervisor, channel_factory, user):
    async def scenario():
        gate = channel_factory.gate = asyncio.Event()
        pending = asyncio.create_task(supervisor.connect(user))
        await asyncio.sleep(0)

        await supervisor.connect(user)
        assert len(channel_factory.created) == 1

        gate.set()
        await pending

    asyncio.run(scenario())

    channel = channel_factory.created[0]
    assert channel.open_calls == 1
    assert supervisor.channel is channel
    assert supervisor.connected is True
    assert all(channel.listener_count(e) == 1 for e in EVENTS)
