"""Tests for the Socket.IO gateway."""

import asyncio

import pytest
import pytest_asyncio
from fakes import FakeSocketServer, wait_until

from kick_relay.chat.discovery.chain import IdentifierDiscovery
from kick_relay.chat.manager import ConnectionManager
from kick_relay.chat.models import ConnectionState, ErrorEvent, InactiveEvent
from kick_relay.server.gateway import BroadcastGateway, room_name

SUB_BADGES = [{"id": 2, "channel_id": 456, "months": 6, "badge_image": {"src": "https://img/6.png"}}]


@pytest.fixture
def sio():
    return FakeSocketServer()


@pytest_asyncio.fixture
async def gateway(sio, connection_factory, kick_api, badges, emotes, settings):
    discovery = IdentifierDiscovery(kick_api, None, settings.discovery)

    async def dispatch(channel, event):
        await gw.dispatch(channel, event)

    manager = ConnectionManager(connection_factory, discovery, dispatch, settings)
    gw = BroadcastGateway(sio, manager, discovery, badges, emotes)
    yield gw
    await manager.close_all()


@pytest.mark.asyncio
async def test_handlers_registered(gateway, sio):
    assert set(sio.handlers) == {"connect", "disconnect", "joinChannel", "leaveChannel", "badgeData"}


@pytest.mark.asyncio
async def test_join_subscribe_and_relay_message(gateway, sio, sockets, chat_event):
    await gateway.on_join_channel("s1", {"channelName": "fooBar"})

    assert len(sockets.urls) == 1
    assert gateway.manager.active_channels() == ["foobar"]
    assert gateway.session_channel("s1") == "foobar"
    assert "s1" in sio.rooms[room_name("FooBar")]

    await wait_until(lambda: sio.received_by("s1", "channelConnected"))
    placeholder = sio.received_by("s1", "channelConnected")[0]
    assert placeholder["chatroom"] == {"id": "unknown", "channel_id": "unknown"}

    await gateway.on_badge_data(
        "s1",
        {"channelName": "fooBar", "channelInfo": {"chatroom": {"id": 123}}, "subscriber_badges": SUB_BADGES},
    )
    ws = sockets.sockets[0]
    await wait_until(lambda: len(ws.subscribed_topics()) == 6)
    assert "chatrooms.123.v2" in ws.subscribed_topics()
    assert "predictions-channel-456" in ws.subscribed_topics()

    conn = gateway.manager.connection("foobar")
    ws.push({"event": "pusher_internal:subscription_succeeded", "channel": "chatrooms.123.v2"})
    await wait_until(lambda: conn.state == ConnectionState.SUBSCRIBED)

    ws.push_chat(chat_event)
    await wait_until(lambda: sio.received_by("s1", "chatMessage"))
    message = sio.received_by("s1", "chatMessage")[0]
    assert message["username"] == "viewer1"
    assert 'src="https://files.kick.com/emotes/1/fullsize"' in message["content"]
    assert message["badges"][0]["image"] == "https://img/6.png"
    assert message["badges"][0]["count"] == 6


@pytest.mark.asyncio
async def test_emotes_sent_to_joiner(gateway, sio):
    await gateway.on_join_channel("s1", "foobar")
    loaded = [data for event, data, to, _ in sio.emitted if event == "emotesLoaded" and to == "s1"]
    assert len(loaded) == 1
    assert isinstance(loaded[0], list)


@pytest.mark.asyncio
async def test_late_joiner_gets_placeholder_and_history(gateway, sio, sockets, chat_event):
    await gateway.on_join_channel("s1", "foobar")
    sockets.sockets[0].push_chat(chat_event)
    await wait_until(lambda: gateway.manager.recent_messages("foobar"))

    await gateway.on_join_channel("s2", "FOOBAR")
    assert len(sockets.urls) == 1
    assert gateway.manager.subscriber_count("foobar") == 2

    direct = [(event, data) for event, data, to, _ in sio.emitted if to == "s2"]
    names = [event for event, _ in direct]
    assert names == ["channelConnected", "emotesLoaded", "chatMessage"]
    assert direct[2][1]["id"] == "msg-001"


@pytest.mark.asyncio
async def test_leave_releases_connection(gateway, sio, sockets):
    await gateway.on_join_channel("s1", "foobar")
    await gateway.on_leave_channel("s1")

    assert sockets.sockets[0].closed
    assert gateway.session_channel("s1") is None
    assert "s1" not in sio.rooms[room_name("foobar")]
    assert gateway.manager.active_channels() == []


@pytest.mark.asyncio
async def test_disconnect_releases_connection(gateway, sockets):
    await gateway.on_join_channel("s1", "foobar")
    await gateway.on_join_channel("s2", "foobar")
    await gateway.on_disconnect("s1")
    assert not sockets.sockets[0].closed
    await gateway.on_disconnect("s2", "client disconnect")
    assert sockets.sockets[0].closed
    assert gateway.session_count == 0


@pytest.mark.asyncio
async def test_switching_channels_leaves_previous(gateway, sio, sockets):
    await gateway.on_join_channel("s1", "first")
    await gateway.on_join_channel("s1", "second")

    assert sockets.sockets[0].closed
    assert gateway.manager.active_channels() == ["second"]
    assert "s1" not in sio.rooms[room_name("first")]
    assert "s1" in sio.rooms[room_name("second")]


@pytest.mark.asyncio
async def test_join_failure_reported(gateway, sio, sockets):
    sockets.fail = True
    await gateway.on_join_channel("s1", "foobar")

    errors = [data for event, data, to, _ in sio.emitted if event == "connectionError" and to == "s1"]
    assert errors == ["Failed to connect to channel: foobar"]
    assert gateway.session_channel("s1") is None
    assert gateway.manager.active_channels() == []
    assert "s1" not in sio.rooms[room_name("foobar")]


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", ["", "   ", None, {"channelName": ""}, 42])
async def test_invalid_channel_rejected(gateway, sio, sockets, payload):
    await gateway.on_join_channel("s1", payload)
    assert sio.emitted == [("connectionError", "Invalid channel name", "s1", None)]
    assert sockets.urls == []


@pytest.mark.asyncio
async def test_badge_data_without_ids_only_caches_badges(gateway, badges, sockets):
    await gateway.on_join_channel("s1", "foobar")
    await gateway.on_badge_data("s1", {"subscriber_badges": [{"months": 1, "badge_image": {"src": "x"}}]})
    assert len(badges.get_channel_badges("foobar")) == 1
    assert sockets.sockets[0].subscribed_topics() == []


@pytest.mark.asyncio
async def test_upstream_events_forwarded_to_room(gateway, sio):
    await gateway.dispatch("foobar", ErrorEvent("foobar", "Upstream closed"))
    await gateway.dispatch("foobar", InactiveEvent("foobar", 120.0))
    assert sio.events("connectionError") == [
        ("connectionError", "Upstream closed", None, "channel:foobar"),
        ("connectionError", "No chat activity on foobar after 120s", None, "channel:foobar"),
    ]


@pytest.mark.asyncio
async def test_rebuilt_connection_announced_once(gateway, sio, sockets):
    await gateway.on_join_channel("s1", "foobar")
    await wait_until(lambda: len(sio.events("channelConnected")) == 1)
    sockets.sockets[0].drop()
    await wait_until(lambda: gateway.manager.connection("foobar") is None)

    await gateway.on_join_channel("s2", "foobar")
    assert len(sockets.sockets) == 2
    await wait_until(lambda: len(sio.events("channelConnected")) == 2)
    await asyncio.sleep(0.05)

    announcements = sio.events("channelConnected")
    assert len(announcements) == 2
    assert all(room == room_name("foobar") and to is None for _, _, to, room in announcements)
