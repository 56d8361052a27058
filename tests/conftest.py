"""Shared test fixtures for kick_relay tests."""

from datetime import datetime, timezone

import pytest
from fakes import FakeHttpClient, FakeSocketFactory

from kick_relay.api.kick import KickApiClient
from kick_relay.chat.badges import BadgeResolver
from kick_relay.chat.connections.kick import KickChatConnection
from kick_relay.chat.cosmetics import CosmeticResolver
from kick_relay.chat.emotes.catalog import EmoteCatalog
from kick_relay.chat.emotes.provider import SevenTVProvider
from kick_relay.chat.models import ChatBadge, ChatMessage, ChatUser
from kick_relay.chat.transform import MessageTransformer
from kick_relay.core.settings import Settings


@pytest.fixture
def settings():
    s = Settings()
    s.kick.connect_timeout = 1.0
    s.seventv.cosmetic_timeout = 0.2
    s.discovery.use_browser = False
    s.discovery.browser_settle_delay = 0.0
    return s


@pytest.fixture
def http():
    return FakeHttpClient()


@pytest.fixture
def kick_api(http, settings):
    return KickApiClient(http, settings.kick)


@pytest.fixture
def badges(kick_api, settings):
    return BadgeResolver(kick_api, settings.chat)


@pytest.fixture
def emotes(http, kick_api, settings):
    return EmoteCatalog(SevenTVProvider(http, settings.seventv), kick_api)


@pytest.fixture
def cosmetics(http, kick_api, settings):
    return CosmeticResolver(http, kick_api, settings.seventv)


@pytest.fixture
def transformer(badges, emotes, cosmetics, settings):
    return MessageTransformer(badges, emotes, cosmetics, settings.seventv)


@pytest.fixture
def sockets():
    return FakeSocketFactory()


@pytest.fixture
def connection_factory(transformer, settings, sockets):
    def factory(channel: str) -> KickChatConnection:
        return KickChatConnection(channel, transformer, settings.kick, ws_connect=sockets)

    return factory


@pytest.fixture
def chat_event():
    return {
        "id": "msg-001",
        "chatroom_id": 123,
        "content": "hello [emote:1:Kappa]",
        "type": "message",
        "created_at": "2025-01-01T12:30:00+00:00",
        "sender": {
            "id": 42,
            "username": "viewer1",
            "slug": "viewer1",
            "identity": {
                "color": "#FF0000",
                "badges": [{"type": "subscriber", "text": "Subscriber", "count": 6}],
            },
        },
    }


@pytest.fixture
def chat_message():
    user = ChatUser(id="42", username="viewer1", color="#FF0000")
    return ChatMessage(
        id="msg-001",
        username="viewer1",
        content="Hello world!",
        timestamp=datetime(2025, 1, 1, 12, 30, 0, tzinfo=timezone.utc),
        user=user,
        badges=(ChatBadge(type="moderator", image="https://example.com/mod.svg", alt="Moderator"),),
    )
