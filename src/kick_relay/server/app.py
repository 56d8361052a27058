"""aiohttp application hosting the Socket.IO gateway."""

import logging
from dataclasses import dataclass

import socketio
from aiohttp import web

from ..api.base import HttpClient
from ..api.kick import KickApiClient
from ..chat.badges import BadgeResolver
from ..chat.connections.kick import KickChatConnection
from ..chat.cosmetics import CosmeticResolver
from ..chat.discovery.browser import BrowserSession
from ..chat.discovery.chain import IdentifierDiscovery
from ..chat.emotes.catalog import EmoteCatalog
from ..chat.emotes.provider import SevenTVProvider
from ..chat.manager import ConnectionManager
from ..chat.transform import MessageTransformer
from ..core.settings import Settings
from .gateway import BroadcastGateway

logger = logging.getLogger(__name__)


@dataclass
class Relay:
    """Everything one running relay owns."""

    settings: Settings
    http: HttpClient
    browser: BrowserSession
    discovery: IdentifierDiscovery
    badges: BadgeResolver
    emotes: EmoteCatalog
    cosmetics: CosmeticResolver
    manager: ConnectionManager
    gateway: BroadcastGateway


RELAY_KEY = web.AppKey("relay", Relay)


def build_relay(sio: socketio.AsyncServer, settings: Settings) -> Relay:
    """Construct and wire the relay's components."""
    http = HttpClient(settings.http)
    kick_api = KickApiClient(http, settings.kick)
    browser = BrowserSession(settings.discovery, settings.kick)
    discovery = IdentifierDiscovery(kick_api, browser, settings.discovery)
    badges = BadgeResolver(kick_api, settings.chat)
    emotes = EmoteCatalog(SevenTVProvider(http, settings.seventv), kick_api)
    cosmetics = CosmeticResolver(http, kick_api, settings.seventv)
    transformer = MessageTransformer(badges, emotes, cosmetics, settings.seventv)

    def connection_factory(channel: str) -> KickChatConnection:
        return KickChatConnection(channel, transformer, settings.kick)

    async def dispatch(channel, event) -> None:
        await gateway.dispatch(channel, event)

    manager = ConnectionManager(connection_factory, discovery, dispatch, settings)
    gateway = BroadcastGateway(sio, manager, discovery, badges, emotes)
    return Relay(
        settings=settings,
        http=http,
        browser=browser,
        discovery=discovery,
        badges=badges,
        emotes=emotes,
        cosmetics=cosmetics,
        manager=manager,
        gateway=gateway,
    )


async def index_handler(request: web.Request) -> web.Response:
    return web.Response(text="Kick chat relay is running")


async def status_handler(request: web.Request) -> web.Response:
    relay = request.app[RELAY_KEY]
    manager = relay.manager
    channels = []
    for channel in manager.active_channels():
        conn = manager.connection(channel)
        channels.append(
            {
                "name": channel,
                "subscribers": manager.subscriber_count(channel),
                "state": conn.state.value if conn else "disconnected",
            }
        )
    return web.json_response(
        {
            "channels": channels,
            "connections": manager.total_connections(),
            "clients": relay.gateway.session_count,
            "emotes": relay.emotes.stats(),
        }
    )


async def _on_shutdown(app: web.Application) -> None:
    relay = app[RELAY_KEY]
    logger.info("Shutting down relay")
    await relay.manager.close_all()
    await relay.browser.close()
    await relay.http.close()


def create_app(settings: Settings | None = None) -> web.Application:
    settings = settings or Settings()
    origins = settings.server.cors_allowed_origins
    sio = socketio.AsyncServer(
        async_mode="aiohttp",
        cors_allowed_origins="*" if origins == "*" else [o.strip() for o in origins.split(",")],
    )
    app = web.Application()
    sio.attach(app)
    app[RELAY_KEY] = build_relay(sio, settings)
    app.router.add_get("/", index_handler)
    app.router.add_get("/status", status_handler)
    app.on_shutdown.append(_on_shutdown)
    return app
