"""Socket.IO gateway between overlay clients and upstream connections."""

import logging
from typing import Any

import socketio

from ..chat.badges import BadgeResolver
from ..chat.discovery.chain import IdentifierDiscovery
from ..chat.emotes.catalog import EmoteCatalog
from ..chat.manager import ConnectionManager
from ..chat.models import (
    ChannelConnectedEvent,
    ChannelInfo,
    ConnectionEvent,
    ErrorEvent,
    InactiveEvent,
    MessageEvent,
)

logger = logging.getLogger(__name__)


def room_name(channel: str) -> str:
    return f"channel:{channel.lower()}"


def _channel_from_payload(data: Any) -> str:
    if isinstance(data, dict):
        data = data.get("channelName") or data.get("channel")
    if not isinstance(data, str):
        return ""
    return data.strip().lower()


class BroadcastGateway:
    """Routes client room membership and upstream events.

    Each session is in at most one channel room at a time.
    """

    def __init__(
        self,
        sio: socketio.AsyncServer,
        manager: ConnectionManager,
        discovery: IdentifierDiscovery,
        badges: BadgeResolver,
        emotes: EmoteCatalog,
    ):
        self.sio = sio
        self.manager = manager
        self.discovery = discovery
        self.badges = badges
        self.emotes = emotes
        self._sessions: dict[str, str] = {}  # sid -> channel

        sio.on("connect", self.on_connect)
        sio.on("disconnect", self.on_disconnect)
        sio.on("joinChannel", self.on_join_channel)
        sio.on("leaveChannel", self.on_leave_channel)
        sio.on("badgeData", self.on_badge_data)

    def session_channel(self, sid: str) -> str | None:
        return self._sessions.get(sid)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    # --- Client events ---

    async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
        logger.info(f"Client connected: {sid}")

    async def on_disconnect(self, sid: str, *args) -> None:
        logger.info(f"Client disconnected: {sid}")
        await self._leave(sid)

    async def on_join_channel(self, sid: str, data: Any) -> None:
        channel = _channel_from_payload(data)
        if not channel:
            await self.sio.emit("connectionError", "Invalid channel name", to=sid)
            return

        if self._sessions.get(sid) is not None:
            await self._leave(sid)

        logger.info(f"Client {sid} joining {channel}")
        self._sessions[sid] = channel
        await self.sio.enter_room(sid, room_name(channel))

        existing = self.manager.connection(channel)
        already_open = existing is not None and existing.is_open
        try:
            conn = await self.manager.acquire(channel)
        except ConnectionError as e:
            logger.warning(f"Join {channel} for {sid} failed: {e}")
            if self._sessions.get(sid) == channel:
                del self._sessions[sid]
                await self.sio.leave_room(sid, room_name(channel))
                await self.sio.emit(
                    "connectionError", f"Failed to connect to channel: {channel}", to=sid
                )
            return

        if self._sessions.get(sid) != channel:
            # Left again while the connection was opening
            return

        if already_open and conn is existing:
            # Joined a connection that was announced before this session arrived
            await self.sio.emit(
                "channelConnected", ChannelInfo.placeholder(channel).to_dict(), to=sid
            )

        try:
            emotes = await self.emotes.get_emotes(channel)
        except Exception as e:
            logger.warning(f"Loading emotes for {channel} failed: {e!r}")
            emotes = []
        await self.sio.emit("emotesLoaded", emotes, to=sid)

        for message in self.manager.recent_messages(channel):
            await self.sio.emit("chatMessage", message.to_dict(), to=sid)

    async def on_leave_channel(self, sid: str, *args) -> None:
        await self._leave(sid)

    async def _leave(self, sid: str) -> None:
        channel = self._sessions.pop(sid, None)
        if channel is None:
            return
        logger.info(f"Client {sid} leaving {channel}")
        await self.sio.leave_room(sid, room_name(channel))
        await self.manager.release(channel)

    async def on_badge_data(self, sid: str, data: Any) -> None:
        if not isinstance(data, dict):
            return
        channel = _channel_from_payload(data) or self._sessions.get(sid)
        if not channel:
            return

        raw_badges = data.get("subscriber_badges")
        if isinstance(raw_badges, list):
            self.badges.cache_from_client(channel, raw_badges)

        info = data.get("channelInfo") or {}
        chatroom_id = (info.get("chatroom") or {}).get("id") if isinstance(info, dict) else None
        channel_id = None
        if isinstance(raw_badges, list) and raw_badges and isinstance(raw_badges[0], dict):
            channel_id = raw_badges[0].get("channel_id")
        if chatroom_id or channel_id:
            self.discovery.supply_hint(channel, chatroom_id=chatroom_id, channel_id=channel_id)
            await self.manager.identifiers_available(channel)

    # --- Upstream events ---

    async def dispatch(self, channel: str, event: ConnectionEvent) -> None:
        """Forward one upstream event to the channel's room."""
        room = room_name(channel)
        if isinstance(event, MessageEvent):
            await self.sio.emit("chatMessage", event.message.to_dict(), room=room)
        elif isinstance(event, ChannelConnectedEvent):
            await self.sio.emit("channelConnected", event.info.to_dict(), room=room)
        elif isinstance(event, ErrorEvent):
            await self.sio.emit("connectionError", event.reason, room=room)
        elif isinstance(event, InactiveEvent):
            await self.sio.emit(
                "connectionError",
                f"No chat activity on {channel} after {event.idle_seconds:.0f}s",
                room=room,
            )
