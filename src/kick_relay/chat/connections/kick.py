"""Kick chat connection via Pusher WebSocket."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp

from ...core.settings import KickSettings
from ..discovery.chain import ChannelIdentifiers
from ..models import (
    ChannelConnectedEvent,
    ChannelInfo,
    ConnectionState,
    ErrorEvent,
    InactiveEvent,
    MessageEvent,
)
from ..transform import MessageTransformer
from .base import BaseChatConnection, ChannelConnectError

logger = logging.getLogger(__name__)

WsConnect = Callable[[str], Awaitable[Any]]

# Kick has used several event names for chat messages over time
CHAT_EVENTS = frozenset(
    {
        "App\\Events\\ChatMessageEvent",
        "ChatMessageEvent",
        "chat_message",
        "message",
        "chatroom_message",
        "App\\Events\\ChatMessage",
        "App\\Events\\MessageEvent",
    }
)
SUBSCRIBED_EVENTS = frozenset(
    {"pusher_internal:subscription_succeeded", "pusher:subscription_succeeded"}
)
CLOSE_TYPES = (
    aiohttp.WSMsgType.CLOSE,
    aiohttp.WSMsgType.CLOSING,
    aiohttp.WSMsgType.CLOSED,
    aiohttp.WSMsgType.ERROR,
)


def topic_names(chatroom_id: str, channel_id: str) -> list[str]:
    """All Pusher topics a channel's chat traffic may arrive on."""
    return [
        f"chatroom_{chatroom_id}",
        f"chatrooms.{chatroom_id}.v2",
        f"chatrooms.{chatroom_id}",
        f"channel_{channel_id}",
        f"channel.{channel_id}",
        f"predictions-channel-{channel_id}",
    ]


def decode_event_data(raw: Any) -> dict:
    """Pusher wraps event payloads as a JSON string."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}
    return {}


class KickChatConnection(BaseChatConnection):
    """Kick chat connection via Pusher WebSocket.

    The socket is opened before the channel's identifiers are known;
    :meth:`subscribe` is called once they are. No reconnect is attempted
    after the socket drops; the owner builds a fresh connection instead.
    """

    def __init__(
        self,
        channel: str,
        transformer: MessageTransformer,
        settings: KickSettings | None = None,
        ws_connect: WsConnect | None = None,
    ):
        super().__init__(channel)
        self._transformer = transformer
        self._settings = settings or KickSettings()
        self._ws_connect = ws_connect
        self._session: aiohttp.ClientSession | None = None
        self._ws = None
        self._socket_id: str | None = None
        self._topics: list[str] = []
        self._degraded = False
        self._message_count = 0
        self._reader: asyncio.Task | None = None
        self._watchdog: asyncio.Task | None = None

    @property
    def socket_id(self) -> str | None:
        return self._socket_id

    @property
    def topics(self) -> list[str]:
        return list(self._topics)

    @property
    def degraded(self) -> bool:
        """Subscribed on guessed identifiers."""
        return self._degraded

    @property
    def message_count(self) -> int:
        return self._message_count

    async def _connect(self, url: str):
        if self._ws_connect is not None:
            return await self._ws_connect(url)
        self._session = aiohttp.ClientSession()
        return await self._session.ws_connect(url, autoping=True)

    async def open(self) -> None:
        self._set_state(ConnectionState.SOCKET_OPENING)
        timeout = self._settings.connect_timeout
        try:
            self._ws = await asyncio.wait_for(self._connect(self._settings.pusher_url), timeout)
            await asyncio.wait_for(self._await_established(), timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            await self._cleanup()
            self._set_state(ConnectionState.DISCONNECTED)
            reason = "timed out" if isinstance(e, asyncio.TimeoutError) else str(e) or repr(e)
            raise ChannelConnectError(self._channel, reason) from e

        self._set_state(ConnectionState.SOCKET_OPEN)
        logger.info(f"Kick Pusher connected for {self._channel} (socket {self._socket_id})")
        # Announce right away; real ids follow once discovered
        self._emit(ChannelConnectedEvent(self._channel, ChannelInfo.placeholder(self._channel)))
        self._reader = asyncio.create_task(self._read_loop())
        self._watchdog = asyncio.create_task(self._watch_inactivity())

    async def _await_established(self) -> None:
        while True:
            msg = await self._ws.receive()
            if msg.type in CLOSE_TYPES:
                raise ConnectionError("socket closed before connection was established")
            if msg.type != aiohttp.WSMsgType.TEXT:
                continue
            try:
                frame = json.loads(msg.data)
            except json.JSONDecodeError:
                continue
            if not isinstance(frame, dict):
                continue
            if frame.get("event") == "pusher:connection_established":
                self._socket_id = decode_event_data(frame.get("data")).get("socket_id")
                return
            if frame.get("event") == "pusher:error":
                raise ConnectionError(f"pusher error: {frame.get('data')}")

    async def subscribe(self, identifiers: ChannelIdentifiers, degraded: bool = False) -> bool:
        """Send subscribe frames for every topic of the channel.

        A degraded subscription is replaced as soon as confirmed identifiers
        arrive: the guessed topics are unsubscribed and the real ones
        subscribed.

        Returns:
            True if the frames were sent (or already had been).
        """
        if self._closed:
            return False
        active = self._state in (ConnectionState.SUBSCRIBING, ConnectionState.SUBSCRIBED)
        if active and not self._degraded:
            return True
        if not active and self._state != ConnectionState.SOCKET_OPEN:
            return False

        chatroom_id, channel_id = identifiers.chatroom_id, identifiers.channel_id
        if chatroom_id is None or channel_id is None:
            logger.debug(f"Not subscribing {self._channel}: identifiers incomplete")
            return active
        guessed = chatroom_id.is_fallback or channel_id.is_fallback
        if active and guessed:
            return True
        if guessed and not degraded:
            logger.debug(f"Not subscribing {self._channel}: identifiers are placeholders")
            return False

        topics = topic_names(chatroom_id.value, channel_id.value)
        previous = self._state
        self._set_state(ConnectionState.SUBSCRIBING)
        try:
            if active:
                for topic in self._topics:
                    await self._send({"event": "pusher:unsubscribe", "data": {"channel": topic}})
            for topic in topics:
                await self._send({"event": "pusher:subscribe", "data": {"channel": topic}})
        except (ConnectionError, aiohttp.ClientError) as e:
            logger.warning(f"Subscribe for {self._channel} failed: {e}")
            self._set_state(previous)
            return False

        if active:
            logger.info(f"Replacing degraded subscription for {self._channel}")
        self._topics = topics
        self._degraded = degraded
        logger.info(
            f"Subscribed {self._channel} to chatroom {chatroom_id.value} / channel {channel_id.value}"
            + (" (degraded)" if degraded else "")
        )
        return True

    async def _send(self, frame: dict) -> None:
        if self._ws is None or self._ws.closed:
            raise ConnectionError("socket is closed")
        await self._ws.send_str(json.dumps(frame))

    async def _read_loop(self) -> None:
        """Main read loop for incoming Pusher frames."""
        reason = "upstream socket closed"
        try:
            while not self._closed:
                msg = await self._ws.receive()
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_frame(msg.data)
                elif msg.type in CLOSE_TYPES:
                    if msg.type == aiohttp.WSMsgType.ERROR and msg.data is not None:
                        reason = f"upstream socket error: {msg.data}"
                    break
        except (aiohttp.ClientError, ConnectionError) as e:
            reason = f"upstream socket error: {e}"

        if self._closed:
            return
        self._set_state(ConnectionState.DISCONNECTED)
        logger.warning(f"Kick connection for {self._channel} lost: {reason}")
        self._emit(ErrorEvent(self._channel, reason))
        if self._watchdog is not None:
            self._watchdog.cancel()

    async def _handle_frame(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            return
        if not isinstance(frame, dict):
            return

        event = frame.get("event", "")
        if event in SUBSCRIBED_EVENTS:
            if self._state == ConnectionState.SUBSCRIBING:
                self._set_state(ConnectionState.SUBSCRIBED)
            logger.debug(f"Subscription confirmed for {frame.get('channel')}")
        elif event == "pusher:ping":
            await self._send({"event": "pusher:pong", "data": {}})
        elif event == "pusher:error":
            logger.warning(f"Pusher error on {self._channel}: {frame.get('data')}")
        elif event in CHAT_EVENTS:
            data = decode_event_data(frame.get("data"))
            if not data:
                return
            try:
                message = await self._transformer.transform(self._channel, data)
            except Exception as e:
                logger.error(f"Failed to transform message on {self._channel}: {e!r}")
                return
            self._message_count += 1
            self._emit(MessageEvent(self._channel, message))

    async def _watch_inactivity(self) -> None:
        timeout = self._settings.inactivity_timeout
        await asyncio.sleep(timeout)
        if self._closed or self._state == ConnectionState.SUBSCRIBED or self._message_count:
            return
        logger.warning(f"No identifiers or messages for {self._channel} after {timeout:.0f}s")
        self._emit(InactiveEvent(self._channel, timeout))

    async def close(self) -> None:
        """Close the socket; nothing is emitted afterwards."""
        if self._closed:
            return
        self._closed = True
        current = asyncio.current_task()
        for task in (self._reader, self._watchdog):
            if task is not None and task is not current and not task.done():
                task.cancel()
        await self._cleanup()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _cleanup(self) -> None:
        """Clean up WebSocket and session."""
        if self._ws is not None and not self._ws.closed:
            try:
                await self._ws.close()
            except (aiohttp.ClientError, ConnectionError) as e:
                logger.debug(f"Error closing socket for {self._channel}: {e}")
        self._ws = None
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
