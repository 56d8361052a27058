"""Connection manager - one upstream connection per joined channel."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from ..core.settings import Settings
from .connections.base import ChannelConnectError
from .connections.kick import KickChatConnection
from .discovery.chain import IdentifierDiscovery
from .models import ChatMessage, ConnectionEvent, ErrorEvent, InactiveEvent, MessageEvent

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[str], KickChatConnection]
Dispatch = Callable[[str, ConnectionEvent], Awaitable[None]]


@dataclass
class ChannelEntry:
    """Bookkeeping for one channel with at least one subscriber."""

    channel: str
    refcount: int = 0
    connection: KickChatConnection | None = None
    opening: asyncio.Future | None = None
    discovery: asyncio.Task | None = None
    pump: asyncio.Task | None = None
    history: deque = field(default_factory=deque)
    closed: bool = False


class ConnectionManager:
    """Shares one upstream connection among all subscribers of a channel.

    Channel names are case-insensitive. Concurrent acquires of a channel
    share a single connection attempt. The connection is torn down when
    the last subscriber releases it.
    """

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        discovery: IdentifierDiscovery,
        dispatch: Dispatch,
        settings: Settings | None = None,
    ):
        self._factory = connection_factory
        self._discovery = discovery
        self._dispatch = dispatch
        self.settings = settings or Settings()
        self._entries: dict[str, ChannelEntry] = {}

    # --- Subscriber lifecycle ---

    async def acquire(self, channel: str) -> KickChatConnection:
        """Register a subscriber and return the channel's open connection.

        Raises:
            ChannelConnectError: If the connection could not be opened. The
                subscriber is not retained in that case.
        """
        key = channel.lower()
        entry = self._entries.get(key)
        if entry is None:
            entry = ChannelEntry(
                channel=key, history=deque(maxlen=self.settings.chat.history_size)
            )
            self._entries[key] = entry
        entry.refcount += 1

        try:
            return await self._ensure_connection(entry)
        except (ChannelConnectError, asyncio.CancelledError):
            self._drop_failed_ref(entry)
            raise

    def _drop_failed_ref(self, entry: ChannelEntry) -> None:
        if entry.closed:
            # Already released and removed while connecting
            return
        entry.refcount -= 1
        if entry.refcount <= 0 and entry.connection is None:
            entry.closed = True
            if self._entries.get(entry.channel) is entry:
                del self._entries[entry.channel]

    async def _ensure_connection(self, entry: ChannelEntry) -> KickChatConnection:
        conn = entry.connection
        if conn is not None and conn.is_open:
            return conn

        if entry.opening is None:
            entry.opening = asyncio.ensure_future(self._open(entry))
        return await asyncio.shield(entry.opening)

    async def _open(self, entry: ChannelEntry) -> KickChatConnection:
        try:
            stale = entry.connection
            if stale is not None:
                entry.connection = None
                await stale.close()

            logger.info(f"Opening upstream connection for {entry.channel}")
            conn = self._factory(entry.channel)
            try:
                await conn.open()
            except ChannelConnectError:
                await conn.close()
                raise
            except (OSError, ValueError) as e:
                await conn.close()
                raise ChannelConnectError(entry.channel, str(e) or repr(e)) from e

            if entry.closed:
                await conn.close()
                raise ChannelConnectError(entry.channel, "released while connecting")

            entry.connection = conn
            entry.pump = asyncio.create_task(self._pump(entry, conn))
            entry.discovery = asyncio.create_task(self._discover(entry, conn))
            return conn
        finally:
            entry.opening = None

    async def release(self, channel: str) -> None:
        """Drop a subscriber; the last one out closes the connection."""
        key = channel.lower()
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.refcount -= 1
        if entry.refcount > 0:
            return

        entry.closed = True
        del self._entries[key]
        logger.info(f"No subscribers left for {key}, closing connection")
        await self._teardown(entry)

    async def _teardown(self, entry: ChannelEntry) -> None:
        current = asyncio.current_task()
        for task in (entry.discovery, entry.pump):
            if task is not None and task is not current and not task.done():
                task.cancel()
        entry.discovery = None
        entry.pump = None
        conn, entry.connection = entry.connection, None
        if conn is not None:
            try:
                await conn.close()
            except Exception as e:
                logger.warning(f"Error closing connection for {entry.channel}: {e!r}")

    async def close_all(self) -> None:
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            entry.closed = True
            await self._teardown(entry)
        if entries:
            logger.info(f"Closed {len(entries)} upstream connections")

    # --- Identifiers ---

    async def _discover(self, entry: ChannelEntry, conn: KickChatConnection) -> None:
        identifiers = await self._discovery.resolve(entry.channel)
        if conn.is_closed:
            return
        if identifiers.complete:
            await conn.subscribe(identifiers)
        elif identifiers.not_found:
            logger.warning(f"Channel {entry.channel} not found; waiting for client hints")
        elif self.settings.kick.subscribe_with_fallback:
            await conn.subscribe(identifiers.with_fallback(), degraded=True)
        else:
            logger.info(f"Identifiers for {entry.channel} unknown; waiting for client hints")

    async def identifiers_available(self, channel: str) -> bool:
        """Subscribe the channel's connection if its identifiers are now known.

        Returns:
            True if the connection is subscribing or subscribed.
        """
        entry = self._entries.get(channel.lower())
        if entry is None or entry.connection is None or entry.connection.is_closed:
            return False
        identifiers = self._discovery.cached(entry.channel)
        if not identifiers.complete:
            return False
        return await entry.connection.subscribe(identifiers)

    # --- Event pump ---

    async def _pump(self, entry: ChannelEntry, conn: KickChatConnection) -> None:
        while True:
            event = await conn.events.get()
            if isinstance(event, MessageEvent):
                entry.history.append(event.message)
            try:
                await self._dispatch(entry.channel, event)
            except Exception as e:
                logger.exception(f"Dispatch failed for {entry.channel}: {e!r}")

            if isinstance(event, (ErrorEvent, InactiveEvent)):
                await self._reclaim(entry, conn)
                return

    async def _reclaim(self, entry: ChannelEntry, conn: KickChatConnection) -> None:
        """Close a dead connection; the entry stays for the next acquire."""
        if entry.connection is conn:
            entry.connection = None
            if entry.discovery is not None and not entry.discovery.done():
                entry.discovery.cancel()
            entry.discovery = None
            entry.pump = None
        await conn.close()
        logger.info(f"Reclaimed connection for {entry.channel}")

    # --- Introspection ---

    def active_channels(self) -> list[str]:
        return sorted(self._entries)

    def subscriber_count(self, channel: str) -> int:
        entry = self._entries.get(channel.lower())
        return entry.refcount if entry else 0

    def total_connections(self) -> int:
        return sum(1 for e in self._entries.values() if e.connection is not None)

    def connection(self, channel: str) -> KickChatConnection | None:
        entry = self._entries.get(channel.lower())
        return entry.connection if entry else None

    def recent_messages(self, channel: str) -> list[ChatMessage]:
        entry = self._entries.get(channel.lower())
        return list(entry.history) if entry else []
