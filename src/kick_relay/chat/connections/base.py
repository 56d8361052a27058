"""Base upstream chat connection."""

import asyncio
import logging
from abc import ABC, abstractmethod

from ..models import ConnectionEvent, ConnectionState

logger = logging.getLogger(__name__)


class ChannelConnectError(ConnectionError):
    """An upstream connection for a channel could not be established."""

    def __init__(self, channel: str, reason: str):
        super().__init__(f"Failed to connect to {channel}: {reason}")
        self.channel = channel
        self.reason = reason


class BaseChatConnection(ABC):
    """Abstract base class for upstream chat connections.

    A connection reports everything it observes as events on
    :attr:`events`, consumed by a single reader. Once :meth:`close` has
    been called no further events are queued.
    """

    def __init__(self, channel: str):
        self._channel = channel.lower()
        self._state = ConnectionState.DISCONNECTED
        self._closed = False
        self.events: asyncio.Queue[ConnectionEvent] = asyncio.Queue()

    @property
    def channel(self) -> str:
        """The channel this connection serves."""
        return self._channel

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        """Whether the socket is usable (open or subscribed)."""
        return not self._closed and self._state not in (
            ConnectionState.DISCONNECTED,
            ConnectionState.SOCKET_OPENING,
        )

    @property
    def is_closed(self) -> bool:
        return self._closed

    @abstractmethod
    async def open(self) -> None:
        """Open the upstream socket.

        Raises:
            ChannelConnectError: If the socket could not be opened.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the upstream socket and stop emitting events."""

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.debug(f"{self.__class__.__name__}({self._channel}): {self._state.value} -> {state.value}")
            self._state = state

    def _emit(self, event: ConnectionEvent) -> None:
        """Queue an event for the consumer."""
        if self._closed:
            return
        self.events.put_nowait(event)
