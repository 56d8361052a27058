"""Identifier discovery: cache, client hints, API, scraping, browser."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from ...api.kick import KickApiClient
from ...core.settings import DiscoverySettings
from . import patterns
from .browser import BrowserSession

logger = logging.getLogger(__name__)


class IdentifierSource(str, Enum):
    HINT = "hint"
    API = "api"
    SCRAPE = "scrape"
    BROWSER = "browser"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Identifier:
    value: str
    source: IdentifierSource

    @property
    def is_fallback(self) -> bool:
        return self.source is IdentifierSource.FALLBACK


@dataclass(frozen=True)
class ChannelIdentifiers:
    """The two numeric ids a channel's Pusher topics are built from."""

    channel: str
    chatroom_id: Identifier | None = None
    channel_id: Identifier | None = None
    not_found: bool = False

    @property
    def complete(self) -> bool:
        """Both ids known and neither is a guess."""
        return (
            self.chatroom_id is not None
            and self.channel_id is not None
            and not self.chatroom_id.is_fallback
            and not self.channel_id.is_fallback
        )

    def with_fallback(self) -> ChannelIdentifiers:
        """Fill missing ids with ``fallback_<channel>`` placeholders."""
        placeholder = Identifier(f"fallback_{self.channel}", IdentifierSource.FALLBACK)
        return ChannelIdentifiers(
            channel=self.channel,
            chatroom_id=self.chatroom_id or placeholder,
            channel_id=self.channel_id or placeholder,
            not_found=self.not_found,
        )


@dataclass
class _CacheEntry:
    chatroom_id: Identifier | None = None
    channel_id: Identifier | None = None
    not_found: bool = False


class IdentifierCache:
    """Process-lifetime id cache keyed by lower-cased channel name.

    Client hints overwrite whatever is cached; discovered values never
    replace a hint.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _CacheEntry] = {}

    def get(self, channel: str) -> ChannelIdentifiers:
        key = channel.lower()
        entry = self._entries.get(key) or _CacheEntry()
        return ChannelIdentifiers(
            channel=key,
            chatroom_id=entry.chatroom_id,
            channel_id=entry.channel_id,
            not_found=entry.not_found,
        )

    def store(self, channel: str, field_name: str, identifier: Identifier) -> None:
        entry = self._entries.setdefault(channel.lower(), _CacheEntry())
        current: Identifier | None = getattr(entry, field_name)
        if (
            current is not None
            and current.source is IdentifierSource.HINT
            and identifier.source is not IdentifierSource.HINT
        ):
            return
        setattr(entry, field_name, identifier)
        if identifier.source is IdentifierSource.HINT:
            entry.not_found = False

    def mark_not_found(self, channel: str) -> None:
        self._entries.setdefault(channel.lower(), _CacheEntry()).not_found = True

    def forget(self, channel: str) -> None:
        self._entries.pop(channel.lower(), None)

    def __contains__(self, channel: str) -> bool:
        return channel.lower() in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class IdentifierDiscovery:
    """Resolves a channel's chatroom id and channel id.

    Strategies run in order, each only for the ids still missing, and
    every id found is cached immediately. A blocked request (403) moves on
    to the next strategy. Concurrent resolves for a channel share one run.
    """

    def __init__(
        self,
        kick_api: KickApiClient,
        browser: BrowserSession | None = None,
        settings: DiscoverySettings | None = None,
        cache: IdentifierCache | None = None,
    ) -> None:
        self._kick_api = kick_api
        self._browser = browser
        self.settings = settings or DiscoverySettings()
        self.cache = cache or IdentifierCache()
        self._inflight: dict[str, asyncio.Future] = {}
        self._waiters: dict[asyncio.Future, int] = {}

    def supply_hint(
        self, channel: str, chatroom_id: str | int | None = None, channel_id: str | int | None = None
    ) -> ChannelIdentifiers:
        """Record ids reported by a client."""
        if chatroom_id:
            self.cache.store(
                channel, "chatroom_id", Identifier(str(chatroom_id), IdentifierSource.HINT)
            )
        if channel_id:
            self.cache.store(channel, "channel_id", Identifier(str(channel_id), IdentifierSource.HINT))
        if chatroom_id or channel_id:
            logger.info(f"Identifier hint for {channel}: chatroom={chatroom_id} channel={channel_id}")
        return self.cache.get(channel)

    def cached(self, channel: str) -> ChannelIdentifiers:
        return self.cache.get(channel)

    async def resolve(self, channel: str) -> ChannelIdentifiers:
        """Run the strategy chain for the channel's missing identifiers.

        Concurrent callers share one run. The run is cancelled once every
        caller waiting on it has been cancelled.
        """
        key = channel.lower()
        cached = self.cache.get(key)
        if cached.complete or cached.not_found:
            return cached

        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._run(key))
            self._inflight[key] = pending
            pending.add_done_callback(lambda f: self._run_done(key, f))
        self._waiters[pending] = self._waiters.get(pending, 0) + 1
        try:
            return await asyncio.shield(pending)
        finally:
            self._waiters[pending] -= 1
            if not self._waiters[pending]:
                del self._waiters[pending]
                if not pending.done():
                    logger.debug(f"Discovery for {key} abandoned")
                    if self._inflight.get(key) is pending:
                        del self._inflight[key]
                    pending.cancel()

    def _run_done(self, key: str, future: asyncio.Future) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]

    async def _run(self, key: str) -> ChannelIdentifiers:
        strategies = []
        if self.settings.use_api:
            strategies += [self._from_channel_api, self._from_chatroom_api]
        if self.settings.use_scraping:
            strategies.append(self._from_page)
        if self.settings.use_browser and self._browser is not None:
            strategies.append(self._from_browser)

        for strategy in strategies:
            current = self.cache.get(key)
            if current.complete or current.not_found:
                break
            try:
                await strategy(key, current)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Discovery strategy {strategy.__name__} for {key} failed: {e!r}")

        result = self.cache.get(key)
        if not result.complete:
            logger.info(
                f"Discovery exhausted for {key}: chatroom={_value(result.chatroom_id)} "
                f"channel={_value(result.channel_id)}"
            )
        return result

    def _found(
        self, key: str, source: IdentifierSource, chatroom_id=None, channel_id=None
    ) -> None:
        known = self.cache.get(key)
        if chatroom_id and known.chatroom_id is None:
            self.cache.store(key, "chatroom_id", Identifier(str(chatroom_id), source))
        if channel_id and known.channel_id is None:
            self.cache.store(key, "channel_id", Identifier(str(channel_id), source))

    async def _from_channel_api(self, key: str, current: ChannelIdentifiers) -> None:
        resp = await self._kick_api.get_channel(key)
        if resp.not_found:
            logger.info(f"Kick channel {key} does not exist")
            self.cache.mark_not_found(key)
            return
        if not resp.ok or not isinstance(resp.data, dict):
            return
        chatroom = resp.data.get("chatroom") or {}
        self._found(
            key,
            IdentifierSource.API,
            chatroom_id=chatroom.get("id"),
            channel_id=chatroom.get("channel_id") or resp.data.get("id"),
        )

    async def _from_chatroom_api(self, key: str, current: ChannelIdentifiers) -> None:
        resp = await self._kick_api.get_chatroom(key)
        if not resp.ok or not isinstance(resp.data, dict):
            return
        self._found(
            key,
            IdentifierSource.API,
            chatroom_id=resp.data.get("id"),
            channel_id=resp.data.get("channel_id"),
        )

    async def _from_page(self, key: str, current: ChannelIdentifiers) -> None:
        resp = await self._kick_api.get_channel_page(key)
        if not resp.ok or not resp.text:
            return
        self._found(
            key,
            IdentifierSource.SCRAPE,
            chatroom_id=None if current.chatroom_id else patterns.extract_chatroom_id(resp.text),
            channel_id=None if current.channel_id else patterns.extract_channel_id(resp.text),
        )

    async def _from_browser(self, key: str, current: ChannelIdentifiers) -> None:
        result = await self._browser.extract_identifiers(key)
        self._found(
            key,
            IdentifierSource.BROWSER,
            chatroom_id=None if current.chatroom_id else result.chatroom_id,
            channel_id=None if current.channel_id else result.channel_id,
        )


def _value(identifier: Identifier | None) -> str | None:
    return identifier.value if identifier else None
