"""Emote catalog: 7TV emote sets per channel and content rendering."""

import asyncio
import html
import logging
import re
from typing import Any

from ...api.kick import KickApiClient
from ..models import CatalogEmote
from .matcher import find_catalog_emotes
from .provider import SevenTVProvider

logger = logging.getLogger(__name__)

KICK_EMOTE_URL = "https://files.kick.com/emotes/{id}/fullsize"
INLINE_EMOTE_RE = re.compile(r"\[emote:(\d+):([^\]]+)\]")


def kick_emote_url(emote_id: str) -> str:
    return KICK_EMOTE_URL.format(id=emote_id)


def parse_inline_emotes(content: str) -> list[tuple[int, int, str, str]]:
    """Find ``[emote:<id>:<name>]`` markers as (start, end, id, name)."""
    return [
        (m.start(), m.end(), m.group(1), m.group(2)) for m in INLINE_EMOTE_RE.finditer(content or "")
    ]


def _kick_img(emote_id: str, name: str) -> str:
    alt = html.escape(name, quote=True)
    return (
        f'<img src="{kick_emote_url(emote_id)}" class="emote kick-emote" '
        f'alt="{alt}" title="{alt}" loading="lazy">'
    )


def _catalog_img(emote: CatalogEmote) -> str:
    alt = html.escape(emote.name, quote=True)
    motion = "animated" if emote.animated else "static"
    return (
        f'<img src="{html.escape(emote.url, quote=True)}" '
        f'class="emote seventv-emote {emote.scope.value}-emote {motion}" '
        f'alt="{alt}" title="{alt}" loading="lazy">'
    )


class EmoteCatalog:
    """Per-channel emote sets with a process-wide global set.

    The global set is fetched once; until a fetch succeeds every load
    retries it. Channel sets are fetched once per channel and kept until
    cleared; a channel without a 7TV account caches an empty set.
    """

    def __init__(self, provider: SevenTVProvider, kick_api: KickApiClient | None = None) -> None:
        self._provider = provider
        self._kick_api = kick_api
        self._global: dict[str, CatalogEmote] | None = None
        self._channels: dict[str, dict[str, CatalogEmote]] = {}
        self._loading: dict[str, asyncio.Future] = {}

    async def load_global(self) -> dict[str, CatalogEmote]:
        if self._global is not None:
            return self._global
        emotes = await self._provider.get_global_emotes()
        if emotes is None:
            return {}
        self._global = {e.name: e for e in emotes}
        logger.info(f"Loaded {len(self._global)} global 7TV emotes")
        return self._global

    async def load_channel(self, channel: str, user_id: str | None = None) -> dict[str, CatalogEmote]:
        """Load the channel's emote set (once); concurrent callers share the fetch."""
        key = channel.lower()
        await self.load_global()
        cached = self._channels.get(key)
        if cached is not None:
            return cached

        pending = self._loading.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch_channel(key, user_id))
            self._loading[key] = pending
            pending.add_done_callback(lambda _: self._loading.pop(key, None))
        return await asyncio.shield(pending)

    async def _fetch_channel(self, key: str, user_id: str | None) -> dict[str, CatalogEmote]:
        if user_id is None and self._kick_api is not None:
            user_id = await self._kick_api.get_user_id(key)
        if not user_id:
            logger.debug(f"No Kick user id for {key}; channel emotes unavailable")
            return {}

        resp, emotes = await self._provider.get_channel_emotes(user_id)
        if resp.ok or resp.not_found:
            self._channels[key] = {e.name: e for e in emotes}
            logger.info(f"Loaded {len(emotes)} channel 7TV emotes for {key}")
            return self._channels[key]
        logger.debug(f"7TV channel emotes for {key} failed: {resp.status} {resp.error}")
        return {}

    def emote_map(self, channel: str) -> dict[str, CatalogEmote]:
        """Name lookup with channel entries shadowing global ones."""
        merged = dict(self._global or {})
        merged.update(self._channels.get(channel.lower(), {}))
        return merged

    async def get_emotes(self, channel: str) -> list[dict[str, Any]]:
        """All emotes usable in a channel, in wire form."""
        await self.load_channel(channel)
        return [e.to_dict() for e in self.emote_map(channel).values()]

    def render(self, content: str, channel: str) -> str:
        """Rewrite message text to HTML with emote images.

        Inline Kick markers are always rewritten. Catalog names are then
        substituted in the remaining text only; everything else is escaped.
        """
        if not content:
            return ""

        emote_map = self.emote_map(channel)
        parts: list[str] = []
        pos = 0
        for start, end, emote_id, name in parse_inline_emotes(content):
            parts.append(self._render_text(content[pos:start], emote_map))
            parts.append(_kick_img(emote_id, name))
            pos = end
        parts.append(self._render_text(content[pos:], emote_map))
        return "".join(parts)

    @staticmethod
    def _render_text(text: str, emote_map: dict[str, CatalogEmote]) -> str:
        if not text:
            return ""
        parts: list[str] = []
        pos = 0
        for start, end, emote in find_catalog_emotes(text, emote_map):
            parts.append(html.escape(text[pos:start], quote=False))
            parts.append(_catalog_img(emote))
            pos = end
        parts.append(html.escape(text[pos:], quote=False))
        return "".join(parts)

    def clear_channel(self, channel: str) -> None:
        self._channels.pop(channel.lower(), None)

    def clear_all(self) -> None:
        self._global = None
        self._channels.clear()

    def stats(self) -> dict[str, Any]:
        return {
            "global": len(self._global or {}),
            "channels": len(self._channels),
            "channel_emotes": sum(len(m) for m in self._channels.values()),
            "global_loaded": self._global is not None,
        }
