"""Turns raw Kick chat events into enriched ChatMessage records."""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from ..core.settings import SevenTVSettings
from .badges import BadgeResolver
from .cosmetics import CosmeticResolver
from .emotes.catalog import EmoteCatalog, kick_emote_url, parse_inline_emotes
from .models import ChatBadge, ChatEmote, ChatMessage, ChatUser, Cosmetics

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> datetime:
    """Parse Kick's ``created_at``, defaulting to now."""
    if isinstance(value, str) and value:
        try:
            timestamp = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return datetime.now(timezone.utc)
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp
    return datetime.now(timezone.utc)


def collect_emotes(data: dict[str, Any], content: str) -> tuple[ChatEmote, ...]:
    """Emotes listed on the event plus inline ``[emote:id:name]`` markers."""
    emotes: list[ChatEmote] = []
    seen: set[str] = set()

    for raw in data.get("emotes") or []:
        if not isinstance(raw, dict) or not raw.get("id"):
            continue
        emote_id = str(raw["id"])
        if emote_id in seen:
            continue
        seen.add(emote_id)
        emotes.append(
            ChatEmote(
                id=emote_id,
                name=str(raw.get("name", "")),
                source=kick_emote_url(emote_id),
                position=raw.get("position") if isinstance(raw.get("position"), int) else None,
            )
        )

    for start, _end, emote_id, name in parse_inline_emotes(content):
        if emote_id in seen:
            continue
        seen.add(emote_id)
        emotes.append(ChatEmote(id=emote_id, name=name, source=kick_emote_url(emote_id), position=start))

    return tuple(emotes)


class MessageTransformer:
    """Builds one ChatMessage per chat event.

    Cosmetics are looked up with a time bound; a lookup that outlives it
    keeps running in the background so the cache is filled for the
    author's next message.
    """

    def __init__(
        self,
        badges: BadgeResolver,
        emotes: EmoteCatalog,
        cosmetics: CosmeticResolver | None = None,
        settings: SevenTVSettings | None = None,
    ) -> None:
        self.badges = badges
        self.emotes = emotes
        self.cosmetics = cosmetics
        self.settings = settings or SevenTVSettings()

    async def transform(self, channel: str, data: dict[str, Any]) -> ChatMessage:
        sender = data.get("sender") or {}
        identity = sender.get("identity") or {}
        user_id = str(sender.get("id", ""))
        username = sender.get("username") or sender.get("slug") or "unknown"
        raw_badges = [b for b in identity.get("badges") or [] if isinstance(b, dict)]

        badges: list[ChatBadge] = []
        for raw_badge in raw_badges:
            badges.append(await self.badges.resolve(channel, raw_badge))

        cosmetics = await self._lookup_cosmetics(username, user_id)
        content = data.get("content") or ""

        user = ChatUser(
            id=user_id,
            username=username,
            color=identity.get("color"),
            identity_badges=tuple(raw_badges),
            cosmetics=cosmetics,
        )
        return ChatMessage(
            id=str(data.get("id") or uuid.uuid4()),
            username=username,
            content=self.emotes.render(content, channel),
            timestamp=parse_timestamp(data.get("created_at")),
            user=user,
            badges=tuple(badges),
            emotes=collect_emotes(data, content),
        )

    async def _lookup_cosmetics(self, username: str, user_id: str) -> Cosmetics | None:
        if self.cosmetics is None or not self.cosmetics.enabled:
            return None
        hit, value = self.cosmetics.cached(username)
        if hit:
            return value
        lookup = asyncio.ensure_future(self.cosmetics.get(username, user_id or None))
        try:
            return await asyncio.wait_for(asyncio.shield(lookup), self.settings.cosmetic_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Cosmetics for {username} not ready in time")
            lookup.add_done_callback(_consume_result)
            return None
        except Exception as e:
            logger.debug(f"Cosmetics lookup for {username} failed: {e!r}")
            return None


def _consume_result(future: asyncio.Future) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.debug(f"Background cosmetics lookup failed: {future.exception()!r}")
