"""Badge resolution: built-in badge table plus per-channel subscriber badges."""

import asyncio
import logging
from typing import Any

from ..api.kick import KickApiClient
from ..core.settings import ChatSettings
from .models import ChatBadge, SubscriberBadge

logger = logging.getLogger(__name__)

KICK_BADGE_BASE = "https://www.kickdatabase.com/kickBadges"

# Static badge URLs for system badges (not provided by Kick's chat events)
KICK_SYSTEM_BADGES: dict[str, str] = {
    "broadcaster": f"{KICK_BADGE_BASE}/broadcaster.svg",
    "moderator": f"{KICK_BADGE_BASE}/moderator.svg",
    "vip": f"{KICK_BADGE_BASE}/vip.svg",
    "og": f"{KICK_BADGE_BASE}/og.svg",
    "founder": f"{KICK_BADGE_BASE}/founder.svg",
    "staff": f"{KICK_BADGE_BASE}/staff.svg",
    "verified": f"{KICK_BADGE_BASE}/verified.svg",
    "sub_gifter": f"{KICK_BADGE_BASE}/subGifter.svg",
}

DEFAULT_SUBSCRIBER_BADGE = (
    '<svg width="16" height="16" viewBox="0 0 32 32" fill="none" '
    'xmlns="http://www.w3.org/2000/svg" style="display: inline-block; vertical-align: middle;">'
    '<defs><radialGradient id="subscriber_gradient" cx="0" cy="0" r="1" '
    'gradientUnits="userSpaceOnUse" gradientTransform="translate(16 16) rotate(90) scale(16)">'
    '<stop stop-color="#E1FF00"/><stop offset="1" stop-color="#2AA300"/></radialGradient></defs>'
    '<path d="M17.03 2.91L16.24 0.67C16.16 0.45 15.84 0.45 15.76 0.67L14.97 2.91'
    "C12.9 8.78 8.78 12.9 2.91 14.97L0.67 15.76C0.45 15.84 0.45 16.16 0.67 16.24L2.91 17.03"
    "C8.78 19.1 12.9 23.22 14.97 29.09L15.76 31.33C15.84 31.55 16.16 31.55 16.24 31.33"
    "L17.03 29.09C19.1 23.22 23.22 19.1 29.09 17.03L31.33 16.24C31.55 16.16 31.55 15.84 "
    '31.33 15.76L29.09 14.97C23.22 12.9 19.1 8.78 17.03 2.91Z" fill="url(#subscriber_gradient)"/>'
    "</svg>"
)

BADGE_EMOJIS: dict[str, str] = {
    "moderator": "🛡️",
    "vip": "💎",
    "subscriber": "⭐",
    "verified": "✅",
    "founder": "🏆",
    "og": "🔥",
    "broadcaster": "👑",
    "staff": "⚡",
    "admin": "🔧",
    "sub_gifter": "🎁",
}
FALLBACK_EMOJI = "🎖️"


def builtin_badge_image(badge_type: str) -> str:
    """Image for a badge kind that needs no network lookup."""
    if badge_type == "subscriber":
        return DEFAULT_SUBSCRIBER_BADGE
    return KICK_SYSTEM_BADGES.get(badge_type) or BADGE_EMOJIS.get(badge_type, FALLBACK_EMOJI)


def parse_subscriber_badges(raw_badges: list[dict[str, Any]] | None) -> list[SubscriberBadge]:
    """Parse Kick's subscriber_badges array, sorted by month threshold."""
    badges: list[SubscriberBadge] = []
    for raw in raw_badges or []:
        if not isinstance(raw, dict):
            continue
        image = raw.get("badge_image") or {}
        src = image.get("src") if isinstance(image, dict) else None
        months = raw.get("months")
        if not src or not isinstance(months, int):
            continue
        badges.append(SubscriberBadge(id=str(raw.get("id", "")), months=months, url=src))
    badges.sort(key=lambda b: b.months)
    return badges


class BadgeResolver:
    """Maps raw chat badges to delivered badges, caching per channel.

    The custom subscriber set of a channel is loaded at most once (from the
    client's badge data or from the channel-info endpoint). Resolutions are
    cached by ``(channel, months)``, negative results included.

    A message waits at most ``settings.badge_timeout`` for the set; when it
    is not ready the built-in subscriber badge is used. A load that outlives
    the bound keeps running, and other messages do not wait on it. After a
    transient failure the channel is not retried for
    ``settings.badge_retry_interval`` seconds.
    """

    def __init__(
        self, kick_api: KickApiClient | None = None, settings: ChatSettings | None = None
    ) -> None:
        self._kick_api = kick_api
        self.settings = settings or ChatSettings()
        self._channel_badges: dict[str, list[SubscriberBadge]] = {}
        self._resolved: dict[tuple[str, int], SubscriberBadge | None] = {}
        self._loading: dict[str, asyncio.Future] = {}
        self._overdue: set[str] = set()
        self._failed_at: dict[str, float] = {}

    def cache_from_client(self, channel: str, raw_badges: list[dict[str, Any]] | None) -> int:
        """Store a channel's subscriber badges supplied by a client.

        Returns:
            Number of usable badges stored.
        """
        key = channel.lower()
        badges = parse_subscriber_badges(raw_badges)
        self._channel_badges[key] = badges
        self._failed_at.pop(key, None)
        self._invalidate(key)
        logger.info(f"Cached {len(badges)} subscriber badges for {key}")
        return len(badges)

    def get_channel_badges(self, channel: str) -> list[SubscriberBadge]:
        return list(self._channel_badges.get(channel.lower(), []))

    async def _ensure_channel_badges(self, key: str) -> list[SubscriberBadge]:
        cached = self._channel_badges.get(key)
        if cached is not None:
            return cached

        loop = asyncio.get_running_loop()
        failed_at = self._failed_at.get(key)
        if failed_at is not None and loop.time() - failed_at < self.settings.badge_retry_interval:
            return []

        pending = self._loading.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._load_channel_badges(key))
            self._loading[key] = pending
            pending.add_done_callback(lambda f: self._load_done(key, f))
        elif key in self._overdue:
            return []

        try:
            return await asyncio.wait_for(asyncio.shield(pending), self.settings.badge_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Subscriber badges for {key} not ready in time")
            self._overdue.add(key)
            return []

    def _load_done(self, key: str, future: asyncio.Future) -> None:
        self._loading.pop(key, None)
        self._overdue.discard(key)
        if not future.cancelled() and future.exception() is not None:
            logger.warning(f"Loading subscriber badges for {key} failed: {future.exception()!r}")

    async def _load_channel_badges(self, key: str) -> list[SubscriberBadge]:
        badges: list[SubscriberBadge] = []
        if self._kick_api is not None:
            resp = await self._kick_api.get_channel(key)
            if resp.ok and isinstance(resp.data, dict):
                badges = parse_subscriber_badges(resp.data.get("subscriber_badges"))
            elif resp.transient:
                # Don't pin an empty set on a network hiccup
                self._failed_at[key] = asyncio.get_running_loop().time()
                return []
        if key not in self._channel_badges:
            self._channel_badges[key] = badges
        return self._channel_badges[key]

    async def resolve_subscriber(self, channel: str, months: int) -> SubscriberBadge | None:
        """Custom subscriber badge for a month count, if the channel has one."""
        key = channel.lower()
        cache_key = (key, months)
        if cache_key in self._resolved:
            return self._resolved[cache_key]

        badges = await self._ensure_channel_badges(key)
        match: SubscriberBadge | None = None
        for badge in badges:
            if badge.months <= months:
                match = badge
            else:
                break

        if key in self._channel_badges:
            self._resolved[cache_key] = match
        return match

    async def resolve(self, channel: str, raw_badge: dict[str, Any]) -> ChatBadge:
        """Resolve one raw badge from a chat event."""
        badge_type = raw_badge.get("type", "") or "unknown"
        alt = raw_badge.get("text") or badge_type
        count = raw_badge.get("count")
        count = count if isinstance(count, int) else None

        if badge_type == "subscriber" and count:
            custom = await self.resolve_subscriber(channel, count)
            if custom is not None:
                return ChatBadge(
                    type=badge_type, image=custom.url, alt=alt, is_custom=True, count=count
                )

        return ChatBadge(type=badge_type, image=builtin_badge_image(badge_type), alt=alt, count=count)

    def _invalidate(self, key: str) -> None:
        for cache_key in [k for k in self._resolved if k[0] == key]:
            del self._resolved[cache_key]

    def clear_cache(self, channel: str | None = None) -> None:
        if channel is None:
            self._channel_badges.clear()
            self._resolved.clear()
            self._failed_at.clear()
            return
        key = channel.lower()
        self._channel_badges.pop(key, None)
        self._failed_at.pop(key, None)
        self._invalidate(key)
