"""Data models for the chat relay."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


class ConnectionState(str, Enum):
    """Lifecycle of one upstream Pusher connection."""

    DISCONNECTED = "disconnected"
    SOCKET_OPENING = "socket_opening"
    SOCKET_OPEN = "socket_open"  # awaiting identifiers
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"


class EmoteScope(str, Enum):
    """Where a catalog emote is defined."""

    GLOBAL = "global"
    CHANNEL = "channel"


@dataclass(frozen=True)
class ChatBadge:
    """A badge as delivered to overlay clients."""

    type: str
    image: str  # URL, inline SVG markup or emoji
    alt: str
    is_custom: bool = False
    count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "image": self.image,
            "alt": self.alt,
            "isCustom": self.is_custom,
        }
        if self.count is not None:
            data["count"] = self.count
        return data


@dataclass(frozen=True)
class ChatEmote:
    """An emote referenced by an upstream chat event."""

    id: str
    name: str
    source: str
    type: str = "kick"  # "kick", "7tv-global", "7tv-channel"
    position: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "source": self.source,
            "type": self.type,
        }
        if self.position is not None:
            data["position"] = self.position
        return data


@dataclass(frozen=True)
class CatalogEmote:
    """A 7TV emote available for name-based substitution."""

    id: str
    name: str
    url: str
    scope: EmoteScope
    animated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "type": self.scope.value,
            "animated": self.animated,
        }


@dataclass(frozen=True)
class SubscriberBadge:
    """A channel's custom subscriber badge for a month threshold."""

    id: str
    months: int
    url: str


@dataclass(frozen=True)
class Cosmetics:
    """7TV paint/role metadata for one chatter."""

    data: dict[str, Any]
    paint: dict[str, Any] | None = None

    @property
    def style(self) -> dict[str, Any]:
        return (self.data.get("user") or {}).get("style") or {}

    @property
    def paint_id(self) -> str | None:
        return self.style.get("paint_id")

    @property
    def color(self) -> str | None:
        value = self.style.get("color")
        if isinstance(value, int) and value != 0:
            return color_to_hex(value)
        return None

    @property
    def has_cosmetics(self) -> bool:
        return bool(
            self.style.get("paint_id") or self.style.get("badge_id") or self.data.get("roles")
        )

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.data)
        if self.paint is not None:
            data["paint"] = self.paint
        return data


def color_to_hex(color: int) -> str:
    """Convert a 7TV 32-bit RGBA color integer to #rrggbb."""
    value = f"{color & 0xFFFFFFFF:08x}"
    return f"#{value[:6]}"


@dataclass(frozen=True)
class ChatUser:
    """Represents a chat message author."""

    id: str
    username: str
    color: str | None = None
    identity_badges: tuple[dict[str, Any], ...] = ()
    cosmetics: Cosmetics | None = None

    def to_dict(self) -> dict[str, Any]:
        identity: dict[str, Any] = {"badges": [dict(b) for b in self.identity_badges]}
        if self.color:
            identity["color"] = self.color
        data: dict[str, Any] = {
            "id": self.id,
            "username": self.username,
            "identity": identity,
        }
        if self.cosmetics is not None:
            data["cosmetics"] = self.cosmetics.to_dict()
        return data


@dataclass(frozen=True)
class ChatMessage:
    """A normalized, enriched chat message ready for broadcast."""

    id: str
    username: str
    content: str  # HTML-bearing after emote substitution
    timestamp: datetime
    user: ChatUser
    badges: tuple[ChatBadge, ...] = ()
    emotes: tuple[ChatEmote, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        timestamp = self.timestamp.astimezone(timezone.utc)
        return {
            "id": self.id,
            "username": self.username,
            "content": self.content,
            "timestamp": timestamp.isoformat().replace("+00:00", "Z"),
            "badges": [b.to_dict() for b in self.badges],
            "emotes": [e.to_dict() for e in self.emotes],
            "user": self.user.to_dict(),
        }


@dataclass
class ChannelInfo:
    """Channel metadata announced to clients on connect."""

    id: str
    slug: str
    username: str
    chatroom_id: str
    channel_id: str
    subscriber_badges: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def placeholder(cls, channel: str) -> ChannelInfo:
        """Best-effort info sent before the real identifiers are known."""
        return cls(
            id="fallback",
            slug=channel.lower(),
            username=channel,
            chatroom_id="unknown",
            channel_id="unknown",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "username": self.username,
            "chatroom": {"id": self.chatroom_id, "channel_id": self.channel_id},
            "subscriber_badges": self.subscriber_badges,
        }


# --- Connection events ---


@dataclass(frozen=True)
class MessageEvent:
    channel: str
    message: ChatMessage


@dataclass(frozen=True)
class ChannelConnectedEvent:
    channel: str
    info: ChannelInfo


@dataclass(frozen=True)
class ErrorEvent:
    channel: str
    reason: str


@dataclass(frozen=True)
class InactiveEvent:
    """The connection never got identifiers or messages within its window."""

    channel: str
    idle_seconds: float


ConnectionEvent = Union[MessageEvent, ChannelConnectedEvent, ErrorEvent, InactiveEvent]
