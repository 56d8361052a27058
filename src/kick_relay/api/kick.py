"""Kick API client."""

import logging
from typing import Any

from ..chat.models import ChannelInfo
from ..core.settings import KickSettings
from .base import ApiResponse, HttpClient

logger = logging.getLogger(__name__)


class KickApiClient:
    """Client for Kick's unofficial v2 API and public channel pages.

    Note: the v2 endpoints sit behind anti-bot protection and frequently
    answer 403 to server-side clients; callers treat that as a fall-through.
    """

    def __init__(self, http: HttpClient, settings: KickSettings | None = None) -> None:
        self.http = http
        self.settings = settings or KickSettings()

    def _get_headers(self, slug: str) -> dict[str, str]:
        """Get headers for API requests."""
        return {
            "Origin": self.settings.site_base,
            "Referer": f"{self.settings.site_base}/{slug}",
            "X-Requested-With": "XMLHttpRequest",
        }

    async def get_channel(self, slug: str) -> ApiResponse:
        """Fetch the channel-info document (user, chatroom, subscriber badges)."""
        url = f"{self.settings.api_base}/channels/{slug}"
        resp = await self.http.get_json(url, headers=self._get_headers(slug))
        if not resp.ok:
            logger.debug(f"Kick: channel info for {slug} failed: {resp.status} {resp.error}")
        return resp

    async def get_chatroom(self, slug: str) -> ApiResponse:
        """Fetch the chatroom-info document."""
        url = f"{self.settings.api_base}/channels/{slug}/chatroom"
        resp = await self.http.get_json(url, headers=self._get_headers(slug))
        if not resp.ok:
            logger.debug(f"Kick: chatroom info for {slug} failed: {resp.status} {resp.error}")
        return resp

    async def get_channel_page(self, slug: str) -> ApiResponse:
        """Fetch the public channel page HTML."""
        return await self.http.get_text(f"{self.settings.site_base}/{slug}")

    async def get_user_id(self, slug: str) -> str | None:
        """Resolve a channel slug / username to its Kick user id."""
        resp = await self.get_channel(slug)
        if not resp.ok or not isinstance(resp.data, dict):
            return None
        user_id = resp.data.get("user_id") or (resp.data.get("user") or {}).get("id")
        return str(user_id) if user_id else None

    @staticmethod
    def parse_channel_info(slug: str, data: dict[str, Any]) -> ChannelInfo:
        """Build a ChannelInfo from the channel-info document."""
        chatroom = data.get("chatroom") or {}
        user = data.get("user") or {}
        channel_id = chatroom.get("channel_id") or data.get("id") or ""
        return ChannelInfo(
            id=str(data.get("id", "")),
            slug=data.get("slug", slug.lower()),
            username=user.get("username", slug),
            chatroom_id=str(chatroom.get("id", "")),
            channel_id=str(channel_id),
            subscriber_badges=list(data.get("subscriber_badges") or []),
        )
