"""7TV emote provider."""

import logging

from ...api.base import ApiResponse, HttpClient
from ...core.settings import SevenTVSettings
from ..models import CatalogEmote, EmoteScope

logger = logging.getLogger(__name__)


class SevenTVProvider:
    """Fetches 7TV emote sets through the shared HTTP client."""

    def __init__(self, http: HttpClient, settings: SevenTVSettings | None = None) -> None:
        self.http = http
        self.settings = settings or SevenTVSettings()

    @property
    def name(self) -> str:
        return "7tv"

    async def get_global_emotes(self) -> list[CatalogEmote] | None:
        """Fetch 7TV global emotes.

        Returns:
            The emotes, or None if the set could not be fetched.
        """
        resp = await self.http.get_json(f"{self.settings.api_base}/emote-sets/global")
        if not resp.ok or not isinstance(resp.data, dict):
            logger.debug(f"7TV global emotes failed: {resp.status} {resp.error}")
            return None
        return self._parse_set(resp.data.get("emotes", []), EmoteScope.GLOBAL)

    async def get_channel_emotes(self, kick_user_id: str) -> tuple[ApiResponse, list[CatalogEmote]]:
        """Fetch the 7TV emote set linked to a Kick user.

        The raw response is returned alongside so callers can tell "not
        linked to 7TV" (404) apart from a failed request.
        """
        resp = await self.http.get_json(f"{self.settings.api_base}/users/kick/{kick_user_id}")
        if not resp.ok or not isinstance(resp.data, dict):
            return resp, []
        emote_set = resp.data.get("emote_set") or {}
        return resp, self._parse_set(emote_set.get("emotes") or [], EmoteScope.CHANNEL)

    def _parse_set(self, raw_emotes: list, scope: EmoteScope) -> list[CatalogEmote]:
        emotes: list[CatalogEmote] = []
        for emote_data in raw_emotes:
            emote = self._parse_emote(emote_data, scope)
            if emote:
                emotes.append(emote)
        return emotes

    def _parse_emote(self, data: dict, scope: EmoteScope) -> CatalogEmote | None:
        """Parse a 7TV emote from API data."""
        if not isinstance(data, dict):
            return None
        emote_data = data.get("data") or data
        emote_id = emote_data.get("id", data.get("id", ""))
        name = data.get("name", emote_data.get("name", ""))

        if not emote_id or not name:
            return None

        # 7TV CDN URL format
        host = emote_data.get("host") or {}
        base_url = host.get("url", f"//cdn.7tv.app/emote/{emote_id}")
        if base_url.startswith("//"):
            base_url = "https:" + base_url

        animated = bool(emote_data.get("animated", False))
        url = f"{base_url}/1x.gif" if animated else f"{base_url}/1x.webp"

        return CatalogEmote(id=emote_id, name=name, url=url, scope=scope, animated=animated)
