"""7TV cosmetics (paints, roles) for chat authors."""

import asyncio
import logging

from ..api.base import HttpClient
from ..api.kick import KickApiClient
from ..core.settings import SevenTVSettings
from .models import Cosmetics

logger = logging.getLogger(__name__)

PAINT_QUERY = """
query GetPaint($id: ObjectID!) {
  cosmetics(list: [$id]) {
    paints {
      id
      name
      function
      color
      angle
      shape
      image_url
      repeat
      stops { at color }
      shadows { x_offset y_offset radius color }
    }
  }
}
"""


class CosmeticResolver:
    """Looks up 7TV cosmetics per username.

    Both positive and "no 7TV account" results are cached by lower-cased
    username. Failed requests are not cached, so the next message retries.
    """

    def __init__(
        self,
        http: HttpClient,
        kick_api: KickApiClient | None = None,
        settings: SevenTVSettings | None = None,
    ) -> None:
        self.http = http
        self._kick_api = kick_api
        self.settings = settings or SevenTVSettings()
        self._cache: dict[str, Cosmetics | None] = {}
        self._paints: dict[str, dict | None] = {}
        self._pending: dict[str, asyncio.Future] = {}

    @property
    def enabled(self) -> bool:
        return self.settings.cosmetics_enabled

    def cached(self, username: str) -> tuple[bool, Cosmetics | None]:
        """Return (hit, value) without touching the network."""
        key = username.lower()
        if key in self._cache:
            return True, self._cache[key]
        return False, None

    async def get(self, username: str, user_id: str | None = None) -> Cosmetics | None:
        if not self.enabled or not username:
            return None
        key = username.lower()
        if key in self._cache:
            return self._cache[key]

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch(key, user_id))
            self._pending[key] = pending
            pending.add_done_callback(lambda _: self._pending.pop(key, None))
        return await asyncio.shield(pending)

    async def _fetch(self, key: str, user_id: str | None) -> Cosmetics | None:
        if not user_id and self._kick_api is not None:
            user_id = await self._kick_api.get_user_id(key)
        if not user_id:
            return None

        resp = await self.http.get_json(f"{self.settings.api_base}/users/kick/{user_id}")
        if resp.not_found:
            self._cache[key] = None
            return None
        if not resp.ok or not isinstance(resp.data, dict):
            logger.debug(f"7TV cosmetics for {key} failed: {resp.status} {resp.error}")
            return None

        cosmetics = Cosmetics(data=resp.data)
        if not cosmetics.has_cosmetics:
            self._cache[key] = None
            return None

        paint_id = cosmetics.paint_id
        if paint_id:
            paint = await self.get_paint(paint_id)
            if paint is not None:
                cosmetics = Cosmetics(data=resp.data, paint=paint)

        self._cache[key] = cosmetics
        return cosmetics

    async def get_paint(self, paint_id: str) -> dict | None:
        """Fetch paint details over 7TV GraphQL, cached per paint id."""
        if paint_id in self._paints:
            return self._paints[paint_id]

        resp = await self.http.post_json(
            f"{self.settings.api_base}/gql",
            {"query": PAINT_QUERY, "variables": {"id": paint_id}},
        )
        if not resp.ok or not isinstance(resp.data, dict):
            logger.debug(f"7TV paint {paint_id} failed: {resp.status} {resp.error}")
            return None

        paints = ((resp.data.get("data") or {}).get("cosmetics") or {}).get("paints") or []
        paint = paints[0] if paints else None
        self._paints[paint_id] = paint
        return paint

    def clear_cache(self) -> None:
        self._cache.clear()
        self._paints.clear()
