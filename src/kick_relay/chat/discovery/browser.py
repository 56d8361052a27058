"""Headless Chromium session for identifier extraction.

Kick's API answers 403 to most server-side clients but not to a real
browser. As a last resort the channel page is loaded in Chromium, the
chatroom endpoints are fetched from inside the page, and the same
extractors used for plain HTML run over the hydrated page.

Requires the Chromium binary::

    playwright install chromium
"""

import asyncio
import json
import logging
from dataclasses import dataclass

from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from ...api.base import DEFAULT_USER_AGENT
from ...core.settings import DiscoverySettings, KickSettings
from . import patterns

logger = logging.getLogger(__name__)

# Runs inside the page; same-origin fetches carry the browser's cookies
IN_PAGE_FETCH = """
async (url) => {
    try {
        const resp = await fetch(url, {headers: {"Accept": "application/json"}});
        if (!resp.ok) return null;
        return await resp.text();
    } catch (e) {
        return null;
    }
}
"""

WINDOW_STATE = """
() => {
    const out = {};
    for (const key of Object.keys(window)) {
        if (key.startsWith("__") && key.toUpperCase().includes("STATE")) {
            try { out[key] = window[key]; } catch (e) {}
        }
    }
    return JSON.stringify(out);
}
"""


@dataclass
class BrowserResult:
    chatroom_id: str | None = None
    channel_id: str | None = None


class BrowserSession:
    """Process-wide Playwright browser, started on first use.

    Extractions run one at a time; each uses its own context and page,
    which are closed afterwards. :meth:`close` shuts the browser down.
    """

    def __init__(
        self,
        settings: DiscoverySettings | None = None,
        kick_settings: KickSettings | None = None,
    ) -> None:
        self.settings = settings or DiscoverySettings()
        self.kick_settings = kick_settings or KickSettings()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    @property
    def started(self) -> bool:
        return self._browser is not None

    async def _ensure_browser(self) -> Browser:
        if self._browser is None or not self._browser.is_connected():
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.settings.browser_headless,
                args=["--disable-blink-features=AutomationControlled", "--no-sandbox"],
            )
            logger.info("Headless browser started")
        return self._browser

    async def extract_identifiers(self, channel: str) -> BrowserResult:
        """Load the channel page and pull both identifiers out of it.

        Never raises for browser failures; missing ids come back as None.
        """
        async with self._lock:
            try:
                return await asyncio.wait_for(
                    self._extract(channel), timeout=self.settings.browser_timeout
                )
            except (PlaywrightError, asyncio.TimeoutError) as e:
                logger.warning(f"Browser extraction for {channel} failed: {e}")
                return BrowserResult()

    async def _extract(self, channel: str) -> BrowserResult:
        browser = await self._ensure_browser()
        context = await browser.new_context(user_agent=DEFAULT_USER_AGENT)
        try:
            page = await context.new_page()
            site = self.kick_settings.site_base
            await page.goto(f"{site}/{channel}", wait_until="domcontentloaded")
            await asyncio.sleep(self.settings.browser_settle_delay)

            result = BrowserResult()
            api = self.kick_settings.api_base
            chatroom_doc = await page.evaluate(IN_PAGE_FETCH, f"{api}/channels/{channel}/chatroom")
            self._apply_json(result, chatroom_doc, chatroom=True)
            if result.chatroom_id is None or result.channel_id is None:
                channel_doc = await page.evaluate(IN_PAGE_FETCH, f"{api}/channels/{channel}")
                self._apply_json(result, channel_doc, chatroom=False)

            if result.chatroom_id is None or result.channel_id is None:
                sources = [await page.evaluate(WINDOW_STATE), await page.content()]
                for content in sources:
                    if result.chatroom_id is None:
                        result.chatroom_id = patterns.extract_chatroom_id(content)
                    if result.channel_id is None:
                        result.channel_id = patterns.extract_channel_id(content)

            logger.debug(
                f"Browser extraction for {channel}: chatroom={result.chatroom_id} "
                f"channel={result.channel_id}"
            )
            return result
        finally:
            await context.close()

    @staticmethod
    def _apply_json(result: BrowserResult, doc: str | None, chatroom: bool) -> None:
        if not doc:
            return
        try:
            data = json.loads(doc)
        except ValueError:
            return
        if not isinstance(data, dict):
            return
        if chatroom:
            room_id, channel_id = data.get("id"), data.get("channel_id")
        else:
            room = data.get("chatroom") or {}
            room_id, channel_id = room.get("id"), room.get("channel_id") or data.get("id")
        if result.chatroom_id is None and room_id:
            result.chatroom_id = str(room_id)
        if result.channel_id is None and channel_id:
            result.channel_id = str(channel_id)

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except PlaywrightError as e:
                    logger.debug(f"Browser close failed: {e}")
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
