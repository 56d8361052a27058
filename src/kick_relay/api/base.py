"""Outbound HTTP client shared by every upstream integration."""

import asyncio
import json
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import aiohttp

from ..core.settings import HttpSettings

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

USER_AGENTS = [
    DEFAULT_USER_AGENT,
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

# Retry configuration
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 10.0  # seconds


@dataclass(frozen=True)
class ApiResponse:
    """Outcome of one upstream request.

    ``status`` is 0 when no HTTP response was received (network error,
    timeout); ``error`` then carries the reason.
    """

    status: int
    data: Any = None
    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300 and self.error is None

    @property
    def not_found(self) -> bool:
        return self.status == 404

    @property
    def blocked(self) -> bool:
        # Kick's Cloudflare front answers 403 to non-browser clients
        return self.status in (401, 403)

    @property
    def transient(self) -> bool:
        return self.status == 0 or is_retryable_status(self.status)


def is_retryable_status(status: int) -> bool:
    """Check if an HTTP status code indicates a transient error worth retrying."""
    # Retry on server errors (5xx) and rate limiting (429)
    return status >= 500 or status == 429


def parse_retry_after(headers, default: float = 1.0) -> float:
    """Parse a Retry-After header value into seconds."""
    retry_after = headers.get("Retry-After") if headers else None
    if not retry_after:
        return default

    try:
        return float(retry_after)
    except ValueError:
        # Try parsing as HTTP-date (RFC 7231)
        from email.utils import parsedate_to_datetime

        try:
            retry_dt = parsedate_to_datetime(retry_after)
            from datetime import datetime, timezone

            now = datetime.now(timezone.utc)
            delta = (retry_dt - now).total_seconds()
            return max(delta, 0.0)
        except (TypeError, ValueError):
            return default


async def safe_json(resp: aiohttp.ClientResponse) -> dict | list | None:
    """Safely parse JSON from response, returning None on error.

    Kick answers blocked requests with an HTML challenge page, so a JSON
    body is never guaranteed even on 200.
    """
    try:
        return await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to parse JSON response: {e}")
        return None


class HttpClient:
    """Thin aiohttp wrapper with proxy, user-agent rotation and retries.

    Every request method returns an :class:`ApiResponse`; HTTP and network
    failures are reported through it rather than raised.
    """

    def __init__(self, settings: HttpSettings | None = None) -> None:
        self.settings = settings or HttpSettings()
        self._session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.settings.timeout)
            connector = aiohttp.TCPConnector(limit=50)
            self._session = aiohttp.ClientSession(timeout=timeout, connector=connector)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            try:
                await self._session.close()
                # Allow time for underlying connections to fully close
                await asyncio.sleep(0.1)
            finally:
                self._session = None

    def user_agent(self) -> str:
        if self.settings.rotate_user_agent:
            return random.choice(USER_AGENTS)
        return DEFAULT_USER_AGENT

    def _headers(self, headers: dict[str, str] | None, accept: str) -> dict[str, str]:
        merged = {
            "User-Agent": self.user_agent(),
            "Accept": accept,
            "Accept-Language": "en-US,en;q=0.9",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }
        if headers:
            merged.update(headers)
        return merged

    async def get_json(self, url: str, headers: dict[str, str] | None = None) -> ApiResponse:
        """GET a JSON document."""
        return await self._request(
            "GET", url, self._headers(headers, "application/json, text/plain, */*"), parse_json=True
        )

    async def get_text(self, url: str, headers: dict[str, str] | None = None) -> ApiResponse:
        """GET a text/HTML document."""
        return await self._request(
            "GET",
            url,
            self._headers(headers, "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"),
            parse_json=False,
        )

    async def post_json(
        self, url: str, payload: dict, headers: dict[str, str] | None = None
    ) -> ApiResponse:
        """POST a JSON payload and parse a JSON reply."""
        merged = self._headers(headers, "application/json")
        merged["Content-Type"] = "application/json"
        return await self._request("POST", url, merged, parse_json=True, payload=payload)

    async def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        parse_json: bool,
        payload: dict | None = None,
    ) -> ApiResponse:
        async def do_request() -> ApiResponse:
            async with self.session.request(
                method,
                url,
                headers=headers,
                json=payload,
                proxy=self.settings.proxy_url or None,
            ) as resp:
                if is_retryable_status(resp.status):
                    delay = parse_retry_after(resp.headers, default=0.0)
                    if delay:
                        await asyncio.sleep(min(delay, DEFAULT_MAX_DELAY))
                    raise aiohttp.ClientResponseError(
                        resp.request_info, resp.history, status=resp.status
                    )
                if parse_json and resp.status < 300:
                    data = await safe_json(resp)
                    if data is None:
                        return ApiResponse(status=resp.status, error="invalid JSON body")
                    return ApiResponse(status=resp.status, data=data)
                text = await resp.text()
                return ApiResponse(status=resp.status, text=text)

        try:
            return await self._retry_with_backoff(do_request)
        except aiohttp.ClientResponseError as e:
            logger.debug(f"{method} {url} failed with HTTP {e.status}")
            return ApiResponse(status=e.status, error=f"HTTP {e.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"{method} {url} failed: {e!r}")
            return ApiResponse(status=0, error=str(e) or e.__class__.__name__)

    async def _retry_with_backoff(
        self,
        operation: Callable[[], Awaitable[ApiResponse]],
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        retryable_exceptions: tuple[type[Exception], ...] = (
            aiohttp.ClientError,
            asyncio.TimeoutError,
        ),
    ) -> ApiResponse:
        """Execute an operation with exponential backoff retry.

        Raises:
            The last exception if all retries fail.
        """
        max_retries = self.settings.max_retries
        last_exception: Exception | None = None

        for attempt in range(max_retries + 1):
            try:
                return await operation()
            except retryable_exceptions as e:
                last_exception = e

                if attempt < max_retries:
                    delay = min(base_delay * (2**attempt), max_delay)
                    logger.debug(
                        f"Attempt {attempt + 1}/{max_retries + 1} failed: {e!r}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)

        raise last_exception  # type: ignore[misc]
