"""Tests for upstream response classification and retry helpers."""

import aiohttp
import pytest

from kick_relay.api.base import ApiResponse, HttpClient, is_retryable_status, parse_retry_after
from kick_relay.core.settings import HttpSettings

# --- ApiResponse ---


def test_ok_response():
    resp = ApiResponse(status=200, data={"id": 1})
    assert resp.ok
    assert not resp.not_found and not resp.blocked and not resp.transient


def test_not_found():
    assert ApiResponse(status=404).not_found


def test_blocked():
    assert ApiResponse(status=403).blocked
    assert ApiResponse(status=401).blocked


def test_transient():
    assert ApiResponse(status=0, error="timeout").transient
    assert ApiResponse(status=503).transient
    assert ApiResponse(status=429).transient
    assert not ApiResponse(status=404).transient


def test_ok_requires_no_error():
    assert not ApiResponse(status=200, error="invalid JSON body").ok


# --- helpers ---


def test_is_retryable_status():
    assert is_retryable_status(500)
    assert is_retryable_status(429)
    assert not is_retryable_status(403)


def test_parse_retry_after():
    assert parse_retry_after({"Retry-After": "3"}) == 3.0
    assert parse_retry_after({}, default=2.0) == 2.0
    assert parse_retry_after({"Retry-After": "garbage"}, default=1.5) == 1.5


# --- retry ---


@pytest.mark.asyncio
async def test_retry_with_backoff_recovers():
    client = HttpClient(HttpSettings(max_retries=2))
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise aiohttp.ClientConnectionError("boom")
        return ApiResponse(status=200, data={})

    resp = await client._retry_with_backoff(flaky, base_delay=0.0)
    assert resp.ok
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retry_with_backoff_gives_up():
    client = HttpClient(HttpSettings(max_retries=1))
    attempts = []

    async def failing():
        attempts.append(1)
        raise aiohttp.ClientConnectionError("boom")

    with pytest.raises(aiohttp.ClientConnectionError):
        await client._retry_with_backoff(failing, base_delay=0.0)
    assert len(attempts) == 2


def test_user_agent_fixed_when_rotation_disabled():
    client = HttpClient(HttpSettings(rotate_user_agent=False))
    assert client.user_agent() == client.user_agent()
