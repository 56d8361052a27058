"""Tests for badge resolution."""

import asyncio

import pytest
from fakes import KICK_API, ok, status

from kick_relay.chat.badges import (
    DEFAULT_SUBSCRIBER_BADGE,
    FALLBACK_EMOJI,
    KICK_SYSTEM_BADGES,
    builtin_badge_image,
    parse_subscriber_badges,
)

SUB_BADGES = [
    {"id": 3, "channel_id": 456, "months": 12, "badge_image": {"src": "https://img/12.png"}},
    {"id": 1, "channel_id": 456, "months": 1, "badge_image": {"src": "https://img/1.png"}},
    {"id": 2, "channel_id": 456, "months": 6, "badge_image": {"src": "https://img/6.png"}},
]


def test_parse_subscriber_badges_sorted_and_filtered():
    raw = SUB_BADGES + [{"id": 9, "months": 3}, "junk"]
    badges = parse_subscriber_badges(raw)
    assert [b.months for b in badges] == [1, 6, 12]
    assert badges[1].url == "https://img/6.png"


def test_builtin_badge_images():
    assert builtin_badge_image("moderator") == KICK_SYSTEM_BADGES["moderator"]
    assert builtin_badge_image("subscriber") == DEFAULT_SUBSCRIBER_BADGE
    assert builtin_badge_image("admin") == "🔧"
    assert builtin_badge_image("mystery") == FALLBACK_EMOJI


@pytest.mark.asyncio
async def test_highest_threshold_not_above_months(badges):
    badges.cache_from_client("chanX", SUB_BADGES)
    assert (await badges.resolve_subscriber("chanx", 8)).months == 6
    assert (await badges.resolve_subscriber("chanx", 12)).months == 12
    assert (await badges.resolve_subscriber("chanx", 40)).months == 12


@pytest.mark.asyncio
async def test_no_custom_badge_below_first_threshold(badges):
    badges.cache_from_client("chanx", SUB_BADGES[:1])
    assert await badges.resolve_subscriber("chanx", 3) is None
    badge = await badges.resolve("chanx", {"type": "subscriber", "text": "Subscriber", "count": 3})
    assert badge.image == DEFAULT_SUBSCRIBER_BADGE
    assert not badge.is_custom


@pytest.mark.asyncio
async def test_resolution_performs_one_lookup(badges, http):
    url = f"{KICK_API}/channels/channelx"
    http.route(url, ok({"id": 456, "subscriber_badges": SUB_BADGES}))

    first = await badges.resolve("channelX", {"type": "subscriber", "count": 6})
    second = await badges.resolve("channelX", {"type": "subscriber", "count": 6})

    assert first == second
    assert first.is_custom and first.image == "https://img/6.png"
    assert http.count(url) == 1


@pytest.mark.asyncio
async def test_negative_result_cached(badges, http):
    url = f"{KICK_API}/channels/nobadges"
    http.route(url, ok({"id": 1, "subscriber_badges": []}))
    await badges.resolve_subscriber("nobadges", 6)
    await badges.resolve_subscriber("nobadges", 6)
    await badges.resolve_subscriber("nobadges", 2)
    assert http.count(url) == 1


@pytest.mark.asyncio
async def test_transient_failure_not_cached(badges, http, settings):
    settings.chat.badge_retry_interval = 0.0
    url = f"{KICK_API}/channels/flaky"
    http.route(url, status(503))
    assert await badges.resolve_subscriber("flaky", 6) is None
    http.route(url, ok({"subscriber_badges": SUB_BADGES}))
    assert (await badges.resolve_subscriber("flaky", 6)).months == 6
    assert http.count(url) == 2


@pytest.mark.asyncio
async def test_transient_failure_not_retried_immediately(badges, http):
    url = f"{KICK_API}/channels/flaky"
    http.route(url, status(503))
    for _ in range(3):
        badge = await badges.resolve("flaky", {"type": "subscriber", "count": 6})
        assert badge.image == DEFAULT_SUBSCRIBER_BADGE
    assert http.count(url) == 1


@pytest.mark.asyncio
async def test_slow_badge_load_does_not_block(badges, http, settings):
    settings.chat.badge_timeout = 0.1
    url = f"{KICK_API}/channels/slow"
    http.route(url, ok({"subscriber_badges": SUB_BADGES}), delay=0.4)

    loop = asyncio.get_running_loop()
    started = loop.time()
    first = await badges.resolve("slow", {"type": "subscriber", "count": 6})
    second = await badges.resolve("slow", {"type": "subscriber", "count": 6})
    elapsed = loop.time() - started

    assert first.image == second.image == DEFAULT_SUBSCRIBER_BADGE
    # Only the first caller waits out the bound
    assert elapsed < 0.3

    await asyncio.sleep(0.4)
    late = await badges.resolve("slow", {"type": "subscriber", "count": 6})
    assert late.image == "https://img/6.png"
    assert http.count(url) == 1



@pytest.mark.asyncio
async def test_client_badges_invalidate_resolutions(badges):
    badges.cache_from_client("chanx", SUB_BADGES[1:2])
    assert (await badges.resolve_subscriber("chanx", 6)).months == 1
    badges.cache_from_client("chanx", SUB_BADGES)
    assert (await badges.resolve_subscriber("chanx", 6)).months == 6


@pytest.mark.asyncio
async def test_non_subscriber_badge_uses_table(badges, http):
    badge = await badges.resolve("chanx", {"type": "moderator", "text": "Moderator"})
    assert badge.image == KICK_SYSTEM_BADGES["moderator"]
    assert badge.alt == "Moderator"
    assert http.calls == []


@pytest.mark.asyncio
async def test_clear_cache(badges):
    badges.cache_from_client("chanx", SUB_BADGES)
    badges.clear_cache("chanx")
    assert badges.get_channel_badges("chanx") == []
