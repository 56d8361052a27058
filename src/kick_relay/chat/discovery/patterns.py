"""Extractors that pull Kick identifiers out of page HTML and script state.

Each extractor takes raw content and returns the first id it recognises,
or None. Lists are ordered from the most structured source to the
broadest heuristic; callers use :func:`first_match`.
"""

import json
import re
from collections.abc import Callable, Iterable

Extractor = Callable[[str], str | None]

# Ids below this are too short to be a chatroom id (years, counters, ...)
MIN_HEURISTIC_ID = 10_000_000


def _regex(pattern: str, flags: int = 0) -> Extractor:
    compiled = re.compile(pattern, flags)

    def extract(content: str) -> str | None:
        match = compiled.search(content)
        return match.group(1) if match else None

    extract.__name__ = f"regex({pattern})"
    return extract


def _initial_state_chatroom(content: str) -> str | None:
    """Chatroom id from an embedded ``window.__INITIAL_STATE__`` object."""
    match = re.search(r"window\.__INITIAL_STATE__\s*=\s*({.+?})\s*;?\s*</script>", content, re.S)
    if not match:
        return None
    try:
        state = json.loads(match.group(1))
    except ValueError:
        return None
    return _chatroom_from_state(state)


def _chatroom_from_state(state) -> str | None:
    if not isinstance(state, dict):
        return None
    for holder in (state, state.get("channel"), (state.get("channel") or {}).get("data")):
        if isinstance(holder, dict):
            chatroom = holder.get("chatroom")
            if isinstance(chatroom, dict) and chatroom.get("id"):
                return str(chatroom["id"])
    return None


def _broad_numeric_id(content: str) -> str | None:
    for match in re.finditer(r'"id":\s*(\d{8,})', content):
        if int(match.group(1)) > MIN_HEURISTIC_ID:
            return match.group(1)
    return None


CHATROOM_EXTRACTORS: list[Extractor] = [
    _regex(r'"chatroom":\s*{\s*[^}]*"id":\s*(\d+)'),
    _regex(r'"chatroom_id":\s*(\d+)'),
    _regex(r"chatrooms\.(\d+)\.v2"),
    _regex(r"chatroom_(\d+)"),
    _initial_state_chatroom,
    _regex(r'data-chatroom-id=["\'](\d+)["\']'),
    _regex(r'<meta[^>]+name=["\']chatroom[-_]id["\'][^>]+content=["\'](\d+)["\']', re.I),
    _regex(r'chatroomId["\']?\s*[:=]\s*["\']?(\d+)'),
    _regex(r'pusher[^"\n]{0,80}subscribe[^"\n]{0,40}chatrooms?[._](\d+)', re.I),
    _broad_numeric_id,
]

CHANNEL_ID_EXTRACTORS: list[Extractor] = [
    _regex(r'"channel_id":\s*(\d+)'),
    _regex(r"predictions-channel-(\d+)"),
    _regex(r"channel\.(\d+)"),
    _regex(r"channel_(\d+)"),
]


def first_match(extractors: Iterable[Extractor], content: str | None) -> str | None:
    """Run extractors in order and return the first id found."""
    if not content:
        return None
    for extract in extractors:
        value = extract(content)
        if value:
            return value
    return None


def extract_chatroom_id(content: str | None) -> str | None:
    return first_match(CHATROOM_EXTRACTORS, content)


def extract_channel_id(content: str | None) -> str | None:
    return first_match(CHANNEL_ID_EXTRACTORS, content)
