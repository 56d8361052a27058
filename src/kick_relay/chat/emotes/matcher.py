"""Catalog emote matcher (word-boundary aware)."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from ..models import CatalogEmote

# Punctuation commonly wrapped around an emote name, e.g. "(KEKW)"
TRIM_CHARS = "[](){}<>\"'`.,!?;:"


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def _segments(text: str, start: int, end: int) -> list[tuple[int, int, bool]]:
    """Split text[start:end] into alternating word / non-word runs."""
    segments: list[tuple[int, int, bool]] = []
    seg_start = start
    seg_kind = _is_word_char(text[start])
    for j in range(start + 1, end):
        kind = _is_word_char(text[j])
        if kind != seg_kind:
            segments.append((seg_start, j, seg_kind))
            seg_start = j
            seg_kind = kind
    segments.append((seg_start, end, seg_kind))
    return segments


def find_catalog_emotes(
    text: str,
    emote_map: Mapping[str, CatalogEmote],
    claimed_ranges: Iterable[tuple[int, int]] | None = None,
) -> list[tuple[int, int, CatalogEmote]]:
    """Return catalog emote positions within text, ordered by start.

    A name only matches as a whole whitespace-delimited token, or as a
    word run inside a token bounded by punctuation. Ranges that overlap an
    earlier match (or ``claimed_ranges``) are skipped, so the first match
    wins.
    """
    if not text or not emote_map:
        return []

    claimed = list(claimed_ranges or [])
    found: list[tuple[int, int, CatalogEmote]] = []

    def overlaps(start: int, end: int) -> bool:
        return any(start < e and end > s for s, e in claimed)

    def try_add(start: int, end: int) -> bool:
        emote = emote_map.get(text[start:end])
        if emote is None or overlaps(start, end):
            return False
        found.append((start, end, emote))
        claimed.append((start, end))
        return True

    i = 0
    n = len(text)
    while i < n:
        if text[i].isspace():
            i += 1
            continue
        run_start = i
        while i < n and not text[i].isspace():
            i += 1
        run_end = i

        token = text[run_start:run_end]
        if "http://" in token or "https://" in token:
            continue
        if try_add(run_start, run_end):
            continue

        # Strip wrapping punctuation, then fall back to the inner word runs
        left = run_start
        right = run_end
        while left < right and text[left] in TRIM_CHARS:
            left += 1
        while right > left and text[right - 1] in TRIM_CHARS:
            right -= 1
        if left < right and (left, right) != (run_start, run_end) and try_add(left, right):
            continue

        for seg_start, seg_end, is_word in _segments(text, run_start, run_end):
            if is_word:
                try_add(seg_start, seg_end)

    found.sort(key=lambda item: item[0])
    return found
