"""Line and paragraph chunker.

Plain text is packed greedily into lines of at most ``max_line_units``, then
consecutive lines are packed greedily into paragraphs of at most
``max_paragraph_units``. Tokens are never split: a single token larger than
the line budget occupies a line of its own.

Units are either whitespace-delimited words (default) or approximate model
tokens (4 characters ≈ 1 token, at least 1 per word).
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from pagereader.config import ChunkingCfg

UnitCounter = Callable[[str], int]


def count_words(text: str) -> int:
    return len(text.split())


def count_tokens(text: str) -> int:
    """Approximate token count: 4 characters ≈ 1 token, minimum 1 per word."""
    return sum(max(1, len(word) // 4) for word in text.split())


_COUNTERS: dict[str, UnitCounter] = {
    "words": count_words,
    "tokens": count_tokens,
}


def unit_counter(unit: str) -> UnitCounter:
    try:
        return _COUNTERS[unit]
    except KeyError:
        raise ValueError(
            f"Unknown chunk unit '{unit}'. Use one of: {', '.join(sorted(_COUNTERS))}"
        ) from None


def _pack(pieces: Sequence[str], max_units: int, measure: UnitCounter) -> list[str]:
    """Greedily join *pieces* with single spaces into groups of ≤ *max_units*."""
    if max_units < 1:
        raise ValueError("max_units must be >= 1")

    groups: list[str] = []
    current: list[str] = []
    used = 0
    for piece in pieces:
        size = measure(piece)
        if current and used + size > max_units:
            groups.append(" ".join(current))
            current, used = [], 0
        current.append(piece)
        used += size
    if current:
        groups.append(" ".join(current))
    return groups


def split_lines(text: str, max_units: int = 50, unit: str = "words") -> list[str]:
    """Split *text* into lines of at most *max_units*, breaking between tokens."""
    return _pack(text.split(), max_units, unit_counter(unit))


def split_paragraphs(lines: Sequence[str], max_units: int = 250, unit: str = "words") -> list[str]:
    """Group consecutive *lines* into paragraphs of at most *max_units*."""
    return _pack([line for line in lines if line.strip()], max_units, unit_counter(unit))


def chunk_text(text: str, cfg: ChunkingCfg | None = None) -> list[str]:
    """Split *text* into ordered paragraph chunks. Blank text yields ``[]``."""
    cfg = cfg or ChunkingCfg()
    lines = split_lines(text, cfg.max_line_units, cfg.unit)
    return split_paragraphs(lines, cfg.max_paragraph_units, cfg.unit)
