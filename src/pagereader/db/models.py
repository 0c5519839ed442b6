"""Domain models for the page reader store."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field


def new_key() -> str:
    """Return a fresh opaque chunk key."""
    return uuid.uuid4().hex


@dataclass
class Chunk:
    url: str
    chunk_index: int
    content: str
    embedding: list[float] = field(default_factory=list)
    key: str = field(default_factory=new_key)


@dataclass
class ScoredChunk:
    """A similarity search hit.

    Attributes:
        content: Stored chunk text.
        chunk_index: Position of the chunk within its page.
        score: Cosine similarity to the query vector (higher = more similar).
    """

    content: str
    chunk_index: int
    score: float
