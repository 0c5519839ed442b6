"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from pagereader.config import EmbeddingCfg
from pagereader.db.store import VectorStore
from pagereader.errors import EmbeddingError
from pagereader.ingest.fetcher import FetchedPage, canonical_url

MODEL = "openai/text-embedding-3-small"
DIMS = 3


@pytest.fixture
def store(tmp_path):
    """File-based 3-dimensional store in tmp_path, closed after test."""
    s = VectorStore(tmp_path / ".pagereader.db", model=MODEL, dimensions=DIMS)
    s.open()
    yield s
    s.close()


class FakeFetcher:
    """Fetch collaborator returning canned HTML and counting calls."""

    def __init__(self, pages: dict[str, str] | None = None, default: str = "") -> None:
        self.pages = {canonical_url(u): html for u, html in (pages or {}).items()}
        self.default = default
        self.calls: list[str] = []

    async def fetch(self, url: str) -> FetchedPage:
        canonical = canonical_url(url)
        self.calls.append(canonical)
        return FetchedPage(url=canonical, text=self.pages.get(canonical, self.default))


class FakeEmbedder:
    """Embedding collaborator mapping text → vector; unknown text gets *default*.

    Texts listed in *fail_on* raise EmbeddingError.
    """

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        default: list[float] | None = None,
        fail_on: set[str] | None = None,
    ) -> None:
        self.cfg = EmbeddingCfg(model=MODEL, dimensions=DIMS)
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.fail_on = fail_on or set()
        self.calls: list[str] = []

    @property
    def dimensions(self) -> int:
        return DIMS

    def validate(self) -> None:
        pass

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self.fail_on:
            raise EmbeddingError(f"rate limited on '{text}'")
        return self.vectors.get(text, self.default)


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


@pytest.fixture
def fake_embedder():
    return FakeEmbedder
