"""Retrieval engine: lead read or thresholded similarity search for one URL.

Two modes:
  - no question → the first ``lead_chunks`` chunks of the page, joined in
    ascending chunk_index order;
  - question    → the question is embedded, the ``top_k`` nearest chunks of
    the page are fetched, and those scoring ≥ ``min_score`` are joined in
    descending-score order (no re-sort by position).

Both modes join with a single space and return "" when nothing qualifies.
"""

from __future__ import annotations

import logging

from pagereader.config import RetrievalCfg
from pagereader.db.models import ScoredChunk
from pagereader.db.store import VectorStore
from pagereader.ingest.embedder import Embedder

logger = logging.getLogger(__name__)


def filter_relevant(results: list[ScoredChunk], min_score: float) -> list[ScoredChunk]:
    """Keep hits with ``score >= min_score``, preserving their order."""
    return [r for r in results if r.score >= min_score]


class Retriever:
    """Answer reads against an already-indexed URL."""

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        cfg: RetrievalCfg | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.cfg = cfg or RetrievalCfg()

    def lead(self, url: str) -> str:
        """Return the page's leading content (first ``lead_chunks`` chunks)."""
        n = self.cfg.lead_chunks
        return " ".join(self.store.windowed_read(url, upper_bound=n, limit=n))

    async def answer(self, url: str, question: str) -> str:
        """Return the chunks of *url* relevant to *question*, best first.

        Raises:
            EmbeddingError: If the question cannot be embedded.
            StoreError: If the similarity query fails.
        """
        vector = await self.embedder.embed(question)
        results = self.store.similarity_search(vector, url, top_k=self.cfg.top_k)
        relevant = filter_relevant(results, self.cfg.min_score)
        logger.debug(
            "%s: %d of %d candidates scored >= %.2f",
            url, len(relevant), len(results), self.cfg.min_score,
        )
        return " ".join(r.content for r in relevant)

    async def retrieve(self, url: str, question: str | None = None) -> str:
        """Answer *question* for *url*; a missing or blank question gives the lead."""
        if question is None or not question.strip():
            return self.lead(url)
        return await self.answer(url, question)
