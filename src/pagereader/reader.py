"""Request surface: ``read(url, question=None) -> str``.

Ensures the page is indexed (running the IndexingPipeline at most once per
URL per process, even under concurrent requests), then delegates to the
Retriever.

Usage:
    cfg = load_config()
    async with PageReader.from_config(cfg) as reader:
        text = await reader.read("https://example.com", "What is it about?")
"""

from __future__ import annotations

import asyncio
import logging

from pagereader.config import PageReaderConfig
from pagereader.db.store import VectorStore
from pagereader.errors import IndexingError
from pagereader.ingest.embedder import Embedder
from pagereader.ingest.fetcher import PageFetcher, canonical_url
from pagereader.ingest.pipeline import IndexingPipeline, IndexReport
from pagereader.rag.retriever import Retriever

logger = logging.getLogger(__name__)


class PageReader:
    """Index-on-demand reader for single web pages.

    Args:
        store: Vector store handle; opened by ``open()`` if not open already.
        fetcher: Fetch collaborator shared by every indexing run of this reader.
        embedder: Embedding collaborator for chunks and questions.
        cfg: Full configuration.
    """

    def __init__(
        self,
        store: VectorStore,
        fetcher: PageFetcher,
        embedder: Embedder,
        cfg: PageReaderConfig | None = None,
    ) -> None:
        self.cfg = cfg or PageReaderConfig()
        self.store = store
        self.pipeline = IndexingPipeline(store, fetcher, embedder, self.cfg)
        self.retriever = Retriever(store, embedder, self.cfg.retrieval)
        self._url_locks: dict[str, asyncio.Lock] = {}
        self._url_lock_users: dict[str, int] = {}

    @classmethod
    def from_config(cls, cfg: PageReaderConfig, db_path: str | None = None) -> PageReader:
        """Build a reader with the default collaborators for *cfg*."""
        store = VectorStore(
            db_path or cfg.store.path,
            model=cfg.embedding.model,
            dimensions=cfg.embedding.dimensions,
        )
        return cls(store, PageFetcher(cfg.crawl), Embedder(cfg.embedding), cfg)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> PageReader:
        self.store.open()
        return self

    def close(self) -> None:
        self.store.close()

    async def __aenter__(self) -> PageReader:
        return self.open()

    async def __aexit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def read(self, url: str, question: str | None = None) -> str:
        """Return relevant excerpts of *url* (or its lead when *question* is None).

        A blank question is treated as no question.

        Raises:
            FetchError: If the page had to be indexed and could not be fetched.
            IndexingError: If the page produced chunks but none were stored.
            EmbeddingError: If the question could not be embedded.
            StoreError: If a store query failed.
        """
        canonical = canonical_url(url)
        await self.ensure_indexed(canonical)
        return await self.retriever.retrieve(canonical, question)

    async def ensure_indexed(self, url: str) -> IndexReport | None:
        """Index *url* unless chunks for it already exist.

        Returns the IndexReport of the run, or None when the page was
        already indexed. Concurrent calls for the same URL share one run.
        """
        url = canonical_url(url)
        if self.store.exists_for_url(url):
            return None

        lock = self._url_locks.setdefault(url, asyncio.Lock())
        self._url_lock_users[url] = self._url_lock_users.get(url, 0) + 1
        try:
            async with lock:
                if self.store.exists_for_url(url):
                    logger.debug("%s was indexed while waiting", url)
                    return None
                report = await self.pipeline.index(url)
        finally:
            self._release_url_lock(url)

        if report.chunk_count and not report.stored:
            cause = report.failures[0].error if report.failures else None
            raise IndexingError(
                f"None of the {report.chunk_count} chunks of '{url}' could be stored"
                + (f": {cause}" if cause else "."),
                url=url,
                cause=cause,
            )
        return report

    def _release_url_lock(self, url: str) -> None:
        """Forget the lock for *url* once no caller holds or awaits it."""
        remaining = self._url_lock_users[url] - 1
        if remaining:
            self._url_lock_users[url] = remaining
        else:
            del self._url_lock_users[url]
            del self._url_locks[url]
