"""Indexing pipeline: fetch → extract → chunk → embed → upsert.

State machine (logged at DEBUG for every transition):

    NOT_INDEXED → FETCHING → EXTRACTING → CHUNKING → EMBEDDING → UPSERTING → INDEXED
                                  any step → FAILED

Chunk indices are assigned synchronously during chunking, before any
concurrent work starts. Embeddings fan out (bounded by
``embedding.max_concurrency``) and are joined before upserts begin, so a chunk
is never written before its own embedding exists.

Failure isolation:
- Fetch failures are page-level and propagate.
- Embedding and upsert failures are per chunk: they are recorded in the
  IndexReport and never roll back successfully written siblings.

Partial-batch policy (``indexing.partial_policy``):
- ``relabel``: chunks whose embedding failed are dropped and the survivors are
  renumbered 0..k-1 in source order, keeping stored indices contiguous.
- ``all_or_nothing``: any embedding failure means nothing is written.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from pagereader.config import PageReaderConfig
from pagereader.db.models import Chunk
from pagereader.db.store import VectorStore
from pagereader.errors import EmbeddingError, PageReaderError, StoreError
from pagereader.ingest.chunker import chunk_text
from pagereader.ingest.embedder import Embedder
from pagereader.ingest.extractor import html_to_text, normalize_whitespace
from pagereader.ingest.fetcher import FetchedPage, PageFetcher

logger = logging.getLogger(__name__)


class IndexState(str, Enum):
    NOT_INDEXED = "not_indexed"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    UPSERTING = "upserting"
    INDEXED = "indexed"
    FAILED = "failed"


@dataclass
class ChunkFailure:
    """A chunk that could not be embedded or stored.

    Attributes:
        chunk_index: Index the chunk carried when it failed (upsert failures
            report the relabelled index).
        error: The embedding or store error raised for this chunk.
    """

    chunk_index: int
    error: PageReaderError


@dataclass
class IndexReport:
    """Outcome of one indexing run for a single URL."""

    url: str
    state: IndexState = IndexState.NOT_INDEXED
    chunk_count: int = 0
    stored: int = 0
    failures: list[ChunkFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.state is IndexState.INDEXED and not self.failures

    @property
    def partial(self) -> bool:
        return self.stored > 0 and bool(self.failures)


class IndexingPipeline:
    """Populate the store with the chunks of one page.

    Args:
        store: Open VectorStore that receives the chunks.
        fetcher: Fetch collaborator (owns crawl politeness).
        embedder: Embedding collaborator.
        cfg: Chunking, extraction and partial-policy settings.
    """

    def __init__(
        self,
        store: VectorStore,
        fetcher: PageFetcher,
        embedder: Embedder,
        cfg: PageReaderConfig | None = None,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.embedder = embedder
        self.cfg = cfg or PageReaderConfig()

    async def index(self, url: str) -> IndexReport:
        """Run the full pipeline for *url* and return what was stored.

        Raises:
            FetchError: If the page cannot be retrieved.
            EmbeddingError: If the embedding provider is not configured.
        """
        report = IndexReport(url=url)
        try:
            self._enter(report, IndexState.FETCHING)
            page = await self.fetcher.fetch(url)
            report.url = page.url

            self._enter(report, IndexState.EXTRACTING)
            text = self._extract(page)

            self._enter(report, IndexState.CHUNKING)
            chunks = [
                Chunk(url=page.url, chunk_index=i, content=paragraph)
                for i, paragraph in enumerate(chunk_text(text, self.cfg.chunking))
            ]
            report.chunk_count = len(chunks)
            if not chunks:
                logger.info("No content to index for %s", page.url)
                self._enter(report, IndexState.INDEXED)
                return report

            self._enter(report, IndexState.EMBEDDING)
            embedded = await self._embed_all(chunks, report)
            embedded = self._apply_partial_policy(embedded, report)

            self._enter(report, IndexState.UPSERTING)
            self._upsert_all(embedded, report)

            self._enter(report, IndexState.INDEXED)
        except Exception:
            self._enter(report, IndexState.FAILED)
            raise

        if report.failures:
            logger.warning(
                "Indexed %s partially: %d of %d chunks stored, %d failed",
                report.url, report.stored, report.chunk_count, len(report.failures),
            )
        else:
            logger.info("Indexed %s: %d chunks", report.url, report.stored)
        return report

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _extract(self, page: FetchedPage) -> str:
        if page.content_type == "text/plain":
            return normalize_whitespace(page.text)
        return html_to_text(page.text, self.cfg.extraction.skip_tags)

    async def _embed_all(self, chunks: list[Chunk], report: IndexReport) -> list[Chunk]:
        """Embed every chunk concurrently; failures are recorded, not raised."""
        self.embedder.validate()
        semaphore = asyncio.Semaphore(self.cfg.embedding.max_concurrency)

        async def _embed_one(chunk: Chunk) -> Chunk:
            async with semaphore:
                chunk.embedding = await self.embedder.embed(chunk.content)
            return chunk

        results = await asyncio.gather(
            *(_embed_one(c) for c in chunks), return_exceptions=True
        )

        embedded: list[Chunk] = []
        for chunk, result in zip(chunks, results):
            if isinstance(result, EmbeddingError):
                logger.warning("Embedding failed for chunk %d of %s: %s",
                               chunk.chunk_index, chunk.url, result)
                report.failures.append(ChunkFailure(chunk.chunk_index, result))
            elif isinstance(result, BaseException):
                raise result
            else:
                embedded.append(result)
        return embedded

    def _apply_partial_policy(self, embedded: list[Chunk], report: IndexReport) -> list[Chunk]:
        if not report.failures:
            return embedded
        if self.cfg.indexing.partial_policy == "all_or_nothing":
            logger.warning(
                "Discarding %d embedded chunks of %s: %d embeddings failed",
                len(embedded), report.url, len(report.failures),
            )
            return []
        for new_index, chunk in enumerate(embedded):
            chunk.chunk_index = new_index
        return embedded

    def _upsert_all(self, chunks: list[Chunk], report: IndexReport) -> None:
        for chunk in chunks:
            try:
                self.store.upsert(chunk)
            except StoreError as exc:
                logger.warning("Store failed for chunk %d of %s: %s",
                               chunk.chunk_index, chunk.url, exc)
                report.failures.append(ChunkFailure(chunk.chunk_index, exc))
            else:
                report.stored += 1

    @staticmethod
    def _enter(report: IndexReport, state: IndexState) -> None:
        logger.debug("%s: %s → %s", report.url, report.state.value, state.value)
        report.state = state
