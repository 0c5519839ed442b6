"""Page reader ingest pipeline — fetch, extract, chunk, embed, index."""

from pagereader.ingest.chunker import chunk_text, split_lines, split_paragraphs
from pagereader.ingest.embedder import Embedder
from pagereader.ingest.extractor import extract_text, html_to_text, parse_html
from pagereader.ingest.fetcher import FetchedPage, PageFetcher, canonical_url
from pagereader.ingest.pipeline import IndexingPipeline, IndexReport, IndexState

__all__ = [
    "Embedder",
    "FetchedPage",
    "IndexReport",
    "IndexState",
    "IndexingPipeline",
    "PageFetcher",
    "canonical_url",
    "chunk_text",
    "extract_text",
    "html_to_text",
    "parse_html",
    "split_lines",
    "split_paragraphs",
]
