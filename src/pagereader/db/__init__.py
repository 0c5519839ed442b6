"""Page reader storage layer."""

from pagereader.db.connection import Database
from pagereader.db.migrations import MIGRATIONS, run_migrations
from pagereader.db.models import Chunk, ScoredChunk
from pagereader.db.store import VectorStore
from pagereader.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Chunk",
    "Database",
    "MIGRATIONS",
    "ScoredChunk",
    "VectorStore",
    "ensure_vec_table",
    "model_to_slug",
    "run_migrations",
    "vec_table_name",
]
