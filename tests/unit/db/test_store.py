"""Tests for VectorStore — lifecycle, lexical queries, similarity search, upsert."""

from __future__ import annotations

import pytest

from pagereader.db.models import Chunk
from pagereader.db.store import VectorStore
from pagereader.errors import DimensionMismatchError, StoreError

_URL = "https://example.com/"
_OTHER = "https://other.example/"


def _chunk(index: int, url: str = _URL, embedding=None, content: str | None = None) -> Chunk:
    return Chunk(
        url=url,
        chunk_index=index,
        content=content if content is not None else f"chunk {index}",
        embedding=embedding or [1.0, 0.0, 0.0],
    )


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------


def test_open_creates_schema(tmp_path):
    with VectorStore(tmp_path / "s.db", dimensions=3) as store:
        tables = {
            r[0]
            for r in store.conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
    assert "chunks" in tables
    assert "vec_chunks_openai_text_embedding_3_small" in tables


def test_open_is_idempotent(tmp_path):
    path = tmp_path / "s.db"
    with VectorStore(path, dimensions=3) as store:
        store.upsert(_chunk(0))
    with VectorStore(path, dimensions=3) as store:
        assert store.exists_for_url(_URL)


def test_reopen_with_other_width_raises(tmp_path):
    path = tmp_path / "s.db"
    with VectorStore(path, dimensions=3):
        pass
    with pytest.raises(DimensionMismatchError):
        VectorStore(path, dimensions=1536).open()


def test_query_on_closed_store_raises(tmp_path):
    store = VectorStore(tmp_path / "s.db", dimensions=3)
    with pytest.raises(StoreError, match="not open"):
        store.exists_for_url(_URL)


# ------------------------------------------------------------------
# exists_for_url
# ------------------------------------------------------------------


def test_exists_for_url_false_when_empty(store):
    assert store.exists_for_url(_URL) is False


def test_exists_for_url_true_after_upsert(store):
    store.upsert(_chunk(0))
    assert store.exists_for_url(_URL) is True


def test_exists_for_url_is_exact_match(store):
    store.upsert(_chunk(0, url="https://example.com/page"))
    assert store.exists_for_url("https://example.com/") is False
    assert store.exists_for_url("https://example.com/page") is True


def test_exists_scoped_to_model(tmp_path):
    path = tmp_path / "s.db"
    with VectorStore(path, model="openai/a", dimensions=3) as store:
        store.upsert(_chunk(0))
    with VectorStore(path, model="openai/b", dimensions=3) as store:
        assert store.exists_for_url(_URL) is False


# ------------------------------------------------------------------
# windowed_read
# ------------------------------------------------------------------


def test_windowed_read_sorted_ascending(store):
    for i in (4, 1, 3, 0, 2):
        store.upsert(_chunk(i))
    assert store.windowed_read(_URL, 5, 5) == [f"chunk {i}" for i in range(5)]


def test_windowed_read_bound_excludes_later_chunks(store):
    for i in range(9):
        store.upsert(_chunk(i))
    result = store.windowed_read(_URL, 5, 5)
    assert len(result) == 5
    assert "chunk 5" not in result
    assert "chunk 8" not in result


def test_windowed_read_limit(store):
    for i in range(5):
        store.upsert(_chunk(i))
    assert len(store.windowed_read(_URL, upper_bound=5, limit=2)) == 2


def test_windowed_read_fewer_chunks_than_window(store):
    store.upsert(_chunk(0))
    store.upsert(_chunk(1))
    assert store.windowed_read(_URL, 5, 5) == ["chunk 0", "chunk 1"]


def test_windowed_read_filters_by_url(store):
    store.upsert(_chunk(0, url=_OTHER, content="other"))
    store.upsert(_chunk(0))
    assert store.windowed_read(_URL, 5, 5) == ["chunk 0"]


def test_windowed_read_unknown_url_is_empty(store):
    assert store.windowed_read(_URL, 5, 5) == []


# ------------------------------------------------------------------
# similarity_search
# ------------------------------------------------------------------


def test_similarity_search_orders_by_score(store):
    store.upsert(_chunk(0, embedding=[1.0, 0.0, 0.0], content="x axis"))
    store.upsert(_chunk(1, embedding=[0.0, 1.0, 0.0], content="y axis"))
    store.upsert(_chunk(2, embedding=[0.7, 0.7, 0.0], content="diagonal"))

    results = store.similarity_search([0.0, 1.0, 0.0], _URL, top_k=10)

    assert [r.content for r in results] == ["y axis", "diagonal", "x axis"]
    assert results[0].score == pytest.approx(1.0, abs=1e-5)
    assert results[2].score == pytest.approx(0.0, abs=1e-5)
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)


def test_similarity_search_top_k(store):
    for i in range(6):
        store.upsert(_chunk(i))
    assert len(store.similarity_search([1.0, 0.0, 0.0], _URL, top_k=4)) == 4


def test_similarity_search_restricted_to_url(store):
    store.upsert(_chunk(0, url=_OTHER, embedding=[0.0, 1.0, 0.0], content="elsewhere"))
    store.upsert(_chunk(0, embedding=[1.0, 0.0, 0.0], content="here"))

    results = store.similarity_search([0.0, 1.0, 0.0], _URL, top_k=10)

    assert [r.content for r in results] == ["here"]


def test_similarity_search_reports_chunk_index(store):
    store.upsert(_chunk(3, embedding=[0.0, 0.0, 1.0]))
    (hit,) = store.similarity_search([0.0, 0.0, 1.0], _URL)
    assert hit.chunk_index == 3


def test_similarity_search_wrong_width_raises(store):
    with pytest.raises(DimensionMismatchError):
        store.similarity_search([1.0, 0.0], _URL)


# ------------------------------------------------------------------
# upsert
# ------------------------------------------------------------------


def test_upsert_replaces_by_key(store):
    chunk = _chunk(0, content="first")
    store.upsert(chunk)
    chunk.content = "second"
    chunk.embedding = [0.0, 1.0, 0.0]
    store.upsert(chunk)

    assert store.count_chunks(_URL) == 1
    assert store.windowed_read(_URL, 5, 5) == ["second"]
    (hit,) = store.similarity_search([0.0, 1.0, 0.0], _URL)
    assert hit.score == pytest.approx(1.0, abs=1e-5)


def test_upsert_distinct_keys_append(store):
    store.upsert(_chunk(0))
    store.upsert(_chunk(0))
    assert store.count_chunks(_URL) == 2


def test_upsert_wrong_width_raises_and_writes_nothing(store):
    with pytest.raises(DimensionMismatchError, match="expects 3"):
        store.upsert(_chunk(0, embedding=[1.0] * 4))
    assert store.exists_for_url(_URL) is False


def test_upsert_empty_content_raises(store):
    with pytest.raises(StoreError):
        store.upsert(_chunk(0, content=""))


def test_dimension_mismatch_is_store_error():
    assert issubclass(DimensionMismatchError, StoreError)
    assert DimensionMismatchError("x").stage == "store"


# ------------------------------------------------------------------
# list_urls / count_chunks
# ------------------------------------------------------------------


def test_list_urls_counts_chunks(store):
    for i in range(3):
        store.upsert(_chunk(i))
    store.upsert(_chunk(0, url=_OTHER))

    assert dict(store.list_urls()) == {_URL: 3, _OTHER: 1}


def test_list_urls_empty(store):
    assert store.list_urls() == []
