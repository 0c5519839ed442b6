"""Tests for the pagereader config loader."""

from __future__ import annotations

import stat
import warnings
from pathlib import Path

import pytest
import yaml

from pagereader.config import (
    ChunkingCfg,
    ConfigError,
    PageReaderConfig,
    ensure_global_config,
    load_config,
    validate_config,
)


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PAGEREADER_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("PAGEREADER_DB", raising=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


def _load_project(tmp_path: Path, data: dict) -> PageReaderConfig:
    _write_yaml(tmp_path / "pagereader.yaml", data)
    return load_config(project_dir=tmp_path, global_config_path=tmp_path / "nonexistent.yaml")


# ---------------------------------------------------------------------------
# Defaults — no config files present
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    """No config files → all hardcoded defaults."""
    missing_global = tmp_path / "nonexistent" / "config.yaml"
    cfg = load_config(project_dir=tmp_path, global_config_path=missing_global)

    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.dimensions == 1536
    assert cfg.chunking.max_line_units == 50
    assert cfg.chunking.max_paragraph_units == 250
    assert cfg.chunking.unit == "words"
    assert cfg.extraction.skip_tags == ("head", "script")
    assert cfg.retrieval.lead_chunks == 5
    assert cfg.retrieval.top_k == 10
    assert cfg.retrieval.min_score == 0.5
    assert cfg.crawl.max_pages == 10
    assert cfg.crawl.min_delay_ms == 250
    assert cfg.indexing.partial_policy == "relabel"
    assert cfg.store.path == ".pagereader.db"


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_load_config_global_overrides_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"retrieval": {"min_score": 0.7}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.retrieval.min_score == pytest.approx(0.7)
    assert cfg.retrieval.top_k == 10


def test_load_config_global_empty_file(tmp_path: Path) -> None:
    """Empty or comment-only global config → defaults (no crash)."""
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("# nothing here\n", encoding="utf-8")

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.embedding.model == "openai/text-embedding-3-small"


def test_load_config_project_partial_override(tmp_path: Path) -> None:
    """Per-directory config overrides single fields; global values for others survive."""
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"crawl": {"max_pages": 20, "min_delay_ms": 500}})
    _write_yaml(tmp_path / "pagereader.yaml", {"crawl": {"max_pages": 3}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.crawl.max_pages == 3
    assert cfg.crawl.min_delay_ms == 500


def test_load_config_all_sections(tmp_path: Path) -> None:
    cfg = _load_project(
        tmp_path,
        {
            "embedding": {"model": "ollama/nomic-embed-text", "dimensions": 768},
            "chunking": {"max_line_units": 20, "max_paragraph_units": 100, "unit": "tokens"},
            "extraction": {"skip_tags": ["HEAD", "script", "style"]},
            "retrieval": {"lead_chunks": 3, "top_k": 4},
            "indexing": {"partial_policy": "all_or_nothing"},
            "store": {"path": "pages.db"},
        },
    )
    assert cfg.embedding.model == "ollama/nomic-embed-text"
    assert cfg.embedding.dimensions == 768
    assert cfg.chunking == ChunkingCfg(20, 100, "tokens")
    assert cfg.extraction.skip_tags == ("head", "script", "style")
    assert cfg.retrieval.lead_chunks == 3
    assert cfg.retrieval.top_k == 4
    assert cfg.indexing.partial_policy == "all_or_nothing"
    assert cfg.store.path == "pages.db"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "data,match",
    [
        ({"chunking": {"max_line_units": 0}}, "max_line_units"),
        ({"chunking": {"unit": "sentences"}}, "chunking.unit"),
        ({"retrieval": {"min_score": 1.5}}, "min_score"),
        ({"crawl": {"max_pages": 0}}, "max_pages"),
        ({"crawl": {"min_delay_ms": -1}}, "min_delay_ms"),
        ({"indexing": {"partial_policy": "sometimes"}}, "partial_policy"),
        ({"embedding": {"dimensions": "wide"}}, "Invalid config value"),
    ],
)
def test_invalid_values_raise(tmp_path: Path, data: dict, match: str) -> None:
    with pytest.raises(ConfigError, match=match):
        _load_project(tmp_path, data)


def test_paragraph_budget_below_line_budget_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="max_paragraph_units must be >= chunking.max_line_units"):
        _load_project(tmp_path, {"chunking": {"max_line_units": 50, "max_paragraph_units": 10}})


def test_validate_config_rejects_paragraph_budget_below_line_budget() -> None:
    cfg = PageReaderConfig(chunking=ChunkingCfg(max_line_units=50, max_paragraph_units=10))
    with pytest.raises(ConfigError, match="10 < 50"):
        validate_config(cfg)


def test_equal_line_and_paragraph_budgets_ok(tmp_path: Path) -> None:
    cfg = _load_project(tmp_path, {"chunking": {"max_line_units": 40, "max_paragraph_units": 40}})
    assert cfg.chunking.max_paragraph_units == 40


def test_skip_tags_scalar_is_one_tag(tmp_path: Path) -> None:
    cfg = _load_project(tmp_path, {"extraction": {"skip_tags": "Script"}})
    assert cfg.extraction.skip_tags == ("script",)


def test_skip_tags_mapping_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="skip_tags must be a list"):
        _load_project(tmp_path, {"extraction": {"skip_tags": {"head": True}}})


def test_validate_config_accepts_defaults() -> None:
    validate_config(PageReaderConfig())


def test_config_error_is_value_error() -> None:
    assert issubclass(ConfigError, ValueError)


# ---------------------------------------------------------------------------
# API key validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "bad_key",
    ["api_key", "apikey", "OPENAI_API_KEY", "secret", "password", "token", "api-key"],
)
def test_global_config_rejects_api_key_fields(tmp_path: Path, bad_key: str) -> None:
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text(f"{bad_key}: sk-abc123\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="forbidden key"):
        load_config(project_dir=tmp_path, global_config_path=global_cfg)


def test_global_config_rejects_nested_api_key(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"embedding": {"api_key": "sk-secret"}})

    with pytest.raises(ConfigError, match="forbidden key"):
        load_config(project_dir=tmp_path, global_config_path=global_cfg)


def test_legitimate_keys_not_flagged(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"crawl": {"max_pages": 5}, "retrieval": {"min_score": 0.6}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.crawl.max_pages == 5


# ---------------------------------------------------------------------------
# Unknown key warnings
# ---------------------------------------------------------------------------


def test_unknown_top_level_key_warns(tmp_path: Path) -> None:
    """Unknown top-level key emits UserWarning (not error)."""
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"unknown_section": {"foo": "bar"}})

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)

    assert any("unknown_section" in str(w.message) for w in caught)
    assert cfg.retrieval.top_k == 10


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------


def test_env_var_embedding_model_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAGEREADER_EMBEDDING_MODEL", "openai/text-embedding-3-large")
    cfg = _load_project(tmp_path, {"embedding": {"model": "openai/text-embedding-3-small"}})
    assert cfg.embedding.model == "openai/text-embedding-3-large"


def test_env_var_db_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAGEREADER_DB", "/tmp/other.db")
    cfg = _load_project(tmp_path, {"store": {"path": "pages.db"}})
    assert cfg.store.path == "/tmp/other.db"


def test_env_var_absent_does_not_override(tmp_path: Path) -> None:
    cfg = _load_project(tmp_path, {"store": {"path": "pages.db"}})
    assert cfg.store.path == "pages.db"


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_file(tmp_path: Path) -> None:
    target = tmp_path / "pr" / "config.yaml"
    path = ensure_global_config(target)

    assert path == target
    assert target.exists()
    assert stat.S_IMODE(target.stat().st_mode) == 0o600


def test_ensure_global_config_is_loadable(tmp_path: Path) -> None:
    """The generated file passes the API-key check and yields the defaults."""
    target = ensure_global_config(tmp_path / "config.yaml")
    cfg = load_config(project_dir=tmp_path, global_config_path=target)
    assert cfg == PageReaderConfig()


def test_ensure_global_config_does_not_overwrite(tmp_path: Path) -> None:
    target = tmp_path / "config.yaml"
    target.write_text("retrieval:\n  top_k: 3\n", encoding="utf-8")

    ensure_global_config(target)
    assert "top_k: 3" in target.read_text(encoding="utf-8")
