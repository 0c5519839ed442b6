"""Page reader configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (PAGEREADER_EMBEDDING_MODEL, PAGEREADER_DB)
  3. Per-directory pagereader.yaml
  4. Global ~/.pagereader/config.yaml  (no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".pagereader"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "pagereader.yaml"

# Key names that look like credentials — forbidden in global config.
# Does NOT match legitimate keys like max_pages or min_score.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "chunking", "extraction", "retrieval", "crawl", "indexing", "store"]
)

CHUNK_UNITS: frozenset[str] = frozenset(["words", "tokens"])
PARTIAL_POLICIES: frozenset[str] = frozenset(["relabel", "all_or_nothing"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (pagereader.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Width of the vectors the model returns and the store holds.
        num_retries: LiteLLM retry count for transient provider errors.
        max_concurrency: Upper bound on in-flight embedding calls per page.
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    num_retries: int = 3
    max_concurrency: int = 8


@dataclass
class ChunkingCfg:
    """Line and paragraph budgets (pagereader.yaml: chunking:)."""

    max_line_units: int = 50
    max_paragraph_units: int = 250
    unit: str = "words"  # words | tokens


@dataclass
class ExtractionCfg:
    """HTML → text extraction (pagereader.yaml: extraction:)."""

    skip_tags: tuple[str, ...] = ("head", "script")


@dataclass
class RetrievalCfg:
    """Retrieval configuration (pagereader.yaml: retrieval:).

    Attributes:
        lead_chunks: Chunks returned when no question is asked (window bound
            and row limit of the lead read).
        top_k: Candidates requested from similarity search.
        min_score: Cosine similarity a candidate needs to be returned.
    """

    lead_chunks: int = 5
    top_k: int = 10
    min_score: float = 0.5


@dataclass
class CrawlCfg:
    """Fetch politeness and safety limits (pagereader.yaml: crawl:)."""

    max_pages: int = 10
    min_delay_ms: int = 250
    timeout: float = 30.0
    max_bytes: int = 5 * 1024 * 1024


@dataclass
class IndexingCfg:
    """Indexing behaviour (pagereader.yaml: indexing:)."""

    partial_policy: str = "relabel"  # relabel | all_or_nothing


@dataclass
class StoreCfg:
    """Vector store location (pagereader.yaml: store:)."""

    path: str = ".pagereader.db"


@dataclass
class PageReaderConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    extraction: ExtractionCfg = field(default_factory=ExtractionCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    crawl: CrawlCfg = field(default_factory=CrawlCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    store: StoreCfg = field(default_factory=StoreCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def validate_config(cfg: PageReaderConfig) -> None:
    """Raise ConfigError if any value is out of range.

    Raises:
        ConfigError: On non-positive budgets or limits, a paragraph budget
            smaller than the line budget, an unknown chunk unit or partial
            policy, or a score threshold outside [-1, 1].
    """
    positive = {
        "embedding.dimensions": cfg.embedding.dimensions,
        "embedding.max_concurrency": cfg.embedding.max_concurrency,
        "chunking.max_line_units": cfg.chunking.max_line_units,
        "chunking.max_paragraph_units": cfg.chunking.max_paragraph_units,
        "retrieval.lead_chunks": cfg.retrieval.lead_chunks,
        "retrieval.top_k": cfg.retrieval.top_k,
        "crawl.max_pages": cfg.crawl.max_pages,
        "crawl.max_bytes": cfg.crawl.max_bytes,
    }
    for name, value in positive.items():
        if value < 1:
            raise ConfigError(f"{name} must be >= 1, got {value}")

    if cfg.chunking.max_paragraph_units < cfg.chunking.max_line_units:
        raise ConfigError(
            "chunking.max_paragraph_units must be >= chunking.max_line_units, got "
            f"{cfg.chunking.max_paragraph_units} < {cfg.chunking.max_line_units}"
        )

    if cfg.embedding.num_retries < 0:
        raise ConfigError(f"embedding.num_retries must be >= 0, got {cfg.embedding.num_retries}")
    if cfg.crawl.min_delay_ms < 0:
        raise ConfigError(f"crawl.min_delay_ms must be >= 0, got {cfg.crawl.min_delay_ms}")
    if cfg.crawl.timeout <= 0:
        raise ConfigError(f"crawl.timeout must be > 0, got {cfg.crawl.timeout}")
    if cfg.chunking.unit not in CHUNK_UNITS:
        raise ConfigError(
            f"chunking.unit must be one of {', '.join(sorted(CHUNK_UNITS))}, "
            f"got '{cfg.chunking.unit}'"
        )
    if cfg.indexing.partial_policy not in PARTIAL_POLICIES:
        raise ConfigError(
            f"indexing.partial_policy must be one of {', '.join(sorted(PARTIAL_POLICIES))}, "
            f"got '{cfg.indexing.partial_policy}'"
        )
    if not -1.0 <= cfg.retrieval.min_score <= 1.0:
        raise ConfigError(
            f"retrieval.min_score must be within [-1, 1], got {cfg.retrieval.min_score}"
        )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> PageReaderConfig:
    """Build a *PageReaderConfig* from a merged raw YAML dict."""
    cfg = PageReaderConfig()

    try:
        if "embedding" in data:
            e = data["embedding"]
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
                num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
                max_concurrency=int(e.get("max_concurrency", cfg.embedding.max_concurrency)),
            )

        if "chunking" in data:
            c = data["chunking"]
            cfg.chunking = ChunkingCfg(
                max_line_units=int(c.get("max_line_units", cfg.chunking.max_line_units)),
                max_paragraph_units=int(
                    c.get("max_paragraph_units", cfg.chunking.max_paragraph_units)
                ),
                unit=str(c.get("unit", cfg.chunking.unit)),
            )

        if "extraction" in data:
            x = data["extraction"]
            skip_tags = x.get("skip_tags", cfg.extraction.skip_tags)
            if isinstance(skip_tags, str):
                skip_tags = [skip_tags]
            if not isinstance(skip_tags, (list, tuple)):
                raise ConfigError(
                    f"extraction.skip_tags must be a list of tag names, got {skip_tags!r}"
                )
            cfg.extraction = ExtractionCfg(skip_tags=tuple(str(t).lower() for t in skip_tags))

        if "retrieval" in data:
            r = data["retrieval"]
            cfg.retrieval = RetrievalCfg(
                lead_chunks=int(r.get("lead_chunks", cfg.retrieval.lead_chunks)),
                top_k=int(r.get("top_k", cfg.retrieval.top_k)),
                min_score=float(r.get("min_score", cfg.retrieval.min_score)),
            )

        if "crawl" in data:
            cr = data["crawl"]
            cfg.crawl = CrawlCfg(
                max_pages=int(cr.get("max_pages", cfg.crawl.max_pages)),
                min_delay_ms=int(cr.get("min_delay_ms", cfg.crawl.min_delay_ms)),
                timeout=float(cr.get("timeout", cfg.crawl.timeout)),
                max_bytes=int(cr.get("max_bytes", cfg.crawl.max_bytes)),
            )

        if "indexing" in data:
            i = data["indexing"]
            cfg.indexing = IndexingCfg(
                partial_policy=str(i.get("partial_policy", cfg.indexing.partial_policy)),
            )

        if "store" in data:
            s = data["store"]
            cfg.store = StoreCfg(path=str(s.get("path", cfg.store.path)))
    except ConfigError:
        raise
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: PageReaderConfig) -> PageReaderConfig:
    """Apply PAGEREADER_* environment variable overrides."""
    if model := os.environ.get("PAGEREADER_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db_path := os.environ.get("PAGEREADER_DB"):
        cfg.store.path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> PageReaderConfig:
    """Load and return a merged *PageReaderConfig*.

    Applies layers in order: global → per-directory → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *pagereader.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged and validated *PageReaderConfig*.

    Raises:
        ConfigError: If global config contains API-key-like fields or any
            value fails validation.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    validate_config(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.pagereader/config.yaml`` with defaults if it does not exist.

    Creates the parent directory with mode 0o700 and the file with mode 0o600.

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# pagereader global configuration — no API keys.\n"
            "# Set provider keys via environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "chunking:\n"
            "  max_line_units: 50\n"
            "  max_paragraph_units: 250\n"
            "\n"
            "retrieval:\n"
            "  lead_chunks: 5\n"
            "  top_k: 10\n"
            "  min_score: 0.5\n"
            "\n"
            "crawl:\n"
            "  max_pages: 10\n"
            "  min_delay_ms: 250\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
