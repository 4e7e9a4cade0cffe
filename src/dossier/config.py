"""Dossier configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (DOSSIER_DB, DOSSIER_EMBEDDING_MODEL, DOSSIER_LOG_LEVEL)
  3. Per-project dossier.yaml  (working directory)
  4. Global ~/.dossier/config.yaml  (defaults only — no API keys)
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".dossier"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "dossier.yaml"

# Fields that suggest a credential; forbidden in global config.
# Does NOT match legitimate config keys like max_tokens_per_chunk or rrf_k.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # access_token, auth_token (suffix)
    r"|^token$"                  # exactly "token" (standalone)
    r"|_secret$"                 # key_secret, client_secret (suffix)
    r"|^secret$"                 # exactly "secret" (standalone)
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["database", "embedding", "chunking", "ingest", "retrieval", "logging"]
)

SEARCH_MODES: tuple[str, ...] = ("lexical", "vector", "hybrid")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """SQLite database location (dossier.yaml: database:).

    Attributes:
        path: Database file, created on first use.
        busy_timeout: Seconds a write waits for a competing writer before failing.
    """

    path: str = ".dossier.db"
    busy_timeout: float = 5.0


@dataclass
class EmbeddingCfg:
    """Embedding function configuration (dossier.yaml: embedding:)."""

    model: str = "ollama/nomic-embed-text"
    timeout: float = 30.0


@dataclass
class ChunkingCfg:
    """Chunking pipeline configuration (dossier.yaml: chunking:)."""

    max_tokens_per_chunk: int = 512


@dataclass
class IngestCfg:
    """Worker pool sizes for the ingestion driver (dossier.yaml: ingest:)."""

    file_workers: int = 2
    embed_workers: int = 4


@dataclass
class RetrievalCfg:
    """Query engine configuration (dossier.yaml: retrieval:)."""

    mode: str = "hybrid"
    top_k: int = 10
    max_top_k: int = 100
    rrf_k: int = 60


@dataclass
class LoggingCfg:
    """Log output configuration (dossier.yaml: logging:)."""

    level: str = "INFO"
    json: bool = False


@dataclass
class DossierConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


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


def _validate(cfg: DossierConfig) -> None:
    """Raise ConfigError for out-of-range limits."""
    positive = {
        "database.busy_timeout": cfg.database.busy_timeout,
        "embedding.timeout": cfg.embedding.timeout,
        "chunking.max_tokens_per_chunk": cfg.chunking.max_tokens_per_chunk,
        "ingest.file_workers": cfg.ingest.file_workers,
        "ingest.embed_workers": cfg.ingest.embed_workers,
        "retrieval.top_k": cfg.retrieval.top_k,
        "retrieval.max_top_k": cfg.retrieval.max_top_k,
        "retrieval.rrf_k": cfg.retrieval.rrf_k,
    }
    for name, value in positive.items():
        if value <= 0:
            raise ConfigError(f"{name} must be > 0, got {value}")
    if cfg.retrieval.top_k > cfg.retrieval.max_top_k:
        raise ConfigError(
            f"retrieval.top_k ({cfg.retrieval.top_k}) exceeds "
            f"retrieval.max_top_k ({cfg.retrieval.max_top_k})"
        )
    if cfg.retrieval.mode not in SEARCH_MODES:
        raise ConfigError(
            f"retrieval.mode must be one of {', '.join(SEARCH_MODES)}, "
            f"got '{cfg.retrieval.mode}'"
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


def _cfg_from_dict(data: dict[str, Any]) -> DossierConfig:
    """Build a *DossierConfig* from a merged raw YAML dict."""
    cfg = DossierConfig()

    if "database" in data:
        d = data["database"]
        cfg.database = DatabaseCfg(
            path=str(d.get("path", cfg.database.path)),
            busy_timeout=float(d.get("busy_timeout", cfg.database.busy_timeout)),
        )

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            timeout=float(e.get("timeout", cfg.embedding.timeout)),
        )

    if "chunking" in data:
        c = data["chunking"]
        cfg.chunking = ChunkingCfg(
            max_tokens_per_chunk=int(
                c.get("max_tokens_per_chunk", cfg.chunking.max_tokens_per_chunk)
            ),
        )

    if "ingest" in data:
        i = data["ingest"]
        cfg.ingest = IngestCfg(
            file_workers=int(i.get("file_workers", cfg.ingest.file_workers)),
            embed_workers=int(i.get("embed_workers", cfg.ingest.embed_workers)),
        )

    if "retrieval" in data:
        r = data["retrieval"]
        cfg.retrieval = RetrievalCfg(
            mode=str(r.get("mode", cfg.retrieval.mode)),
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            max_top_k=int(r.get("max_top_k", cfg.retrieval.max_top_k)),
            rrf_k=int(r.get("rrf_k", cfg.retrieval.rrf_k)),
        )

    if "logging" in data:
        lg = data["logging"]
        cfg.logging = LoggingCfg(
            level=str(lg.get("level", cfg.logging.level)).upper(),
            json=bool(lg.get("json", cfg.logging.json)),
        )

    return cfg


def _apply_env_overrides(cfg: DossierConfig) -> DossierConfig:
    """Apply DOSSIER_* environment variable overrides (layer 2)."""
    if path := os.environ.get("DOSSIER_DB"):
        cfg.database.path = path
    if model := os.environ.get("DOSSIER_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if level := os.environ.get("DOSSIER_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> DossierConfig:
    """Load and return a merged *DossierConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *dossier.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged and validated *DossierConfig*.

    Raises:
        ConfigError: If global config contains API-key-like fields, or if any
            limit is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg


def write_project_config(project_dir: Path, cfg: DossierConfig | None = None) -> Path:
    """Write a starter *dossier.yaml* into *project_dir* unless one exists.

    Returns:
        Path to the project config file.
    """
    cfg = cfg or DossierConfig()
    target = project_dir / _PROJECT_CONFIG_NAME
    if target.exists():
        return target

    data = {
        "database": {"path": cfg.database.path},
        "embedding": {"model": cfg.embedding.model, "timeout": cfg.embedding.timeout},
        "chunking": {"max_tokens_per_chunk": cfg.chunking.max_tokens_per_chunk},
        "retrieval": {"mode": cfg.retrieval.mode, "top_k": cfg.retrieval.top_k},
    }
    content = (
        "# dossier project configuration.\n"
        "# NEVER store API keys here — use environment variables:\n"
        "#   export DOSSIER_API_KEY=...\n"
        "\n" + yaml.safe_dump(data, sort_keys=False)
    )
    target.write_text(content, encoding="utf-8")
    return target
