"""
Configuration management for memory index stores.

The configuration is stored as a TOML file in the store directory.
It sets chunk sizes, the embedding provider, dedup thresholds and hybrid
ranking weights. Every section is optional; missing keys take defaults.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w

from .chunking import DEFAULT_CHUNK_TOKENS, DEFAULT_OVERLAP_TOKENS, ChunkingOptions


CONFIG_FILENAME = "memindex.toml"
CONFIG_VERSION = 1

STORE_PATH_ENV = "MEMINDEX_STORE_PATH"
DEFAULT_STORE_DIR = ".memindex"


@dataclass(frozen=True)
class IndexConfig:
    """Where the derived index lives and which subdirectories hold notes."""
    db_name: str = "index.db"
    subdirs: tuple[str, ...] = ("notes", "sessions")


@dataclass(frozen=True)
class EmbeddingConfig:
    """
    Embedding provider selection.

    Attributes:
        provider: "custom", "zhipu" or "none"
        model: Model name; empty uses the provider default or environment
        dimensions: Vector size; 0 auto-detects with one probe call
        base_url: Endpoint for "custom"; empty reads EMBEDDING_API_BASE
        timeout: Per-request timeout in seconds
    """
    provider: str = "custom"
    model: str = ""
    dimensions: int = 0
    base_url: str = ""
    timeout: float = 30.0


@dataclass(frozen=True)
class DedupConfig:
    """Duplicate detection policy."""
    exact_hash_skip: bool = True
    semantic_threshold: float = 0.90
    # Flag near-duplicates (vector and keyword layers); off means exact only
    tag_and_defer: bool = True


@dataclass(frozen=True)
class HybridWeights:
    """Blend of vector and keyword relevance in hybrid search."""
    vector_weight: float = 0.7
    text_weight: float = 0.3
    # Each source fetches limit * candidate_multiplier candidates
    candidate_multiplier: int = 4


@dataclass(frozen=True)
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    index: IndexConfig = field(default_factory=IndexConfig)
    chunking: ChunkingOptions = field(default_factory=ChunkingOptions)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    hybrid: HybridWeights = field(default_factory=HybridWeights)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def db_path(self) -> Path:
        """Path to the derived index file."""
        return self.path / self.index.db_name

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_store_path(explicit: str | Path | None = None) -> Path:
    """
    Resolve the store directory.

    Priority: explicit argument, MEMINDEX_STORE_PATH, ~/.memindex.
    """
    if explicit:
        return Path(explicit).expanduser().resolve()
    env_path = os.environ.get(STORE_PATH_ENV)
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / DEFAULT_STORE_DIR


def _validate(config: StoreConfig) -> None:
    if not 0.0 < config.dedup.semantic_threshold <= 1.0:
        raise ValueError(
            f"dedup.semantic_threshold must be in (0, 1], got {config.dedup.semantic_threshold}"
        )
    if config.hybrid.vector_weight < 0 or config.hybrid.text_weight < 0:
        raise ValueError("hybrid weights must be non-negative")
    if config.hybrid.candidate_multiplier < 1:
        raise ValueError("hybrid.candidate_multiplier must be >= 1")
    if config.embedding.dimensions < 0:
        raise ValueError("embedding.dimensions must be >= 0")
    if config.embedding.timeout <= 0:
        raise ValueError("embedding.timeout must be positive")
    if not config.index.db_name:
        raise ValueError("index.db_name must not be empty")


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    index = data.get("index", {})
    chunking = data.get("chunking", {})
    embedding = data.get("embedding", {})
    dedup = data.get("dedup", {})
    hybrid = data.get("hybrid", {})

    try:
        config = StoreConfig(
            path=store_path,
            version=version,
            index=IndexConfig(
                db_name=str(index.get("db_name", IndexConfig.db_name)),
                subdirs=tuple(index.get("subdirs", IndexConfig.subdirs)),
            ),
            chunking=ChunkingOptions(
                tokens=int(chunking.get("tokens", DEFAULT_CHUNK_TOKENS)),
                overlap=int(chunking.get("overlap", DEFAULT_OVERLAP_TOKENS)),
            ),
            embedding=EmbeddingConfig(
                provider=str(embedding.get("provider", EmbeddingConfig.provider)),
                model=str(embedding.get("model", "")),
                dimensions=int(embedding.get("dimensions", 0)),
                base_url=str(embedding.get("base_url", "")),
                timeout=float(embedding.get("timeout", EmbeddingConfig.timeout)),
            ),
            dedup=DedupConfig(
                exact_hash_skip=bool(dedup.get("exact_hash_skip", True)),
                semantic_threshold=float(
                    dedup.get("semantic_threshold", DedupConfig.semantic_threshold)
                ),
                tag_and_defer=bool(dedup.get("tag_and_defer", True)),
            ),
            hybrid=HybridWeights(
                vector_weight=float(hybrid.get("vector_weight", HybridWeights.vector_weight)),
                text_weight=float(hybrid.get("text_weight", HybridWeights.text_weight)),
                candidate_multiplier=int(
                    hybrid.get("candidate_multiplier", HybridWeights.candidate_multiplier)
                ),
            ),
        )
    except TypeError as e:
        raise ValueError(f"Invalid config {config_path}: {e}") from e

    _validate(config)
    return config


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "store": {
            "version": config.version,
        },
        "index": {
            "db_name": config.index.db_name,
            "subdirs": list(config.index.subdirs),
        },
        "chunking": {
            "tokens": config.chunking.tokens,
            "overlap": config.chunking.overlap,
        },
        "embedding": {
            "provider": config.embedding.provider,
            "model": config.embedding.model,
            "dimensions": config.embedding.dimensions,
            "base_url": config.embedding.base_url,
            "timeout": config.embedding.timeout,
        },
        "dedup": {
            "exact_hash_skip": config.dedup.exact_hash_skip,
            "semantic_threshold": config.dedup.semantic_threshold,
            "tag_and_defer": config.dedup.tag_and_defer,
        },
        "hybrid": {
            "vector_weight": config.hybrid.vector_weight,
            "text_weight": config.hybrid.text_weight,
            "candidate_multiplier": config.hybrid.candidate_multiplier,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = StoreConfig(path=store_path)
        save_config(config)
        return config
