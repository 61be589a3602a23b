"""
memindex - derived keyword and vector index over markdown notes.

The notes stay the source of truth; the index can be deleted and rebuilt.

Example:
    from memindex import MemoryIndex, MemoryDir, hybrid_search

    with MemoryIndex(store / "index.db") as index:
        index.sync_files([MemoryDir(store / "global", "global")])
        for hit in hybrid_search(index, None, "sqlite triggers"):
            print(hit.id, hit.score)
"""

from .chunking import Chunk, ChunkingOptions, chunk_markdown, hash_content
from .config import DedupConfig, HybridWeights, StoreConfig, load_or_create_config
from .dedup import DedupResult, NearDuplicate, check_duplicate
from .hybrid import (
    HybridHit,
    MergedSearchResult,
    VectorSearchResult,
    hybrid_search,
    merge_hybrid_results,
    refresh_embeddings,
    vector_search,
)
from .index_store import MemoryIndex
from .parser import NoteParseError, ParsedNote, parse_memory_file
from .providers import (
    EmbeddingError,
    EmbeddingProvider,
    cosine_similarity,
    resolve_embedding_provider,
)
from .types import (
    FTSSearchResult,
    IndexedChunk,
    IndexedFile,
    IndexStats,
    MemoryDir,
    SyncResult,
)

__version__ = "0.1.0"

__all__ = [
    "Chunk",
    "ChunkingOptions",
    "chunk_markdown",
    "hash_content",
    "DedupConfig",
    "HybridWeights",
    "StoreConfig",
    "load_or_create_config",
    "DedupResult",
    "NearDuplicate",
    "check_duplicate",
    "HybridHit",
    "MergedSearchResult",
    "VectorSearchResult",
    "hybrid_search",
    "merge_hybrid_results",
    "refresh_embeddings",
    "vector_search",
    "MemoryIndex",
    "NoteParseError",
    "ParsedNote",
    "parse_memory_file",
    "EmbeddingError",
    "EmbeddingProvider",
    "cosine_similarity",
    "resolve_embedding_provider",
    "FTSSearchResult",
    "IndexedChunk",
    "IndexedFile",
    "IndexStats",
    "MemoryDir",
    "SyncResult",
]
