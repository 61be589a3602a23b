"""
Duplicate detection before a note is written.

Three layers, cheapest first:

1. Exact content hash: an identical note is already indexed. The caller
   should skip the write.
2. Vector similarity: cosine of the new content against every cached chunk
   vector. Files at or above the threshold are near-duplicates.
3. Keyword similarity: when layer 2 found nothing (or there is no
   provider), a BM25 query built from the opening of the content. Strong
   matches are mapped onto a 0-1 similarity and compared against a
   slightly lowered threshold.

Near-duplicates are not blocked; the caller writes the note and records
them in its frontmatter (see DedupResult.to_frontmatter) for later review.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import httpx

from .config import DedupConfig
from .index_store import MemoryIndex
from .parser import DUPLICATE_OF_KEY
from .providers.base import EmbeddingProvider, cosine_similarity
from .providers.embeddings import EmbeddingError
from .types import note_id

logger = logging.getLogger(__name__)

# Only the opening of the content is embedded (about 500 tokens)
EMBED_CHARS = 2000
# Keyword query: first non-blank line plus this much of the content
FTS_QUERY_CHARS = 200
FTS_QUERY_MIN_LENGTH = 11
FTS_QUERY_LIMIT = 5
# BM25 rank at or below which a keyword hit is suspicious (more negative is stronger)
FTS_SUSPICION_RANK = -5
# Keyword hits are compared against threshold * this factor
FTS_THRESHOLD_FACTOR = 0.85

METHOD_VECTOR = "vector"
METHOD_FTS = "fts"

_NON_WORD_RE = re.compile(r"[^\w\s]")

__all__ = [
    "DedupConfig",
    "DedupResult",
    "NearDuplicate",
    "check_duplicate",
    "fts_rank_to_similarity",
    "FTS_SUSPICION_RANK",
    "FTS_THRESHOLD_FACTOR",
]


@dataclass
class NearDuplicate:
    """An existing note similar to the candidate content."""
    id: str
    path: str
    similarity: float
    method: str  # "vector" or "fts"


@dataclass
class DedupResult:
    """Outcome of a duplicate check. Never persisted."""
    is_duplicate: bool = False
    exact_match: Optional[str] = None
    near_duplicates: list[NearDuplicate] = field(default_factory=list)

    def to_frontmatter(self) -> dict[str, str]:
        """Frontmatter entry naming the near-duplicates, or {} if there are none."""
        if not self.near_duplicates:
            return {}
        ids = list(dict.fromkeys(d.id for d in self.near_duplicates))
        return {DUPLICATE_OF_KEY: ", ".join(ids)}


def fts_rank_to_similarity(rank: float) -> float:
    """Map a BM25 rank onto 0-1: rank -5 gives about 0.83, rank -20 about 0.95."""
    return min(1.0, max(0.0, 1.0 - 1.0 / (1.0 + abs(rank))))


def _vector_near_duplicates(
    content: str,
    index: MemoryIndex,
    provider: EmbeddingProvider,
    threshold: float,
) -> list[NearDuplicate]:
    query_vec = provider.embed(content[:EMBED_CHARS])
    cached = index.get_embeddings(provider.name, provider.model)

    hits: dict[str, float] = {}
    for chunk_id, vector in cached.items():
        similarity = cosine_similarity(query_vec, vector)
        if similarity >= threshold:
            hits[chunk_id] = similarity
    if not hits:
        return []

    # Best similarity per source file
    best: dict[str, float] = {}
    for chunk_id, chunks in index.get_chunks(hits).items():
        for chunk in chunks:
            if hits[chunk_id] > best.get(chunk.path, -1.0):
                best[chunk.path] = hits[chunk_id]

    found = [
        NearDuplicate(id=note_id(path), path=path, similarity=sim, method=METHOD_VECTOR)
        for path, sim in best.items()
    ]
    found.sort(key=lambda d: d.similarity, reverse=True)
    return found


def _keyword_query(content: str) -> str:
    first_line = next((line.strip() for line in content.split("\n") if line.strip()), "")
    return _NON_WORD_RE.sub(" ", f"{first_line} {content[:FTS_QUERY_CHARS]}").strip()


def _fts_near_duplicates(
    content: str,
    index: MemoryIndex,
    threshold: float,
) -> list[NearDuplicate]:
    query = _keyword_query(content)
    if len(query) < FTS_QUERY_MIN_LENGTH:
        return []

    found: list[NearDuplicate] = []
    seen: set[str] = set()
    for hit in index.search_fts(query, FTS_QUERY_LIMIT):
        if hit.rank > FTS_SUSPICION_RANK or hit.path in seen:
            continue
        similarity = fts_rank_to_similarity(hit.rank)
        if similarity >= threshold * FTS_THRESHOLD_FACTOR:
            seen.add(hit.path)
            found.append(NearDuplicate(
                id=note_id(hit.path),
                path=hit.path,
                similarity=similarity,
                method=METHOD_FTS,
            ))
    return found


def check_duplicate(
    content: str,
    content_hash: str,
    index: Optional[MemoryIndex],
    provider: Optional[EmbeddingProvider],
    config: DedupConfig = DedupConfig(),
) -> DedupResult:
    """
    Check whether content duplicates an already indexed note.

    Args:
        content: Candidate note content
        content_hash: hash_content() of the content
        index: The derived index (None or not ready: nothing is detected)
        provider: Embedding provider for the vector layer, or None
        config: Dedup policy

    Returns:
        DedupResult. An exact match short-circuits the other layers.
    """
    ready = index is not None and index.init()

    if config.exact_hash_skip and ready:
        existing = index.get_file_by_hash(content_hash)
        if existing is not None:
            logger.debug("Exact duplicate of %s", existing.path)
            return DedupResult(is_duplicate=True, exact_match=existing.id)

    result = DedupResult()
    if not config.tag_and_defer or not ready:
        return result

    if provider is not None:
        try:
            result.near_duplicates = _vector_near_duplicates(
                content, index, provider, config.semantic_threshold,
            )
        except (httpx.HTTPError, EmbeddingError, ValueError) as e:
            logger.warning("Vector duplicate check failed: %s", e)

    if not result.near_duplicates:
        result.near_duplicates = _fts_near_duplicates(
            content, index, config.semantic_threshold,
        )

    if result.near_duplicates:
        logger.info(
            "Found %d near-duplicate(s): %s",
            len(result.near_duplicates),
            ", ".join(d.id for d in result.near_duplicates),
        )
    return result
