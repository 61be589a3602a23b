"""
Hybrid retrieval: BM25 keyword hits merged with vector similarity.

    text_score = 1 / (1 + max(0, rank))
    score      = text_weight * text_score + vector_weight * vector_score

A chunk found by only one source gets 0 for the other. With no provider,
hybrid_search degrades to keyword ranking.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import httpx

from .config import HybridWeights
from .index_store import MemoryIndex
from .providers.base import EmbeddingProvider, cosine_similarity
from .providers.embeddings import MAX_BATCH_SIZE, EmbeddingError
from .types import FTSSearchResult, note_id, scope_matches

logger = logging.getLogger(__name__)

# Vector candidates must score above this cosine similarity
DEFAULT_MIN_SCORE = 0.3

__all__ = [
    "HybridWeights",
    "VectorSearchResult",
    "MergedSearchResult",
    "HybridHit",
    "merge_hybrid_results",
    "vector_search",
    "hybrid_search",
    "refresh_embeddings",
]


@dataclass
class VectorSearchResult:
    chunk_id: str
    score: float


@dataclass
class MergedSearchResult:
    chunk_id: str
    score: float
    text_score: float = 0.0
    vector_score: float = 0.0


@dataclass
class HybridHit:
    """The best-scoring chunk of one note file."""
    id: str
    path: str
    scope: str
    chunk_id: str
    start_line: int
    end_line: int
    text: str
    score: float
    text_score: float
    vector_score: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": self.path,
            "scope": self.scope,
            "chunk_id": self.chunk_id,
            "lines": [self.start_line, self.end_line],
            "score": round(self.score, 4),
            "text_score": round(self.text_score, 4),
            "vector_score": round(self.vector_score, 4),
            "text": self.text,
        }


def merge_hybrid_results(
    fts_results: Iterable[FTSSearchResult],
    vector_results: Iterable[VectorSearchResult],
    weights: Optional[HybridWeights] = None,
) -> list[MergedSearchResult]:
    """
    Merge keyword and vector results into one list, best first.

    Ties keep first-seen order (keyword results before vector-only ones).
    """
    w = weights or HybridWeights()
    merged: dict[str, MergedSearchResult] = {}

    for fts in fts_results:
        if fts.chunk_id in merged:
            continue
        text_score = 1.0 / (1.0 + max(0.0, fts.rank))
        merged[fts.chunk_id] = MergedSearchResult(
            chunk_id=fts.chunk_id,
            score=w.text_weight * text_score,
            text_score=text_score,
        )

    for vec in vector_results:
        existing = merged.get(vec.chunk_id)
        if existing is not None:
            existing.vector_score = vec.score
            existing.score += w.vector_weight * vec.score
        else:
            merged[vec.chunk_id] = MergedSearchResult(
                chunk_id=vec.chunk_id,
                score=w.vector_weight * vec.score,
                vector_score=vec.score,
            )

    return sorted(merged.values(), key=lambda r: r.score, reverse=True)


def vector_search(
    index: MemoryIndex,
    provider: EmbeddingProvider,
    query: str,
    limit: int,
    min_score: float = DEFAULT_MIN_SCORE,
) -> list[VectorSearchResult]:
    """
    Cosine similarity of the query against every cached chunk vector.

    Raises whatever the provider raises; callers decide how to degrade.
    """
    query_vec = provider.embed(query)
    scored: list[VectorSearchResult] = []
    for chunk_id, vector in index.get_embeddings(provider.name, provider.model).items():
        score = cosine_similarity(query_vec, vector)
        if score > min_score:
            scored.append(VectorSearchResult(chunk_id=chunk_id, score=score))
    scored.sort(key=lambda r: r.score, reverse=True)
    return scored[:limit]


def hybrid_search(
    index: MemoryIndex,
    provider: Optional[EmbeddingProvider],
    query: str,
    limit: int = 5,
    scope: Optional[str] = None,
    project_root: Optional[str] = None,
    weights: Optional[HybridWeights] = None,
) -> list[HybridHit]:
    """
    Search notes by keyword and, when a provider is given, by meaning.

    Args:
        index: The derived index
        provider: Embedding provider, or None for keyword-only ranking
        query: Free text
        limit: Maximum number of files returned
        scope: Only this scope (None or "all" for any)
        project_root: For project-scope notes, only this project
        weights: Score blend; defaults to 0.7 vector / 0.3 keyword

    Returns:
        One hit per file (its best chunk), best first
    """
    if limit <= 0:
        return []
    w = weights or HybridWeights()
    candidates = limit * w.candidate_multiplier

    fts_results = index.search_fts(query, candidates, scope, project_root)

    vector_results: list[VectorSearchResult] = []
    if provider is not None:
        try:
            vector_results = vector_search(index, provider, query, candidates)
        except (httpx.HTTPError, EmbeddingError, ValueError) as e:
            logger.warning("Vector search failed, using keyword results only: %s", e)

    merged = merge_hybrid_results(fts_results, vector_results, w)
    if not merged:
        return []

    chunks_by_id = index.get_chunks(r.chunk_id for r in merged)
    hits: dict[str, HybridHit] = {}
    for result in merged:
        for chunk in chunks_by_id.get(result.chunk_id, []):
            if chunk.path in hits:
                continue
            if not scope_matches(chunk.scope, chunk.project_root, scope, project_root):
                continue
            hits[chunk.path] = HybridHit(
                id=note_id(chunk.path),
                path=chunk.path,
                scope=chunk.scope,
                chunk_id=chunk.id,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
                text=chunk.text,
                score=result.score,
                text_score=result.text_score,
                vector_score=result.vector_score,
            )
        if len(hits) >= limit:
            break
    return list(hits.values())


def refresh_embeddings(
    index: MemoryIndex,
    provider: EmbeddingProvider,
    batch_size: int = MAX_BATCH_SIZE,
) -> int:
    """
    Embed every chunk that has no cached vector for this provider.

    Chunks sharing a hash are embedded once. A backend failure stops the
    refresh; vectors cached before it are kept.

    Returns:
        Number of vectors cached
    """
    pending: dict[str, str] = {}
    for chunk in index.get_chunks_without_embeddings(provider.name, provider.model):
        pending.setdefault(chunk.hash, chunk.text)
    if not pending:
        return 0

    items = list(pending.items())
    cached = 0
    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        try:
            vectors = provider.embed_batch([text for _, text in batch])
        except (httpx.HTTPError, EmbeddingError, ValueError) as e:
            logger.warning(
                "Embedding refresh stopped after %d of %d: %s", cached, len(items), e,
            )
            break
        for (chunk_hash, _), vector in zip(batch, vectors):
            index.cache_embedding(provider.name, provider.model, chunk_hash, vector)
            cached += 1

    logger.info("Cached %d embedding(s) for %s/%s", cached, provider.name, provider.model)
    return cached
