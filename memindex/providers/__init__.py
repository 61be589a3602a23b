"""
Embedding providers.

Importing this package registers the built-in providers ("custom", "zhipu").
"""

from .base import EmbeddingProvider, ProviderRegistry, cosine_similarity, get_registry
from .embeddings import (
    MAX_BATCH_SIZE,
    CustomEmbedding,
    EmbeddingError,
    OpenAICompatibleEmbedding,
    ZhipuEmbedding,
    resolve_embedding_provider,
)

__all__ = [
    "EmbeddingProvider",
    "ProviderRegistry",
    "cosine_similarity",
    "get_registry",
    "MAX_BATCH_SIZE",
    "CustomEmbedding",
    "EmbeddingError",
    "OpenAICompatibleEmbedding",
    "ZhipuEmbedding",
    "resolve_embedding_provider",
]
