"""
Base provider protocols.

These define the interfaces that concrete providers must implement.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

import math
from typing import Protocol, runtime_checkable


# -----------------------------------------------------------------------------
# Embedding Generation
# -----------------------------------------------------------------------------

@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Generates vector embeddings from text.

    Cached vectors are keyed by (name, model), so the same provider and
    model must be used for indexing and querying.

    Example implementation:
        class ConstantEmbedding:
            name = "constant"
            model = "v1"
            dimensions = 3

            def embed(self, text: str) -> list[float]:
                return [1.0, 0.0, 0.0]

            def embed_batch(self, texts: list[str]) -> list[list[float]]:
                return [self.embed(t) for t in texts]

            def close(self) -> None:
                pass
    """

    @property
    def name(self) -> str:
        """Provider name, part of the embedding cache key."""
        ...

    @property
    def model(self) -> str:
        """Model identifier, part of the embedding cache key."""
        ...

    @property
    def dimensions(self) -> int:
        """The dimensionality of the embedding vectors."""
        ...

    def embed(self, text: str) -> list[float]:
        """
        Generate an embedding vector for the given text.

        Args:
            text: The text to embed

        Returns:
            A list of floats representing the embedding vector
        """
        ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, one per input text, in input order
        """
        ...

    def close(self) -> None:
        """Release any connection held by the provider."""
        ...


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero norm.

    Raises:
        ValueError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} vs {len(b)}")
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating embedding providers.

    Providers are registered by name so that the store configuration (TOML)
    can select one by name rather than requiring code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_embedding("custom", CustomEmbedding)

        # Later, from config:
        provider = registry.create_embedding("custom", {"base_url": "http://localhost:11434/v1"})
    """

    def __init__(self):
        self._embedding_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily load provider modules."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        # Importing registers the concrete classes
        from . import embeddings  # noqa: F401

    def register_embedding(self, name: str, provider_class: type) -> None:
        """Register an embedding provider class."""
        self._embedding_providers[name] = provider_class

    def create_embedding(self, name: str, params: dict | None = None) -> EmbeddingProvider:
        """
        Create an embedding provider instance.

        Raises:
            ValueError: If no provider is registered under this name
            RuntimeError: If the provider fails to initialize
        """
        self._ensure_providers_loaded()
        if name not in self._embedding_providers:
            available = ", ".join(self._embedding_providers.keys()) or "none"
            raise ValueError(
                f"Unknown embedding provider: '{name}'. "
                f"Available providers: {available}."
            )
        try:
            return self._embedding_providers[name](**(params or {}))
        except Exception as e:
            raise RuntimeError(
                f"Failed to create embedding provider '{name}': {e}"
            ) from e


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
