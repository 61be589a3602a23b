"""
Embedding providers speaking the OpenAI embeddings wire format.

    POST {base}/embeddings  {"model": ..., "input": [...]}
    -> {"data": [{"embedding": [...], "index": 0}, ...]}

Providers are selected explicitly by name in the store config; there is no
fallback chain. When the selected provider is unavailable the index runs
keyword-only.
"""

from __future__ import annotations

import logging
import os

import httpx

from ..config import EmbeddingConfig
from .base import EmbeddingProvider, get_registry

logger = logging.getLogger(__name__)

# Max texts per API call
MAX_BATCH_SIZE = 20

PROBE_TEXT = "dimension probe"

# Environment for the "custom" provider
CUSTOM_API_BASE_ENV = "EMBEDDING_API_BASE"
CUSTOM_MODEL_ENV = "EMBEDDING_MODEL"
CUSTOM_API_KEY_ENV = "EMBEDDING_API_KEY"
CUSTOM_DIMENSIONS_ENV = "EMBEDDING_DIMENSIONS"
CUSTOM_DEFAULT_MODEL = "text-embedding-3-small"

ZHIPU_EMBEDDING_URL = "https://open.bigmodel.cn/api/paas/v4/embeddings"
ZHIPU_API_KEY_ENV = "ZHIPU_API_KEY"
ZHIPU_DEFAULT_MODEL = "embedding-3"
ZHIPU_DIMENSIONS = 1024

DEFAULT_TIMEOUT = 30.0

NO_PROVIDER = "none"


class EmbeddingError(Exception):
    """The embedding backend returned an error or an unusable response."""


def normalize_embeddings_url(base_url: str) -> str:
    """Base URL with any trailing slash or /embeddings replaced by one /embeddings."""
    url = base_url.rstrip("/")
    if url.endswith("/embeddings"):
        url = url[: -len("/embeddings")]
    return url + "/embeddings"


class OpenAICompatibleEmbedding:
    """
    Embedding client for any OpenAI-compatible /embeddings endpoint.

    Requests are capped at MAX_BATCH_SIZE inputs; larger batches are split.
    """

    def __init__(
        self,
        url: str,
        model: str,
        *,
        name: str,
        api_key: str = "",
        dimensions: int = 0,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._url = url
        self._name = name
        self._model = model
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(headers=headers, timeout=timeout)
        self._dimensions = dimensions
        if not dimensions:
            try:
                self._dimensions = self._probe_dimensions()
            except EmbeddingError:
                self._client.close()
                raise

    def _probe_dimensions(self) -> int:
        try:
            vector = self._request([PROBE_TEXT])[0]
        except (httpx.HTTPError, EmbeddingError) as e:
            raise EmbeddingError(
                f"Dimension auto-detection failed ({e}). "
                f"Set {CUSTOM_DIMENSIONS_ENV} or embedding.dimensions to skip."
            ) from e
        logger.debug("Probed %s/%s: %d dimensions", self._name, self._model, len(vector))
        return len(vector)

    @property
    def name(self) -> str:
        return self._name

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def url(self) -> str:
        return self._url

    def _request(self, texts: list[str]) -> list[list[float]]:
        """One API call. Vectors are returned in input order."""
        resp = self._client.post(self._url, json={"model": self._model, "input": texts})
        if resp.status_code >= 400:
            raise EmbeddingError(
                f"Embedding API error {resp.status_code}: {resp.text[:200]}"
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise EmbeddingError(f"Embedding API returned invalid JSON: {e}") from e
        data = payload.get("data") if isinstance(payload, dict) else None
        if not data or not isinstance(data, list):
            raise EmbeddingError("Embedding API returned no data")
        if len(data) != len(texts):
            raise EmbeddingError(
                f"Embedding API returned {len(data)} vectors for {len(texts)} inputs"
            )
        try:
            ordered = sorted(data, key=lambda item: item.get("index", 0))
            vectors = [item["embedding"] for item in ordered]
        except (AttributeError, KeyError, TypeError) as e:
            raise EmbeddingError(f"Embedding API returned malformed data: {e!r}") from e
        for vector in vectors:
            if not isinstance(vector, list) or not vector or not all(
                isinstance(x, (int, float)) for x in vector
            ):
                raise EmbeddingError("Embedding API returned a malformed vector")
            if self._dimensions and len(vector) != self._dimensions:
                raise EmbeddingError(
                    f"Embedding API returned {len(vector)} dimensions, expected {self._dimensions}"
                )
        return vectors

    def embed(self, text: str) -> list[float]:
        return self._request([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        results: list[list[float]] = []
        for start in range(0, len(texts), MAX_BATCH_SIZE):
            results.extend(self._request(texts[start:start + MAX_BATCH_SIZE]))
        return results

    def close(self) -> None:
        self._client.close()


class CustomEmbedding(OpenAICompatibleEmbedding):
    """
    Any OpenAI-compatible endpoint (Ollama, vLLM, LM Studio).

    Connection details come from arguments first, then the environment:
    EMBEDDING_API_BASE, EMBEDDING_MODEL, EMBEDDING_API_KEY, EMBEDDING_DIMENSIONS.
    """

    def __init__(
        self,
        base_url: str = "",
        model: str = "",
        dimensions: int = 0,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        base_url = base_url or os.environ.get(CUSTOM_API_BASE_ENV, "")
        if not base_url:
            raise ValueError(f"Custom embedding provider needs {CUSTOM_API_BASE_ENV}")
        if not dimensions and os.environ.get(CUSTOM_DIMENSIONS_ENV):
            dimensions = int(os.environ[CUSTOM_DIMENSIONS_ENV])
        super().__init__(
            normalize_embeddings_url(base_url),
            model or os.environ.get(CUSTOM_MODEL_ENV) or CUSTOM_DEFAULT_MODEL,
            name="custom",
            api_key=api_key if api_key is not None else os.environ.get(CUSTOM_API_KEY_ENV, ""),
            dimensions=dimensions,
            timeout=timeout,
        )


class ZhipuEmbedding(OpenAICompatibleEmbedding):
    """ZhiPu embedding-3 via its OpenAI-compatible endpoint (ZHIPU_API_KEY)."""

    def __init__(
        self,
        model: str = "",
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        api_key = api_key or os.environ.get(ZHIPU_API_KEY_ENV, "")
        if not api_key:
            raise ValueError(f"ZhiPu embedding provider needs {ZHIPU_API_KEY_ENV}")
        super().__init__(
            ZHIPU_EMBEDDING_URL,
            model or ZHIPU_DEFAULT_MODEL,
            name="zhipu",
            api_key=api_key,
            dimensions=ZHIPU_DIMENSIONS,
            timeout=timeout,
        )


def resolve_embedding_provider(config: EmbeddingConfig | None = None) -> EmbeddingProvider | None:
    """
    Create exactly the provider named in config.

    Returns:
        The provider, or None when it is "none", unknown, misconfigured or
        fails to initialize (the index then runs keyword-only).
    """
    config = config or EmbeddingConfig()
    if config.provider == NO_PROVIDER:
        logger.info("Embedding provider: none (keyword search only)")
        return None

    params: dict = {"model": config.model, "timeout": config.timeout}
    if config.provider == "custom":
        params["base_url"] = config.base_url
        params["dimensions"] = config.dimensions

    try:
        provider = get_registry().create_embedding(config.provider, params)
    except (ValueError, RuntimeError) as e:
        logger.warning(
            "Embedding provider %r not available, using keyword search only: %s",
            config.provider, e,
        )
        return None

    logger.info(
        "Embedding provider: %s/%s (%dd)", provider.name, provider.model, provider.dimensions,
    )
    return provider


# Register providers
_registry = get_registry()
_registry.register_embedding("custom", CustomEmbedding)
_registry.register_embedding("zhipu", ZhipuEmbedding)
