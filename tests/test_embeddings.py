"""Tests for memindex.providers: embedding clients, resolution and vector math."""

import math
from unittest.mock import MagicMock, patch

import httpx
import pytest

from memindex.chunking import hash_content
from memindex.config import EmbeddingConfig
from memindex.dedup import check_duplicate
from memindex.hybrid import hybrid_search, refresh_embeddings
from memindex.providers import (
    CustomEmbedding,
    EmbeddingError,
    EmbeddingProvider,
    ZhipuEmbedding,
    cosine_similarity,
    resolve_embedding_provider,
)
from memindex.providers.embeddings import (
    MAX_BATCH_SIZE,
    PROBE_TEXT,
    ZHIPU_EMBEDDING_URL,
    normalize_embeddings_url,
)

from tests.conftest import write_note


class FakeResponse:
    """Minimal httpx.Response stand-in."""

    def __init__(self, status_code=200, json_data=None, text=""):
        self.status_code = status_code
        self._json = json_data or {}
        self.text = text

    def json(self):
        return self._json


def _echo_post(url, json=None, **kwargs):
    """Vector [len(text), position], returned in reverse order."""
    data = [
        {"embedding": [float(len(text)), float(i)], "index": i}
        for i, text in enumerate(json["input"])
    ]
    return FakeResponse(json_data={"data": list(reversed(data)), "model": json["model"]})


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "EMBEDDING_API_BASE", "EMBEDDING_MODEL", "EMBEDDING_API_KEY",
        "EMBEDDING_DIMENSIONS", "ZHIPU_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def mock_http():
    """Patch httpx.Client in the embeddings module; yield (class mock, instance)."""
    with patch("memindex.providers.embeddings.httpx.Client") as MockClient:
        client_instance = MagicMock()
        client_instance.post.side_effect = _echo_post
        MockClient.return_value = client_instance
        yield MockClient, client_instance


class TestUrlNormalization:

    @pytest.mark.parametrize("base", [
        "http://localhost:11434/v1",
        "http://localhost:11434/v1/",
        "http://localhost:11434/v1/embeddings",
        "http://localhost:11434/v1/embeddings/",
        "http://localhost:11434/v1///",
    ])
    def test_single_embeddings_suffix(self, base):
        assert normalize_embeddings_url(base) == "http://localhost:11434/v1/embeddings"


class TestCustomEmbedding:

    def test_explicit_dimensions_skip_probe(self, mock_http):
        _, client = mock_http
        provider = CustomEmbedding(base_url="http://localhost:8000/v1", dimensions=768)

        assert provider.name == "custom"
        assert provider.model == "text-embedding-3-small"
        assert provider.dimensions == 768
        assert provider.url == "http://localhost:8000/v1/embeddings"
        client.post.assert_not_called()

    def test_probe_detects_dimensions(self, mock_http):
        _, client = mock_http
        client.post.side_effect = lambda url, json=None: FakeResponse(
            json_data={"data": [{"embedding": [0.0] * 5, "index": 0}]}
        )

        provider = CustomEmbedding(base_url="http://localhost:8000/v1")

        assert provider.dimensions == 5
        _, kwargs = client.post.call_args
        assert kwargs["json"]["input"] == [PROBE_TEXT]

    def test_probe_failure_raises(self, mock_http):
        _, client = mock_http
        client.post.side_effect = httpx.ConnectError("refused")

        with pytest.raises(EmbeddingError, match="auto-detection"):
            CustomEmbedding(base_url="http://localhost:8000/v1")
        client.close.assert_called_once()

    def test_malformed_probe_closes_client(self, mock_http):
        _, client = mock_http
        client.post.side_effect = lambda url, json=None: FakeResponse(json_data=[1, 2, 3])

        with pytest.raises(EmbeddingError, match="auto-detection"):
            CustomEmbedding(base_url="http://localhost:8000/v1")
        client.close.assert_called_once()

    def test_close(self, mock_http):
        _, client = mock_http
        provider = CustomEmbedding(base_url="http://localhost:8000/v1", dimensions=2)
        provider.close()
        client.close.assert_called_once()

    def test_environment_configuration(self, mock_http, monkeypatch):
        MockClient, client = mock_http
        monkeypatch.setenv("EMBEDDING_API_BASE", "http://gpu-box:9000/v1/")
        monkeypatch.setenv("EMBEDDING_MODEL", "nomic-embed-text")
        monkeypatch.setenv("EMBEDDING_API_KEY", "secret")
        monkeypatch.setenv("EMBEDDING_DIMENSIONS", "384")

        provider = CustomEmbedding()

        assert provider.url == "http://gpu-box:9000/v1/embeddings"
        assert provider.model == "nomic-embed-text"
        assert provider.dimensions == 384
        headers = MockClient.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer secret"

    def test_no_key_no_auth_header(self, mock_http):
        MockClient, _ = mock_http
        CustomEmbedding(base_url="http://localhost:8000", dimensions=2)
        assert "Authorization" not in MockClient.call_args.kwargs["headers"]

    def test_missing_base_url(self, mock_http):
        with pytest.raises(ValueError, match="EMBEDDING_API_BASE"):
            CustomEmbedding()

    def test_timeout_passed_to_client(self, mock_http):
        MockClient, _ = mock_http
        CustomEmbedding(base_url="http://localhost:8000", dimensions=2, timeout=5.0)
        assert MockClient.call_args.kwargs["timeout"] == 5.0

    def test_satisfies_protocol(self, mock_http):
        provider = CustomEmbedding(base_url="http://localhost:8000", dimensions=2)
        assert isinstance(provider, EmbeddingProvider)


class TestRequests:

    @pytest.fixture
    def provider(self, mock_http):
        return CustomEmbedding(base_url="http://localhost:8000/v1", model="m", dimensions=2)

    def test_embed_single(self, provider, mock_http):
        _, client = mock_http
        assert provider.embed("hello") == [5.0, 0.0]
        args, kwargs = client.post.call_args
        assert args[0] == "http://localhost:8000/v1/embeddings"
        assert kwargs["json"] == {"model": "m", "input": ["hello"]}

    def test_results_resorted_by_index(self, provider):
        vectors = provider.embed_batch(["a", "bb", "ccc"])
        assert vectors == [[1.0, 0.0], [2.0, 1.0], [3.0, 2.0]]

    def test_batches_capped(self, provider, mock_http):
        _, client = mock_http
        texts = [f"text-{i}" for i in range(45)]

        vectors = provider.embed_batch(texts)

        assert len(vectors) == 45
        sizes = [len(call.kwargs["json"]["input"]) for call in client.post.call_args_list]
        assert sizes == [MAX_BATCH_SIZE, MAX_BATCH_SIZE, 5]
        assert vectors[44] == [float(len("text-44")), 4.0]

    def test_empty_batch(self, provider, mock_http):
        _, client = mock_http
        assert provider.embed_batch([]) == []
        client.post.assert_not_called()

    def test_http_error_status(self, provider, mock_http):
        _, client = mock_http
        client.post.side_effect = lambda url, json=None: FakeResponse(
            status_code=500, text="upstream exploded"
        )
        with pytest.raises(EmbeddingError, match="500"):
            provider.embed("x")

    def test_empty_data(self, provider, mock_http):
        _, client = mock_http
        client.post.side_effect = lambda url, json=None: FakeResponse(json_data={"data": []})
        with pytest.raises(EmbeddingError, match="no data"):
            provider.embed("x")

    def test_count_mismatch(self, provider, mock_http):
        _, client = mock_http
        client.post.side_effect = lambda url, json=None: FakeResponse(
            json_data={"data": [{"embedding": [1.0, 2.0], "index": 0}]}
        )
        with pytest.raises(EmbeddingError, match="1 vectors for 2 inputs"):
            provider.embed_batch(["a", "b"])

    def test_transport_error_propagates(self, provider, mock_http):
        _, client = mock_http
        client.post.side_effect = httpx.ReadTimeout("slow")
        with pytest.raises(httpx.HTTPError):
            provider.embed("x")

    @pytest.mark.parametrize("payload,texts", [
        ([{"embedding": [1.0, 0.0], "index": 0}], ["a"]),
        ({"data": {"embedding": [1.0, 0.0]}}, ["a"]),
        ({"data": [{"vector": [1.0, 0.0], "index": 0}]}, ["a"]),
        ({"data": ["oops"]}, ["a"]),
        ({"data": [{"embedding": "1.0,0.0", "index": 0}]}, ["a"]),
        ({"data": [{"embedding": [1.0, None], "index": 0}]}, ["a"]),
        ({"data": [{"embedding": [], "index": 0}]}, ["a"]),
        ({"data": [{"embedding": [1.0, 0.0], "index": "0"}, {"embedding": [0.0, 1.0], "index": 1}]},
         ["a", "b"]),
    ])
    def test_malformed_payload(self, provider, mock_http, payload, texts):
        _, client = mock_http
        client.post.side_effect = lambda url, json=None: FakeResponse(json_data=payload)
        with pytest.raises(EmbeddingError):
            provider.embed_batch(texts)

    def test_dimension_mismatch(self, provider, mock_http):
        _, client = mock_http
        client.post.side_effect = lambda url, json=None: FakeResponse(
            json_data={"data": [{"embedding": [1.0, 0.0, 0.5], "index": 0}]}
        )
        with pytest.raises(EmbeddingError, match="3 dimensions, expected 2"):
            provider.embed("x")


class TestZhipu:

    def test_fixed_endpoint_and_dimensions(self, mock_http, monkeypatch):
        MockClient, client = mock_http
        monkeypatch.setenv("ZHIPU_API_KEY", "zk")

        provider = ZhipuEmbedding()

        assert provider.name == "zhipu"
        assert provider.model == "embedding-3"
        assert provider.dimensions == 1024
        assert provider.url == ZHIPU_EMBEDDING_URL
        assert MockClient.call_args.kwargs["headers"]["Authorization"] == "Bearer zk"
        client.post.assert_not_called()

    def test_requires_key(self, mock_http):
        with pytest.raises(ValueError, match="ZHIPU_API_KEY"):
            ZhipuEmbedding()


class TestResolve:

    def test_none_disables(self, mock_http):
        assert resolve_embedding_provider(EmbeddingConfig(provider="none")) is None

    def test_custom_without_base_url(self, mock_http):
        assert resolve_embedding_provider(EmbeddingConfig(provider="custom")) is None

    def test_unknown_provider(self, mock_http):
        assert resolve_embedding_provider(EmbeddingConfig(provider="mystery")) is None

    def test_zhipu_without_key(self, mock_http):
        assert resolve_embedding_provider(EmbeddingConfig(provider="zhipu")) is None

    def test_custom_from_config(self, mock_http):
        config = EmbeddingConfig(
            provider="custom", base_url="http://localhost:8000/v1", model="bge-m3", dimensions=1024,
        )
        provider = resolve_embedding_provider(config)
        assert isinstance(provider, CustomEmbedding)
        assert provider.model == "bge-m3"
        assert provider.dimensions == 1024

    def test_zhipu_with_model(self, mock_http, monkeypatch):
        monkeypatch.setenv("ZHIPU_API_KEY", "zk")
        provider = resolve_embedding_provider(EmbeddingConfig(provider="zhipu", model="embedding-2"))
        assert isinstance(provider, ZhipuEmbedding)
        assert provider.model == "embedding-2"

    def test_probe_failure_gives_none(self, mock_http):
        _, client = mock_http
        client.post.side_effect = httpx.ConnectError("refused")
        config = EmbeddingConfig(provider="custom", base_url="http://localhost:8000/v1")
        assert resolve_embedding_provider(config) is None

    def test_no_cascade(self, mock_http, monkeypatch):
        """A configured-but-broken provider does not fall through to another."""
        monkeypatch.setenv("ZHIPU_API_KEY", "zk")
        assert resolve_embedding_provider(EmbeddingConfig(provider="custom")) is None


class TestCosineSimilarity:

    def test_identical(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite(self):
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_known_angle(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 1.0]) == pytest.approx(1 / math.sqrt(2))

    def test_zero_norm(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])


class TestBadBackendDegrades:
    """Malformed or wrong-sized vectors empty the vector layer only."""

    @pytest.fixture
    def synced(self, index, global_dir, global_memory_dir):
        write_note(global_dir, "release-process", "Tag the release, build wheels, upload to the index.")
        write_note(global_dir, "coffee", "Grind beans medium fine for pour over.")
        index.sync_files([global_memory_dir])
        return index

    @pytest.fixture(params=[
        [{"embedding": [1.0, 0.0], "index": 0}],
        {"data": [{"vector": [1.0, 0.0], "index": 0}]},
        {"data": [{"embedding": [1.0, 0.0, 0.5], "index": 0}]},
    ], ids=["list-body", "missing-embedding", "wrong-dimensions"])
    def bad_provider(self, request, mock_http):
        _, client = mock_http
        client.post.side_effect = lambda url, json=None: FakeResponse(json_data=request.param)
        return CustomEmbedding(base_url="http://localhost:8000/v1", model="m", dimensions=2)

    def test_check_duplicate(self, synced, bad_provider):
        content = "Tag the release, build wheels, upload to the index. Then announce it."
        result = check_duplicate(content, hash_content(content), synced, bad_provider)

        assert result.is_duplicate is False
        assert all(d.method == "fts" for d in result.near_duplicates)

    def test_hybrid_search(self, synced, bad_provider):
        hits = hybrid_search(synced, bad_provider, "release wheels")

        assert [h.id for h in hits] == ["release-process"]
        assert hits[0].vector_score == 0.0

    def test_refresh_embeddings(self, synced, bad_provider):
        assert refresh_embeddings(synced, bad_provider) == 0
        assert synced.get_stats().embeddings_cached == 0
