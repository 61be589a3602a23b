"""
Shared pytest fixtures for memindex tests.

Provides a mock embedding provider so no test talks to a real backend.
"""

import hashlib
from pathlib import Path
from typing import Optional

import pytest

from memindex.index_store import MemoryIndex
from memindex.providers.embeddings import EmbeddingError
from memindex.types import MemoryDir


class MockEmbeddingProvider:
    """
    Deterministic mock embedding provider for testing.

    Generates consistent embeddings based on text hash, so identical text
    always gets an identical vector. Specific texts can be pinned to chosen
    vectors through `overrides`.
    """

    name = "mock"
    model = "mock-model"
    dimensions = 16

    def __init__(self, overrides: Optional[dict[str, list[float]]] = None):
        self.overrides = dict(overrides or {})
        self.embed_calls = 0
        self.batch_calls = 0
        self.embedded_texts: list[str] = []
        self.fail = False
        self.closed = False

    def _vector(self, text: str) -> list[float]:
        if text in self.overrides:
            return list(self.overrides[text])
        h = hashlib.md5(text.encode()).hexdigest()
        return [int(h[i:i+2], 16) / 255.0 for i in range(0, 32, 2)]

    def embed(self, text: str) -> list[float]:
        """Generate deterministic embedding from text hash."""
        if self.fail:
            raise EmbeddingError("mock backend down")
        self.embed_calls += 1
        self.embedded_texts.append(text)
        return self._vector(text)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        if self.fail:
            raise EmbeddingError("mock backend down")
        self.batch_calls += 1
        self.embedded_texts.extend(texts)
        return [self._vector(t) for t in texts]

    def close(self) -> None:
        self.closed = True


def write_note(
    scope_dir: Path,
    name: str,
    body: str,
    *,
    title: Optional[str] = None,
    tags: Optional[list[str]] = None,
    subdir: str = "notes",
    frontmatter: bool = True,
) -> Path:
    """Write a note file under scope_dir/subdir and return its path."""
    note_dir = scope_dir / subdir
    note_dir.mkdir(parents=True, exist_ok=True)
    path = note_dir / f"{name}.md"
    if frontmatter:
        lines = ["---", f"title: {title or name}", "type: note"]
        if tags:
            lines.append(f"tags: [{', '.join(tags)}]")
        lines.append("created: 2026-01-29T10:00:00.000Z")
        lines.append("---")
        text = "\n".join(lines) + "\n\n" + body + "\n"
    else:
        text = body
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def mock_embedding_provider():
    """Create a fresh MockEmbeddingProvider instance."""
    return MockEmbeddingProvider()


@pytest.fixture
def global_dir(tmp_path):
    """An empty global-scope note directory."""
    d = tmp_path / "global"
    d.mkdir()
    return d


@pytest.fixture
def index(tmp_path):
    """A MemoryIndex backed by a file in tmp_path; closed after the test."""
    idx = MemoryIndex(tmp_path / "index.db")
    yield idx
    idx.close()


@pytest.fixture
def global_memory_dir(global_dir):
    return MemoryDir(path=global_dir, scope="global")
