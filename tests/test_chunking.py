"""Tests for memindex.chunking: heading-aware chunking and content hashing."""

import pytest

from memindex.chunking import (
    ChunkingOptions,
    chunk_markdown,
    hash_content,
)


def _lines_of(content: str, chunk) -> str:
    lines = content.split("\n")
    return "\n".join(lines[chunk.start_line - 1:chunk.end_line])


class TestHashContent:

    def test_known_digests(self):
        assert hash_content("") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )
        assert hash_content("hello") == (
            "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
        )

    def test_stable_and_sensitive(self):
        assert hash_content("same text") == hash_content("same text")
        assert hash_content("same text") != hash_content("same text ")

    def test_unicode_hashed_as_utf8(self):
        assert len(hash_content("记忆")) == 64


class TestChunkingOptions:

    def test_defaults(self):
        opts = ChunkingOptions()
        assert opts.tokens == 400
        assert opts.overlap == 80
        assert opts.target_chars == 1600
        assert opts.overlap_chars == 320

    @pytest.mark.parametrize("tokens,overlap", [(0, 0), (100, -1), (100, 100), (100, 150)])
    def test_invalid(self, tokens, overlap):
        with pytest.raises(ValueError):
            ChunkingOptions(tokens=tokens, overlap=overlap)


class TestChunkMarkdown:

    def test_empty_and_whitespace(self):
        assert chunk_markdown("") == []
        assert chunk_markdown("   \n\n  \t") == []

    def test_short_content_single_chunk(self):
        content = "# Title\n\nA short note.\nSecond line."
        chunks = chunk_markdown(content)
        assert len(chunks) == 1
        assert chunks[0].text == content
        assert chunks[0].start_line == 1
        assert chunks[0].end_line == 4

    def test_up_to_single_chunk_factor_stays_whole(self):
        # 1.3 x 1600 chars fits in one chunk
        content = "\n".join("y" * 99 for _ in range(20))
        assert len(content) <= 2080
        assert len(chunk_markdown(content)) == 1

    def test_1500_words_default_options(self):
        """1500 words at 400/80 tokens: several chunks overlapping by ~80 tokens."""
        words = [f"w{i:04d}" for i in range(1500)]
        lines = [" ".join(words[i:i + 10]) for i in range(0, 1500, 10)]
        content = "\n".join(lines)

        chunks = chunk_markdown(content, ChunkingOptions(tokens=400, overlap=80))

        assert len(chunks) >= 3
        for chunk in chunks:
            assert chunk.text.strip()
            assert 1 <= chunk.start_line <= chunk.end_line <= len(lines)
            assert chunk.text == _lines_of(content, chunk)

        for prev, nxt in zip(chunks, chunks[1:]):
            assert nxt.start_line <= prev.end_line
            shared = "\n".join(lines[nxt.start_line - 1:prev.end_line])
            # Whole lines totalling at least the overlap, at most one line more
            assert 300 <= len(shared) <= 400

        assert chunks[0].start_line == 1
        assert chunks[-1].end_line == len(lines)

    def test_splits_at_headings(self):
        sections = []
        for n in range(1, 5):
            sections.append(f"## Section {n}")
            sections.extend(f"section {n} line {i:02d} " + "z" * 40 for i in range(10))
        content = "\n".join(sections)

        chunks = chunk_markdown(content)

        assert len(chunks) == 4
        for n, chunk in enumerate(chunks, start=1):
            headings = [l for l in chunk.text.split("\n") if l.startswith("## ")]
            assert headings == [f"## Section {n}"]
            assert chunk.text == _lines_of(content, chunk)

    def test_small_tail_merged_into_previous(self):
        lines = [f"{i:03d} " + "x" * 95 for i in range(1, 32)]
        content = "\n".join(lines)

        chunks = chunk_markdown(content)

        assert len(chunks) == 2
        assert (chunks[0].start_line, chunks[0].end_line) == (1, 16)
        assert (chunks[1].start_line, chunks[1].end_line) == (13, 31)
        assert chunks[1].text.endswith(lines[-1])
        assert chunks[1].text == _lines_of(content, chunks[1])

    def test_no_overlap_option(self):
        lines = [f"{i:03d} " + "x" * 95 for i in range(1, 41)]
        content = "\n".join(lines)

        chunks = chunk_markdown(content, ChunkingOptions(tokens=400, overlap=0))

        for prev, nxt in zip(chunks, chunks[1:]):
            assert nxt.start_line == prev.end_line + 1

    def test_single_line_chunks_not_repeated_as_overlap(self):
        lines = [letter * 500 for letter in "abcd"]
        content = "\n".join(lines)

        chunks = chunk_markdown(content, ChunkingOptions(tokens=100, overlap=20))

        assert [(c.start_line, c.end_line) for c in chunks] == [(1, 1), (2, 2), (3, 3), (4, 4)]
        assert [c.text for c in chunks] == lines

    def test_deterministic(self):
        content = "\n".join(f"line {i} " + "q" * 70 for i in range(200))
        assert chunk_markdown(content) == chunk_markdown(content)
