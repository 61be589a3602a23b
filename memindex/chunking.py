"""
Heading-aware markdown chunking and content hashing.

Chunks are sized by an approximate token budget (4 characters per token),
split preferentially at markdown headings, and seeded with the trailing
lines of the previous chunk so a match straddling a boundary is not lost.
"""

import hashlib
import re
from dataclasses import dataclass

# Approximate characters per token for size estimation
CHARS_PER_TOKEN = 4

DEFAULT_CHUNK_TOKENS = 400
DEFAULT_OVERLAP_TOKENS = 80

# Content up to this multiple of the target stays a single chunk
SINGLE_CHUNK_FACTOR = 1.3
# A heading only starts a new chunk once this share of the target is filled
HEADING_SPLIT_FACTOR = 0.3
# Tails smaller than this share of the target merge into the previous chunk
SMALL_TAIL_FACTOR = 0.15

_HEADING_RE = re.compile(r"^#{1,6}\s")


@dataclass(frozen=True)
class ChunkingOptions:
    """Chunk size and overlap, in tokens."""
    tokens: int = DEFAULT_CHUNK_TOKENS
    overlap: int = DEFAULT_OVERLAP_TOKENS

    def __post_init__(self):
        if self.tokens < 1:
            raise ValueError("chunk tokens must be >= 1")
        if self.overlap < 0:
            raise ValueError("overlap tokens must be >= 0")
        if self.overlap >= self.tokens:
            raise ValueError("overlap tokens must be less than chunk tokens")

    @property
    def target_chars(self) -> int:
        return self.tokens * CHARS_PER_TOKEN

    @property
    def overlap_chars(self) -> int:
        return self.overlap * CHARS_PER_TOKEN


@dataclass
class Chunk:
    """A contiguous slice of a note body. Line numbers are 1-based, inclusive."""
    text: str
    start_line: int
    end_line: int


def hash_content(content: str) -> str:
    """Full SHA-256 hex digest of content, for change detection and cache keys."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _overlap_lines(lines: list[str], overlap_chars: int) -> list[str]:
    """Trailing whole lines of a chunk totalling at least overlap_chars."""
    if overlap_chars <= 0 or not lines:
        return []
    count = 0
    start = len(lines)
    for i in range(len(lines) - 1, -1, -1):
        count += len(lines[i]) + 1
        start = i
        if count >= overlap_chars:
            break
    if start == 0:
        # Seeding with the whole previous chunk would repeat it verbatim
        return []
    return lines[start:]


def chunk_markdown(
    content: str,
    options: ChunkingOptions = ChunkingOptions(),
) -> list[Chunk]:
    """
    Split markdown content into overlapping chunks.

    1. Content that fits in one chunk is returned as-is.
    2. Otherwise lines are accumulated; a chunk is closed before a heading
       once it holds more than 30% of the target, or after the line that
       brings it to the target size.
    3. Every new chunk starts with the overlap tail of the previous one.
    4. A very small tail is merged into the previous chunk.

    Args:
        content: Note body
        options: Target and overlap sizes

    Returns:
        Ordered chunks; empty only for blank input.
    """
    if not content.strip():
        return []

    lines = content.split("\n")
    target = options.target_chars
    overlap = options.overlap_chars

    if len(content) <= target * SINGLE_CHUNK_FACTOR:
        return [Chunk(text=content, start_line=1, end_line=len(lines))]

    chunks: list[Chunk] = []
    current: list[str] = []
    start_line = 1
    char_count = 0
    # Lines appended since the chunk was seeded with overlap
    fresh: list[str] = []

    for i, line in enumerate(lines):
        line_num = i + 1

        if _HEADING_RE.match(line) and current and char_count > target * HEADING_SPLIT_FACTOR:
            chunks.append(Chunk(
                text="\n".join(current),
                start_line=start_line,
                end_line=line_num - 1,
            ))
            seed = _overlap_lines(current, overlap)
            start_line = line_num - len(seed)
            current = [*seed, line]
            fresh = [line]
            char_count = len("\n".join(current))
            continue

        current.append(line)
        fresh.append(line)
        char_count += len(line) + 1

        if char_count >= target:
            chunks.append(Chunk(
                text="\n".join(current),
                start_line=start_line,
                end_line=line_num,
            ))
            seed = _overlap_lines(current, overlap)
            start_line = line_num - len(seed) + 1
            current = list(seed)
            fresh = []
            char_count = len("\n".join(current))

    if fresh:
        fresh_chars = len("\n".join(fresh))
        if chunks and fresh_chars < target * SMALL_TAIL_FACTOR:
            last = chunks[-1]
            last.text += "\n" + "\n".join(fresh)
            last.end_line = len(lines)
        else:
            chunks.append(Chunk(
                text="\n".join(current),
                start_line=start_line,
                end_line=start_line + len(current) - 1,
            ))

    if not chunks:
        return [Chunk(text=content, start_line=1, end_line=len(lines))]
    return chunks
