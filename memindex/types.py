"""
Data types for the derived memory index.

Rows coming out of SQLite are decoded into these dataclasses once, at the
index boundary. Nothing above the index touches raw rows.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


# Scopes a note directory can belong to. "all" is accepted on input and
# means "project" when indexing, "any scope" when filtering.
SCOPE_PROJECT = "project"
SCOPE_GLOBAL = "global"
SCOPE_ALL = "all"
VALID_SCOPES = frozenset({SCOPE_PROJECT, SCOPE_GLOBAL, SCOPE_ALL})

# Extension of note files picked up by a sync
NOTE_SUFFIX = ".md"


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def resolve_index_scope(scope: str) -> str:
    """Map an input scope to the scope a file is stored under."""
    if scope not in VALID_SCOPES:
        raise ValueError(f"Unknown scope: {scope!r}. Use one of {sorted(VALID_SCOPES)}")
    return SCOPE_PROJECT if scope == SCOPE_ALL else scope


def scope_matches(
    row_scope: str,
    row_project_root: Optional[str],
    scope: Optional[str] = None,
    project_root: Optional[str] = None,
) -> bool:
    """
    Filter for search results.

    `scope` None or "all" accepts any scope; `project_root` only constrains
    project-scope rows.
    """
    if scope and scope != SCOPE_ALL and row_scope != scope:
        return False
    if project_root and row_scope == SCOPE_PROJECT and row_project_root != project_root:
        return False
    return True


def note_id(path: str) -> str:
    """Note identifier: the file name without its .md extension."""
    name = Path(path).name
    if name.endswith(NOTE_SUFFIX):
        return name[: -len(NOTE_SUFFIX)]
    return name


@dataclass(frozen=True)
class MemoryDir:
    """A scope directory handed to a sync."""
    path: Path
    scope: str
    project_root: Optional[str] = None


@dataclass
class IndexedFile:
    """One indexed note file. Exactly one row per (path, scope)."""
    path: str
    scope: str
    project_root: Optional[str]
    hash: str
    mtime: float
    size: int
    title: Optional[str] = None
    type: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    created_at: Optional[str] = None
    potential_duplicate_of: Optional[str] = None

    @property
    def id(self) -> str:
        return note_id(self.path)

    @classmethod
    def from_row(cls, row) -> "IndexedFile":
        tags = []
        if row["tags"]:
            try:
                tags = json.loads(row["tags"])
            except json.JSONDecodeError:
                tags = []
        return cls(
            path=row["path"],
            scope=row["scope"],
            project_root=row["project_root"],
            hash=row["hash"],
            mtime=row["mtime"],
            size=row["size"],
            title=row["title"],
            type=row["type"],
            tags=tags,
            created_at=row["created_at"],
            potential_duplicate_of=row["potential_duplicate_of"],
        )


@dataclass
class IndexedChunk:
    """A stored text segment of a note, with line-range provenance."""
    id: str
    path: str
    scope: str
    project_root: Optional[str]
    start_line: int
    end_line: int
    hash: str
    text: str
    updated_at: int

    @classmethod
    def from_row(cls, row) -> "IndexedChunk":
        return cls(
            id=row["id"],
            path=row["path"],
            scope=row["scope"],
            project_root=row["project_root"],
            start_line=row["start_line"],
            end_line=row["end_line"],
            hash=row["hash"],
            text=row["text"],
            updated_at=row["updated_at"],
        )


@dataclass
class FTSSearchResult:
    """
    A keyword hit.

    `rank` is the FTS5 BM25 rank: negative, and more negative means a
    stronger match.
    """
    chunk_id: str
    path: str
    scope: str
    start_line: int
    end_line: int
    text: str
    rank: float


@dataclass
class ChunkToEmbed:
    """A chunk whose hash has no cached vector for the active provider."""
    id: str
    hash: str
    text: str


@dataclass
class SyncResult:
    """Counts from one sync pass."""
    added: int = 0
    updated: int = 0
    removed: int = 0
    unchanged: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed)

    def to_dict(self) -> dict:
        return {
            "added": self.added,
            "updated": self.updated,
            "removed": self.removed,
            "unchanged": self.unchanged,
        }


@dataclass
class IndexStats:
    """Index statistics. All zero (and fts_available False) when not ready."""
    files_indexed: int = 0
    chunks_indexed: int = 0
    embeddings_cached: int = 0
    fts_available: bool = False
    db_size_bytes: int = 0

    def to_dict(self) -> dict:
        return {
            "files_indexed": self.files_indexed,
            "chunks_indexed": self.chunks_indexed,
            "embeddings_cached": self.embeddings_cached,
            "fts_available": self.fts_available,
            "db_size_bytes": self.db_size_bytes,
        }
