"""
Derived memory index using SQLite + FTS5.

Markdown note files are the source of truth; this index is derived from
them and can be deleted and rebuilt at any time.

- files: one row per indexed (path, scope), with the file's content hash
- chunks: text segments of each note body, with line ranges
- chunks_fts: FTS5 external-content table over chunks.text, kept in sync
  by triggers
- embedding_cache: vectors keyed by (provider, model, chunk hash), so
  identical text shares one cached vector regardless of which file holds it

The database lives in memory while open. It is loaded wholesale from
`db_path` on first use and written back wholesale by flush(), so two
processes syncing the same index file will clobber each other; callers
must serialize access.
"""

import json
import logging
import os
import re
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, Optional

from .chunking import ChunkingOptions, chunk_markdown, hash_content
from .parser import NoteParseError, parse_memory_file
from .types import (
    NOTE_SUFFIX,
    ChunkToEmbed,
    FTSSearchResult,
    IndexedChunk,
    IndexedFile,
    IndexStats,
    MemoryDir,
    SyncResult,
    now_ms,
    resolve_index_scope,
    scope_matches,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Subdirectories of a scope directory that hold notes
DEFAULT_SUBDIRS = ("notes", "sessions")

# Extra FTS candidates fetched to survive scope filtering
FTS_CANDIDATE_FACTOR = 3

# Characters with meaning in FTS5 query syntax
_FTS_SPECIAL_RE = re.compile(r"[*\"(){}\[\]^~\\:!@#$%&+\-|<>=]")
_WORD_RE = re.compile(r"\w")

# Executed one at a time; every statement is idempotent
SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS files (
        path TEXT NOT NULL,
        scope TEXT NOT NULL,
        project_root TEXT,
        hash TEXT NOT NULL,
        mtime REAL NOT NULL,
        size INTEGER NOT NULL,
        title TEXT,
        type TEXT,
        tags TEXT,
        created_at TEXT,
        potential_duplicate_of TEXT,
        PRIMARY KEY (path, scope)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_files_hash ON files(hash)",
    # Byte-identical files share chunk ids, so id is not unique;
    # the hidden rowid is what FTS5 points at
    """
    CREATE TABLE IF NOT EXISTS chunks (
        id TEXT NOT NULL,
        path TEXT NOT NULL,
        scope TEXT NOT NULL,
        project_root TEXT,
        start_line INTEGER NOT NULL,
        end_line INTEGER NOT NULL,
        hash TEXT NOT NULL,
        text TEXT NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chunks_id ON chunks(id)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_path ON chunks(path, scope)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_hash ON chunks(hash)",
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
        text,
        content=chunks,
        content_rowid=rowid
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS chunks_fts_ins AFTER INSERT ON chunks BEGIN
        INSERT INTO chunks_fts(rowid, text) VALUES (new.rowid, new.text);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS chunks_fts_del AFTER DELETE ON chunks BEGIN
        INSERT INTO chunks_fts(chunks_fts, rowid, text) VALUES ('delete', old.rowid, old.text);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS chunks_fts_upd AFTER UPDATE ON chunks BEGIN
        INSERT INTO chunks_fts(chunks_fts, rowid, text) VALUES ('delete', old.rowid, old.text);
        INSERT INTO chunks_fts(rowid, text) VALUES (new.rowid, new.text);
    END
    """,
    """
    CREATE TABLE IF NOT EXISTS embedding_cache (
        provider TEXT NOT NULL,
        model TEXT NOT NULL,
        hash TEXT NOT NULL,
        embedding TEXT NOT NULL,
        dims INTEGER,
        updated_at INTEGER NOT NULL,
        PRIMARY KEY (provider, model, hash)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_embedding_cache_updated ON embedding_cache(updated_at)",
]


class IndexInitError(RuntimeError):
    """The index backend could not be opened."""


def sanitize_fts_query(query: str) -> str:
    """
    Turn free text into a safe FTS5 MATCH expression.

    Syntax characters are stripped, tokens shorter than two characters are
    dropped, and the remaining tokens are quoted and OR-joined so that any
    matching term produces a hit (FTS5's implicit AND is too strict for
    recall queries).

    Returns:
        The MATCH expression, or "" if nothing searchable remains.
    """
    cleaned = _FTS_SPECIAL_RE.sub(" ", query)
    tokens = [
        t for t in cleaned.split()
        if len(t) >= 2 and _WORD_RE.search(t)
    ]
    return " OR ".join(f'"{t}"' for t in tokens)


class MemoryIndex:
    """
    Rebuildable SQLite index over a collection of markdown notes.

    Initialization is lazy: the first operation opens the database. If that
    fails (no FTS5 in this SQLite build, corrupt file, permission error) the
    handle stays "not ready" and every operation returns an empty result.

    Example:
        with MemoryIndex(store / "index.db") as index:
            index.sync_files([MemoryDir(store / "global", "global")])
            hits = index.search_fts("sqlite triggers")
    """

    def __init__(
        self,
        db_path: Path,
        chunking: Optional[ChunkingOptions] = None,
        subdirs: Iterable[str] = DEFAULT_SUBDIRS,
    ):
        """
        Args:
            db_path: Path to the persisted index file
            chunking: Chunk size and overlap (defaults: 400 / 80 tokens)
            subdirs: Subdirectories of each scope directory holding notes;
                empty means the scope directory itself
        """
        self._db_path = Path(db_path)
        self._chunking = chunking or ChunkingOptions()
        self._subdirs = tuple(subdirs)
        self._conn: Optional[sqlite3.Connection] = None
        self._initialized = False
        self._init_failed = False
        self._dirty = False
        self._lock = threading.RLock()

    @property
    def db_path(self) -> Path:
        return self._db_path

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def init(self) -> bool:
        """
        Open the database if not yet open.

        Returns:
            True if the index is ready
        """
        with self._lock:
            if self._initialized:
                return True
            if self._init_failed:
                return False
            try:
                self._conn = self._open()
                self._initialized = True
            except (sqlite3.Error, OSError, IndexInitError) as e:
                logger.warning("Memory index unavailable (%s): %s", self._db_path, e)
                self._init_failed = True
                self._conn = None
            return self._initialized

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(":memory:", check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            if self._db_path.exists():
                source = sqlite3.connect(str(self._db_path))
                try:
                    source.backup(conn)
                finally:
                    source.close()
            self._check_fts5(conn)
            self._migrate(conn)
        except Exception:
            conn.close()
            raise
        return conn

    @staticmethod
    def _check_fts5(conn: sqlite3.Connection) -> None:
        try:
            conn.execute("CREATE VIRTUAL TABLE temp.fts5_probe USING fts5(x)")
            conn.execute("DROP TABLE temp.fts5_probe")
        except sqlite3.OperationalError as e:
            raise IndexInitError(f"SQLite build lacks FTS5: {e}") from e

    def _read_schema_version(self, conn: sqlite3.Connection) -> Optional[int]:
        try:
            row = conn.execute(
                "SELECT value FROM meta WHERE key = 'schema_version'"
            ).fetchone()
        except sqlite3.OperationalError:
            return None  # no meta table yet
        return int(row["value"]) if row else None

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Create or upgrade the schema. No-op when already current."""
        version = self._read_schema_version(conn)
        if version == SCHEMA_VERSION:
            return
        if version is not None and version > SCHEMA_VERSION:
            raise IndexInitError(
                f"Index schema version {version} is newer than supported ({SCHEMA_VERSION})"
            )

        for stmt in SCHEMA_STATEMENTS:
            try:
                conn.execute(stmt)
            except sqlite3.OperationalError as e:
                if "already exists" not in str(e):
                    raise
        conn.execute(
            "INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', ?)",
            (str(SCHEMA_VERSION),),
        )
        conn.commit()
        logger.debug("Index schema at version %d: %s", SCHEMA_VERSION, self._db_path)
        self._dirty = True

    def is_ready(self) -> bool:
        """True if the index is open and functional. Does not trigger init."""
        return self._initialized and self._conn is not None

    def flush(self) -> bool:
        """
        Write the in-memory database to db_path if anything changed.

        Writes to a temporary file and renames it into place, so a crash
        mid-flush leaves the previous snapshot intact.

        Returns:
            True if a snapshot was written
        """
        with self._lock:
            if self._conn is None or not self._dirty:
                return False
            tmp_path = self._db_path.with_name(self._db_path.name + ".tmp")
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                if tmp_path.exists():
                    tmp_path.unlink()
                target = sqlite3.connect(str(tmp_path))
                try:
                    self._conn.backup(target)
                finally:
                    target.close()
                os.replace(tmp_path, self._db_path)
            except (sqlite3.Error, OSError) as e:
                logger.error("Failed to flush memory index to %s: %s", self._db_path, e)
                return False
            self._dirty = False
            logger.debug("Flushed memory index to %s", self._db_path)
            return True

    def close(self) -> None:
        """Flush, then release the database. A later call re-opens it."""
        with self._lock:
            if self._conn is None:
                return
            self.flush()
            self._conn.close()
            self._conn = None
            self._initialized = False
            self._dirty = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    def _list_note_files(self, base: Path) -> list[Path]:
        """Note files under a scope directory, sorted by name."""
        dirs = [base / sub for sub in self._subdirs] if self._subdirs else [base]
        files: list[Path] = []
        for directory in dirs:
            if not directory.is_dir():
                continue
            try:
                entries = sorted(directory.iterdir())
            except OSError as e:
                logger.warning("Cannot list %s: %s", directory, e)
                continue
            for entry in entries:
                if entry.name.startswith(".") or entry.suffix != NOTE_SUFFIX:
                    continue
                if entry.is_file():
                    files.append(entry)
        return files

    def _stored_hash(self, path: str, scope: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT hash FROM files WHERE path = ? AND scope = ?",
            (path, scope),
        ).fetchone()
        return row["hash"] if row else None

    def sync_files(self, dirs: Iterable[MemoryDir]) -> SyncResult:
        """
        Reconcile the index with the note files on disk.

        Unchanged files (same content hash) are skipped. New and changed
        files are re-parsed and re-chunked. Indexed files not seen in this
        pass are removed. A file that fails to read or parse is logged and
        left out of the counts.

        Args:
            dirs: Scope directories to scan

        Returns:
            SyncResult with added/updated/removed/unchanged counts
        """
        result = SyncResult()
        if not self.init():
            return result

        with self._lock:
            seen: set[tuple[str, str]] = set()

            for memory_dir in dirs:
                base = Path(memory_dir.path)
                if not base.is_dir():
                    continue
                scope = resolve_index_scope(memory_dir.scope)

                for file_path in self._list_note_files(base):
                    path = str(file_path.resolve())
                    seen.add((path, scope))
                    try:
                        raw = file_path.read_text(encoding="utf-8")
                        stat = file_path.stat()
                        content_hash = hash_content(raw)
                        existing = self._stored_hash(path, scope)
                        if existing == content_hash:
                            result.unchanged += 1
                            continue
                        self._index_file_internal(
                            path, raw, content_hash, stat, scope, memory_dir.project_root,
                        )
                    except (OSError, UnicodeDecodeError, NoteParseError, sqlite3.Error) as e:
                        logger.warning("Error indexing %s: %s", path, e)
                        continue
                    if existing is None:
                        result.added += 1
                    else:
                        result.updated += 1

            stale = [
                (row["path"], row["scope"])
                for row in self._conn.execute("SELECT path, scope FROM files")
                if (row["path"], row["scope"]) not in seen
            ]
            for path, scope in stale:
                self._remove_file_internal(path, scope)
                result.removed += 1

        if result.changed:
            logger.info(
                "Index sync: %d added, %d updated, %d removed, %d unchanged",
                result.added, result.updated, result.removed, result.unchanged,
            )
        return result

    def _index_file_internal(
        self,
        path: str,
        raw: str,
        content_hash: str,
        stat: os.stat_result,
        scope: str,
        project_root: Optional[str],
    ) -> None:
        """Replace every row for (path, scope) with freshly derived ones."""
        parsed = parse_memory_file(path, raw)
        body = parsed.content if parsed else raw
        chunks = chunk_markdown(body, self._chunking)
        now = now_ms()

        with self._conn:
            # Delete before insert so the FTS triggers drop the old entries
            self._conn.execute(
                "DELETE FROM chunks WHERE path = ? AND scope = ?", (path, scope),
            )
            self._conn.execute(
                "DELETE FROM files WHERE path = ? AND scope = ?", (path, scope),
            )
            self._conn.execute(
                """
                INSERT INTO files
                (path, scope, project_root, hash, mtime, size, title, type, tags,
                 created_at, potential_duplicate_of)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    path,
                    scope,
                    project_root,
                    content_hash,
                    stat.st_mtime * 1000,
                    stat.st_size,
                    parsed.title if parsed else None,
                    parsed.type if parsed else None,
                    json.dumps(parsed.tags, ensure_ascii=False) if parsed and parsed.tags else None,
                    parsed.created_at if parsed else None,
                    parsed.duplicate_of if parsed else None,
                ),
            )
            self._conn.executemany(
                """
                INSERT INTO chunks
                (id, path, scope, project_root, start_line, end_line, hash, text, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        f"{content_hash[:12]}:{seq}",
                        path,
                        scope,
                        project_root,
                        chunk.start_line,
                        chunk.end_line,
                        hash_content(chunk.text),
                        chunk.text,
                        now,
                    )
                    for seq, chunk in enumerate(chunks)
                ],
            )
        self._dirty = True
        logger.debug("Indexed %s (%s, %d chunks)", path, scope, len(chunks))

    def index_file(
        self,
        path: Path,
        scope: str,
        project_root: Optional[str] = None,
    ) -> bool:
        """
        Index a single note file.

        Returns:
            True if the file was (re)indexed; False if it is missing,
            unchanged, unreadable, or the index is not ready.
        """
        if not self.init():
            return False
        file_path = Path(path)
        if not file_path.is_file():
            return False
        resolved_scope = resolve_index_scope(scope)
        key = str(file_path.resolve())

        with self._lock:
            try:
                raw = file_path.read_text(encoding="utf-8")
                content_hash = hash_content(raw)
                if self._stored_hash(key, resolved_scope) == content_hash:
                    return False
                self._index_file_internal(
                    key, raw, content_hash, file_path.stat(), resolved_scope, project_root,
                )
            except (OSError, UnicodeDecodeError, NoteParseError, sqlite3.Error) as e:
                logger.warning("Error indexing %s: %s", key, e)
                return False
        return True

    def _remove_file_internal(self, path: str, scope: Optional[str] = None) -> int:
        with self._conn:
            if scope is None:
                self._conn.execute("DELETE FROM chunks WHERE path = ?", (path,))
                cursor = self._conn.execute("DELETE FROM files WHERE path = ?", (path,))
            else:
                self._conn.execute(
                    "DELETE FROM chunks WHERE path = ? AND scope = ?", (path, scope),
                )
                cursor = self._conn.execute(
                    "DELETE FROM files WHERE path = ? AND scope = ?", (path, scope),
                )
        if cursor.rowcount:
            self._dirty = True
        return cursor.rowcount

    def remove_file(self, path: Path, scope: Optional[str] = None) -> bool:
        """
        Remove a file from the index.

        Args:
            path: Note file path (need not exist any more)
            scope: Only remove the row for this scope; None removes all scopes

        Returns:
            True if anything was removed
        """
        if not self.init():
            return False
        key = str(Path(path).resolve())
        resolved_scope = resolve_index_scope(scope) if scope else None
        with self._lock:
            return self._remove_file_internal(key, resolved_scope) > 0

    # -------------------------------------------------------------------------
    # Keyword search
    # -------------------------------------------------------------------------

    def search_fts(
        self,
        query: str,
        limit: int = 10,
        scope: Optional[str] = None,
        project_root: Optional[str] = None,
    ) -> list[FTSSearchResult]:
        """
        BM25 keyword search over chunks.

        Args:
            query: Free text; tokens are OR-joined
            limit: Maximum results
            scope: Only chunks from this scope (None or "all" for any)
            project_root: For project-scope chunks, only this project

        Returns:
            Results ordered by rank, strongest first
        """
        if limit <= 0 or not self.init():
            return []
        match = sanitize_fts_query(query)
        if not match:
            return []

        with self._lock:
            try:
                fts_rows = self._conn.execute(
                    "SELECT rowid, rank FROM chunks_fts WHERE chunks_fts MATCH ? "
                    "ORDER BY rank LIMIT ?",
                    (match, limit * FTS_CANDIDATE_FACTOR),
                ).fetchall()

                results: list[FTSSearchResult] = []
                for fts in fts_rows:
                    chunk = self._conn.execute(
                        "SELECT id, path, scope, project_root, start_line, end_line, text "
                        "FROM chunks WHERE rowid = ?",
                        (fts["rowid"],),
                    ).fetchone()
                    if chunk is None:
                        continue
                    if not scope_matches(
                        chunk["scope"], chunk["project_root"], scope, project_root,
                    ):
                        continue
                    results.append(FTSSearchResult(
                        chunk_id=chunk["id"],
                        path=chunk["path"],
                        scope=chunk["scope"],
                        start_line=chunk["start_line"],
                        end_line=chunk["end_line"],
                        text=chunk["text"],
                        rank=fts["rank"],
                    ))
                    if len(results) >= limit:
                        break
                return results
            except sqlite3.Error as e:
                logger.warning("FTS search failed for %r: %s", query, e)
                return []

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_file_by_hash(self, content_hash: str) -> Optional[IndexedFile]:
        """Find an indexed file with exactly this content hash."""
        if not self.init():
            return None
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM files WHERE hash = ? ORDER BY path, scope LIMIT 1",
                (content_hash,),
            ).fetchone()
        return IndexedFile.from_row(row) if row else None

    def get_file(self, path: Path, scope: str) -> Optional[IndexedFile]:
        """Get the indexed record for (path, scope)."""
        if not self.init():
            return None
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM files WHERE path = ? AND scope = ?",
                (str(Path(path).resolve()), resolve_index_scope(scope)),
            ).fetchone()
        return IndexedFile.from_row(row) if row else None

    def list_files(self) -> list[IndexedFile]:
        """All indexed files, ordered by path."""
        if not self.init():
            return []
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM files ORDER BY path, scope"
            ).fetchall()
        return [IndexedFile.from_row(row) for row in rows]

    def get_chunks(self, ids: Iterable[str]) -> dict[str, list[IndexedChunk]]:
        """
        Get chunks by id.

        Returns:
            Dict mapping id to its chunks (several when byte-identical files
            share ids); missing ids are omitted.
        """
        ids = list(dict.fromkeys(ids))
        if not ids or not self.init():
            return {}
        results: dict[str, list[IndexedChunk]] = {}
        with self._lock:
            # Stay under SQLite's bound-parameter limit
            for start in range(0, len(ids), 500):
                batch = ids[start:start + 500]
                placeholders = ",".join("?" * len(batch))
                cursor = self._conn.execute(
                    f"SELECT * FROM chunks WHERE id IN ({placeholders}) ORDER BY path, scope",
                    batch,
                )
                for row in cursor:
                    results.setdefault(row["id"], []).append(IndexedChunk.from_row(row))
        return results

    # -------------------------------------------------------------------------
    # Embedding cache
    # -------------------------------------------------------------------------

    def get_embeddings(self, provider: str, model: str) -> dict[str, list[float]]:
        """
        Cached vectors for every live chunk under (provider, model).

        Returns:
            Dict mapping chunk id to its vector. Malformed entries are skipped.
        """
        if not self.init():
            return {}
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT c.id AS chunk_id, ec.embedding
                FROM embedding_cache ec
                JOIN chunks c ON c.hash = ec.hash
                WHERE ec.provider = ? AND ec.model = ?
                """,
                (provider, model),
            ).fetchall()

        vectors: dict[str, list[float]] = {}
        for row in rows:
            try:
                vector = json.loads(row["embedding"])
            except json.JSONDecodeError:
                logger.debug("Skipping malformed cached embedding for %s", row["chunk_id"])
                continue
            if isinstance(vector, list):
                vectors[row["chunk_id"]] = vector
        return vectors

    def cache_embedding(
        self,
        provider: str,
        model: str,
        chunk_hash: str,
        embedding: list[float],
    ) -> None:
        """Store a vector for a chunk hash under (provider, model)."""
        if not self.init():
            return
        with self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT OR REPLACE INTO embedding_cache
                    (provider, model, hash, embedding, dims, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (provider, model, chunk_hash, json.dumps(embedding), len(embedding), now_ms()),
                )
            self._dirty = True

    def get_chunks_without_embeddings(self, provider: str, model: str) -> list[ChunkToEmbed]:
        """Chunks whose hash has no cached vector under (provider, model)."""
        if not self.init():
            return []
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT c.id, c.hash, c.text FROM chunks c
                WHERE c.hash NOT IN (
                    SELECT ec.hash FROM embedding_cache ec
                    WHERE ec.provider = ? AND ec.model = ?
                )
                ORDER BY c.rowid
                """,
                (provider, model),
            ).fetchall()
        return [ChunkToEmbed(id=row["id"], hash=row["hash"], text=row["text"]) for row in rows]

    def prune_embedding_cache(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> int:
        """
        Delete cached vectors whose text no longer appears in any chunk.

        Args:
            provider: Limit to this provider (None for all)
            model: Limit to this model (None for all)

        Returns:
            Number of cache rows deleted
        """
        if not self.init():
            return 0
        sql = "DELETE FROM embedding_cache WHERE hash NOT IN (SELECT hash FROM chunks)"
        params: list[str] = []
        if provider is not None:
            sql += " AND provider = ?"
            params.append(provider)
        if model is not None:
            sql += " AND model = ?"
            params.append(model)
        with self._lock:
            with self._conn:
                cursor = self._conn.execute(sql, params)
            if cursor.rowcount:
                self._dirty = True
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def get_stats(self) -> IndexStats:
        """Index statistics. Does not trigger init."""
        if not self.is_ready():
            return IndexStats()
        with self._lock:
            files = self._conn.execute("SELECT COUNT(*) FROM files").fetchone()[0]
            chunks = self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
            cached = self._conn.execute("SELECT COUNT(*) FROM embedding_cache").fetchone()[0]
        try:
            size = self._db_path.stat().st_size if self._db_path.exists() else 0
        except OSError:
            size = 0
        return IndexStats(
            files_indexed=files,
            chunks_indexed=chunks,
            embeddings_cached=cached,
            fts_available=True,
            db_size_bytes=size,
        )
