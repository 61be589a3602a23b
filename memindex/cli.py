"""
CLI interface for the memory index.

Usage:
    memindex sync ~/.notes/global:global ./.notes:project:/path/to/repo
    memindex search "sqlite triggers"
    memindex check draft.md
    memindex embed
    memindex stats
"""

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from typing_extensions import Annotated

from .chunking import hash_content
from .config import StoreConfig, get_store_path, load_or_create_config
from .dedup import check_duplicate
from .hybrid import hybrid_search, refresh_embeddings
from .index_store import MemoryIndex
from .logging_config import (
    configure_ops_log,
    configure_quiet_mode,
    enable_debug_mode,
    is_verbose_env,
    remove_ops_log,
)
from .parser import NoteParseError, parse_memory_file
from .providers import EmbeddingProvider, resolve_embedding_provider
from .types import SCOPE_GLOBAL, VALID_SCOPES, MemoryDir


# Configure quiet mode by default (suppress verbose library output)
# Set MEMINDEX_VERBOSE=1 to enable debug mode via environment
if is_verbose_env():
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


app = typer.Typer(
    name="memindex",
    help="Derived keyword and vector index over markdown notes.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="MEMINDEX_STORE_PATH",
        help="Path to the store directory (default: ~/.memindex/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Derived keyword and vector index over markdown notes."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

LimitOption = Annotated[
    int,
    typer.Option(
        "--limit", "-n",
        help="Maximum results to return"
    )
]

ScopeOption = Annotated[
    Optional[str],
    typer.Option(
        "--scope",
        help="Only this scope: project, global or all"
    )
]


@contextmanager
def _open_store() -> Iterator[tuple[StoreConfig, MemoryIndex]]:
    """Load config and open the index; always flushes and closes it."""
    store_path = get_store_path(_store_override)
    config = load_or_create_config(store_path)
    handler = configure_ops_log(store_path)
    index = MemoryIndex(
        config.db_path,
        chunking=config.chunking,
        subdirs=config.index.subdirs,
    )
    try:
        yield config, index
    finally:
        index.close()
        remove_ops_log(handler)


def _require_ready(index: MemoryIndex) -> None:
    if not index.init():
        typer.echo(f"Error: index unavailable at {index.db_path}", err=True)
        raise typer.Exit(1)


def _parse_dir_spec(spec: str) -> MemoryDir:
    """DIR[:scope[:project_root]] -> MemoryDir."""
    parts = spec.split(":", 2)
    path = Path(parts[0]).expanduser()
    scope = parts[1] if len(parts) > 1 and parts[1] else SCOPE_GLOBAL
    if scope not in VALID_SCOPES:
        typer.echo(
            f"Error: invalid scope '{scope}' in '{spec}'. Use one of: {', '.join(sorted(VALID_SCOPES))}",
            err=True,
        )
        raise typer.Exit(1)
    project_root = parts[2] if len(parts) > 2 and parts[2] else None
    return MemoryDir(path=path, scope=scope, project_root=project_root)


@contextmanager
def _open_provider(config: StoreConfig, enabled: bool = True) -> Iterator[Optional[EmbeddingProvider]]:
    """The configured embedding provider (or None); closed on exit."""
    provider = resolve_embedding_provider(config.embedding) if enabled else None
    try:
        yield provider
    finally:
        if provider is not None:
            provider.close()


@app.command()
def sync(
    dirs: Annotated[list[str], typer.Argument(
        help="Scope directories as DIR[:scope[:project_root]] (scope defaults to global)"
    )],
):
    """
    Reconcile the index with the note files on disk.

    \b
    Examples:
        memindex sync ~/.notes                       # global scope
        memindex sync ./.notes:project:$PWD          # project scope
    """
    memory_dirs = [_parse_dir_spec(d) for d in dirs]
    with _open_store() as (config, index):
        _require_ready(index)
        result = index.sync_files(memory_dirs)

    if _get_json_output():
        typer.echo(json.dumps(result.to_dict()))
    else:
        typer.echo(
            f"added {result.added}, updated {result.updated}, "
            f"removed {result.removed}, unchanged {result.unchanged}"
        )


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query text")],
    limit: LimitOption = 5,
    scope: ScopeOption = None,
    project_root: Annotated[Optional[str], typer.Option(
        "--project-root",
        help="For project-scope notes, only this project"
    )] = None,
    fts_only: Annotated[bool, typer.Option(
        "--fts-only",
        help="Keyword search only (skip the embedding provider)"
    )] = False,
):
    """
    Search notes by keyword and meaning.

    \b
    Examples:
        memindex search "authentication"
        memindex search "auth" --scope project --project-root $PWD
    """
    if scope is not None and scope not in VALID_SCOPES:
        typer.echo(f"Error: invalid scope '{scope}'", err=True)
        raise typer.Exit(1)

    with _open_store() as (config, index):
        _require_ready(index)
        with _open_provider(config, enabled=not fts_only) as provider:
            hits = hybrid_search(
                index, provider, query,
                limit=limit,
                scope=scope,
                project_root=project_root,
                weights=config.hybrid,
            )

    if _get_json_output():
        typer.echo(json.dumps([h.to_dict() for h in hits], indent=2))
        return
    if not hits:
        typer.echo("No results.")
        return
    for hit in hits:
        first_line = next((l.strip() for l in hit.text.split("\n") if l.strip()), "")
        typer.echo(f"{hit.score:.3f}  {hit.id}  ({hit.scope}, lines {hit.start_line}-{hit.end_line})")
        if first_line:
            typer.echo(f"  > {first_line[:120]}")


@app.command()
def check(
    file: Annotated[Path, typer.Argument(help="Note file to check before storing it")],
):
    """Report whether a note duplicates one already indexed."""
    try:
        raw = file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        typer.echo(f"Error: cannot read {file}: {e}", err=True)
        raise typer.Exit(1)
    try:
        parsed = parse_memory_file(str(file), raw)
    except NoteParseError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    content = parsed.content if parsed else raw

    with _open_store() as (config, index):
        _require_ready(index)
        with _open_provider(config, enabled=config.dedup.tag_and_defer) as provider:
            result = check_duplicate(content, hash_content(raw), index, provider, config.dedup)

    if _get_json_output():
        typer.echo(json.dumps({
            "is_duplicate": result.is_duplicate,
            "exact_match": result.exact_match,
            "near_duplicates": [
                {"id": d.id, "path": d.path, "similarity": round(d.similarity, 4), "method": d.method}
                for d in result.near_duplicates
            ],
        }, indent=2))
        return
    if result.is_duplicate:
        typer.echo(f"Exact duplicate of {result.exact_match}")
    elif result.near_duplicates:
        for dup in result.near_duplicates:
            typer.echo(f"{dup.similarity:.3f}  {dup.id}  ({dup.method})")
    else:
        typer.echo("No duplicates.")


@app.command()
def embed():
    """Embed chunks that have no cached vector, then prune stale vectors."""
    with _open_store() as (config, index):
        _require_ready(index)
        with _open_provider(config) as provider:
            if provider is None:
                typer.echo(
                    f"Error: embedding provider '{config.embedding.provider}' is not available",
                    err=True,
                )
                raise typer.Exit(1)
            cached = refresh_embeddings(index, provider)
        pruned = index.prune_embedding_cache()

    if _get_json_output():
        typer.echo(json.dumps({"cached": cached, "pruned": pruned}))
    else:
        typer.echo(f"cached {cached}, pruned {pruned}")


@app.command()
def stats():
    """Show index statistics."""
    with _open_store() as (config, index):
        index.init()
        result = index.get_stats()

    if _get_json_output():
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return
    typer.echo(f"Files:       {result.files_indexed}")
    typer.echo(f"Chunks:      {result.chunks_indexed}")
    typer.echo(f"Embeddings:  {result.embeddings_cached}")
    typer.echo(f"FTS5:        {'yes' if result.fts_available else 'no'}")
    typer.echo(f"Size:        {result.db_size_bytes} bytes")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="memindex CLI", store_path=get_store_path(_store_override))
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
