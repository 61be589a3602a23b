"""
Note file parsing.

Notes are markdown files with an optional YAML frontmatter block:

    ---
    title: My Memory
    type: note
    tags: [pattern, convention]
    created: 2026-01-29T10:00:00.000Z
    updated: 2026-01-29T10:00:00.000Z
    ---

    Body in markdown...

The indexer only needs the metadata fields and the body; writing notes is
the note store's job.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

import yaml

from .types import note_id

NOTE_TYPES = frozenset({"note", "session"})
DEFAULT_NOTE_TYPE = "note"

# Frontmatter key a writer sets when it stored a near-duplicate
DUPLICATE_OF_KEY = "potential-duplicate-of"

_FRONTMATTER_RE = re.compile(r"^---\n(.*?)\n---\n?(.*)$", re.DOTALL)


class NoteParseError(ValueError):
    """A note's frontmatter block exists but cannot be read."""


@dataclass
class ParsedNote:
    """Metadata and body of a note file."""
    id: str
    title: str
    type: str
    tags: list[str] = field(default_factory=list)
    content: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    # Near-duplicate ids recorded by the writer (see DedupResult.to_frontmatter)
    duplicate_of: Optional[str] = None


def _as_text(value: Any) -> Optional[str]:
    """Normalize a scalar frontmatter value (YAML turns timestamps into datetimes)."""
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v).strip() for v in value) or None
    return str(value).strip() or None


def _parse_tags(value: Any) -> list[str]:
    """Accept `[a, b]`, `a, b` or a YAML list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).strip().lstrip("[").rstrip("]").split(",")
    return [str(t).strip() for t in items if str(t).strip()]


def parse_memory_file(path: str, raw: str) -> Optional[ParsedNote]:
    """
    Parse a note file into metadata and body.

    Args:
        path: File path (its stem becomes the note id and default title)
        raw: Full file text

    Returns:
        ParsedNote, or None when the file has no frontmatter block.

    Raises:
        NoteParseError: If the frontmatter is not valid YAML or not a mapping
    """
    match = _FRONTMATTER_RE.match(raw.replace("\r\n", "\n"))
    if not match:
        return None

    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise NoteParseError(f"Invalid frontmatter in {path}: {e}") from e
    if not isinstance(meta, dict):
        raise NoteParseError(f"Frontmatter in {path} is not a mapping")

    id = note_id(path)
    note_type = _as_text(meta.get("type"))
    if note_type not in NOTE_TYPES:
        note_type = DEFAULT_NOTE_TYPE

    return ParsedNote(
        id=id,
        title=_as_text(meta.get("title")) or id,
        type=note_type,
        tags=_parse_tags(meta.get("tags")),
        content=match.group(2).strip(),
        created_at=_as_text(meta.get("created")),
        updated_at=_as_text(meta.get("updated")),
        duplicate_of=_as_text(meta.get(DUPLICATE_OF_KEY)),
    )
