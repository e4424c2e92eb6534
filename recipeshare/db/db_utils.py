"""Database utility functions"""

from datetime import datetime, timezone
from typing import Iterator, List, Optional, Sequence, TypeVar

T = TypeVar("T")

# Stay well below SQLite's bound-parameter limit
IN_CLAUSE_CHUNK_SIZE = 500


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with microseconds.

    Stored timestamps are text in the same fixed-width format on every
    backend, so comparing and ordering them as strings matches time order.
    """
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def normalize_tag_name(name: Optional[str]) -> str:
    """Trim surrounding whitespace from a tag name"""
    if name is None:
        return ""
    return name.strip()


def tag_name_key(name: str) -> str:
    """Case-insensitive uniqueness key for a tag name"""
    return normalize_tag_name(name).casefold()


def search_key(text: Optional[str]) -> str:
    """Case-folded copy of recipe text, stored for owner-list search"""
    return (text or "").casefold()


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally (escape char is backslash)"""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def chunked(values: Sequence[T], size: int = IN_CLAUSE_CHUNK_SIZE) -> Iterator[List[T]]:
    """Yield successive slices of values, each at most size long.

    Args:
        values: the full sequence, e.g. recipe ids for an IN (...) query
        size: largest chunk to yield
    """
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(values), size):
        yield list(values[start:start + size])
