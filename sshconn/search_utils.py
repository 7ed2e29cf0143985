from __future__ import annotations

from typing import Any, Iterable, List


def record_matches(record: Any, query: str) -> bool:
    """Return True if a host record matches the search query.

    The search checks the record's alias, address and user in a
    case-insensitive manner. An empty query matches everything.
    """
    if not query:
        return True
    text = query.lower()
    fields = [
        getattr(record, "alias", ""),
        getattr(record, "address", ""),
        getattr(record, "user", ""),
    ]
    return any(text in (field or "").lower() for field in fields)


def filter_records(records: Iterable[Any], query: str) -> List[Any]:
    """Return the matching records, preserving their order."""
    return [record for record in records if record_matches(record, query)]


__all__ = ["record_matches", "filter_records"]
