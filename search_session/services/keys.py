"""Canonical request/cache keys."""

from __future__ import annotations

import json
from typing import Any, Mapping

from search_session.config import PaginationMode

SearchKey = tuple[Any, ...]


def stable_serialize(filters: Mapping[str, Any]) -> str:
    # sorted keys so equivalent filter sets always produce the same string
    return json.dumps(dict(filters), sort_keys=True, separators=(",", ":"), default=str)


def build_key(
    session_id: str,
    mode: PaginationMode,
    trimmed_term: str,
    filters: Mapping[str, Any],
    page: int,
    page_size: int,
    cursor: str | None,
) -> SearchKey:
    base = (session_id, "search", trimmed_term, stable_serialize(filters))
    if mode == "pagination":
        return (*base, page, page_size)
    return (*base, cursor)


def join_key(key: SearchKey) -> str:
    """Flatten a key tuple into the string used by the cache."""

    return "-".join("" if part is None else str(part) for part in key)


__all__ = ["SearchKey", "build_key", "join_key", "stable_serialize"]
