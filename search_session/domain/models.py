"""Pydantic models shared across the engine and its collaborators."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from search_session.utils.clock import utc_now


class ResultSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: list[Any] = Field(default_factory=list)
    total: int | None = Field(default=None, ge=0)
    has_more: bool | None = None
    next_cursor: str | None = None

    def append_page(self, page: "ResultSet") -> "ResultSet":
        """Concatenate ``page.data`` after ours; other fields come from ``page``."""

        return page.model_copy(update={"data": [*self.data, *page.data]})


class SearchError(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    code: str | None = None
    kind: Literal["validation", "network", "server", "unknown"] = "unknown"
    timestamp: datetime = Field(default_factory=utc_now)


class Suggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    label: str | None = None
    category: str | None = None
    metadata: Any = None


class LoadingFlags(BaseModel):
    initial: bool = False
    searching: bool = False
    loading_more: bool = False
    refreshing: bool = False
    suggestions: bool = False

    @property
    def any(self) -> bool:
        return any(getattr(self, name) for name in type(self).model_fields)


class SuggestionState(BaseModel):
    items: list[Suggestion] = Field(default_factory=list)
    selected_index: int = -1
    visible: bool = False


class SearchMetrics(BaseModel):
    total_searches: int = 0
    average_latency_ms: float = 0.0

    def record(self, latency_ms: float) -> None:
        count = self.total_searches
        self.average_latency_ms = (self.average_latency_ms * count + latency_ms) / (count + 1)
        self.total_searches = count + 1


class CacheStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    size: int = 0
    hits: int = 0
    misses: int = 0
    keys: tuple[str, ...] = ()


class DebugInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    term: str
    debounced_term: str
    validation_errors: tuple[str, ...]
    loading: LoadingFlags
    cache_stats: CacheStats
    search_history: tuple[str, ...]
    metrics: SearchMetrics


__all__ = [
    "CacheStats",
    "DebugInfo",
    "LoadingFlags",
    "ResultSet",
    "SearchError",
    "SearchMetrics",
    "Suggestion",
    "SuggestionState",
]
