"""Headless search session engine: debounced, cached, paginated search state."""

from search_session.config import (
    FilterDefinition,
    RealTimeConfig,
    SearchConfig,
    ValidationRule,
    get_settings,
)
from search_session.domain.models import ResultSet, SearchError, Suggestion
from search_session.services import (
    InMemoryKeyValueStore,
    QueryStringStore,
    ResultCache,
    SearchHooks,
    SearchSessionEngine,
    SessionRegistry,
    UrlSyncAdapter,
)
from search_session.services.exceptions import SearchFailure

__all__ = [
    "FilterDefinition",
    "InMemoryKeyValueStore",
    "QueryStringStore",
    "RealTimeConfig",
    "ResultCache",
    "ResultSet",
    "SearchConfig",
    "SearchError",
    "SearchFailure",
    "SearchHooks",
    "SearchSessionEngine",
    "SessionRegistry",
    "Suggestion",
    "UrlSyncAdapter",
    "ValidationRule",
    "get_settings",
]
