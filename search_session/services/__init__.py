from search_session.services.cache import ResultCache
from search_session.services.engine import SearchHooks, SearchSessionEngine
from search_session.services.registry import SessionRegistry
from search_session.services.suggestions import SuggestionController
from search_session.services.url_sync import (
    InMemoryKeyValueStore,
    KeyValueStore,
    QueryStringStore,
    UrlSyncAdapter,
)
from search_session.services.validation import validate

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "QueryStringStore",
    "ResultCache",
    "SearchHooks",
    "SearchSessionEngine",
    "SessionRegistry",
    "SuggestionController",
    "UrlSyncAdapter",
    "validate",
]
