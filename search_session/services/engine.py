"""Search session state machine.

One :class:`SearchSessionEngine` owns the state of a single search box:
the raw and debounced term, filters, page or cursor, results, error,
loading flags, suggestions, history and latency metrics. State only changes
through the engine's methods; subscribers are notified after each change.

Overlapping requests are ordered by a generation counter: every issued
search or load-more takes a new generation, and a completion only writes
its outcome while its generation is still the latest one.
"""

from __future__ import annotations

import asyncio
import inspect
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping

from search_session.config import FilterDefinition, SearchConfig, get_settings
from search_session.domain.models import (
    DebugInfo,
    LoadingFlags,
    ResultSet,
    SearchError,
    SearchMetrics,
    Suggestion,
)
from search_session.logging import logger
from search_session.services.cache import ResultCache
from search_session.services.keys import SearchKey, build_key, join_key
from search_session.services.realtime import Connector, RealTimeLink
from search_session.services.suggestions import Direction, SuggestionController, coerce_suggestion
from search_session.services.url_sync import KeyValueStore, UrlSyncAdapter
from search_session.services.validation import validate
from search_session.utils.clock import Clock, elapsed_ms, utc_now
from search_session.utils.debounce import Debouncer

HISTORY_LIMIT = 10
ERROR_KINDS = {"validation", "network", "server", "unknown"}

Listener = Callable[["SearchSessionEngine"], None]


async def _empty_results(*_: Any) -> ResultSet:
    return ResultSet()


async def _no_suggestions(_: str) -> list[Suggestion]:
    return []


def _ignore(*_: Any) -> None:
    return None


@dataclass(slots=True)
class SearchHooks:
    """External collaborators supplied by the embedding application."""

    on_search: Callable[[str, dict[str, Any]], Awaitable[Any]] = _empty_results
    on_suggestions: Callable[[str], Awaitable[Iterable[Any]]] = _no_suggestions
    on_load_more: Callable[[], Awaitable[Any]] = _empty_results
    on_error: Callable[[SearchError], Any] = _ignore
    on_cache_hit: Callable[[str], Any] = _ignore


def coerce_result(value: Any) -> ResultSet:
    if isinstance(value, ResultSet):
        return value
    return ResultSet.model_validate(value)


class SearchSessionEngine:
    def __init__(
        self,
        config: SearchConfig | None = None,
        hooks: SearchHooks | None = None,
        *,
        session_id: str = "default",
        store: KeyValueStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.session_id = session_id
        self.hooks = hooks or SearchHooks()
        self._config = config or get_settings().engine
        self._clock = clock or time.monotonic

        self.term = ""
        self.debounced_term = ""
        self.filters: dict[str, Any] = {}
        self.page = 1
        self.cursor: str | None = None
        self.results: ResultSet | None = None
        self.error: SearchError | None = None
        self.loading = LoadingFlags()
        self.history: list[str] = []
        self.metrics = SearchMetrics()

        self.cache: ResultCache[ResultSet] = ResultCache(
            self._config.cache_size, self._config.cache_ttl_ms, clock=self._clock
        )
        self.suggestions = SuggestionController(
            self.loading,
            self._fetch_suggestions,
            max_suggestions=self._config.max_suggestions,
            enabled=self._config.enable_suggestions,
            on_change=self._notify,
        )
        self._search_debouncer: Debouncer[str] = Debouncer(
            self._config.debounce_ms, self._apply_debounced_term
        )
        self._suggestion_debouncer: Debouncer[str] = Debouncer(
            self._config.suggestion_debounce_ms, self.suggestions.load
        )
        self.url_sync = UrlSyncAdapter(store, session_id) if store is not None else None

        self._generation = 0
        self._flag_owners: dict[str, int] = {}
        self._listeners: list[Listener] = []
        self._realtime_connected = False
        self._background: set[asyncio.Future[Any]] = set()

    # ------------------------------------------------------------------ #
    # Derived values

    @property
    def config(self) -> SearchConfig:
        return self._config

    @property
    def trimmed_term(self) -> str:
        return self.debounced_term.strip()

    @property
    def is_empty_search(self) -> bool:
        return self.trimmed_term == ""

    @property
    def validation_errors(self) -> list[str]:
        config = self._config
        return validate(self.term, config.validation_rules, config.min_length, config.max_length)

    @property
    def search_key(self) -> SearchKey:
        return self._build_key(self.trimmed_term)

    @property
    def page_size(self) -> int:
        return self._config.page_size

    @property
    def search_mode(self) -> str:
        return self._config.search_mode

    @property
    def filter_definitions(self) -> tuple[FilterDefinition, ...]:
        return self._config.filters

    @property
    def total_pages(self) -> int:
        if self.results is None or not self.results.total:
            return 0
        return math.ceil(self.results.total / self._config.page_size)

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    @property
    def has_more(self) -> bool:
        return self.results is not None and bool(self.results.has_more)

    @property
    def is_realtime_connected(self) -> bool:
        return self._realtime_connected

    @property
    def debug_info(self) -> DebugInfo:
        return DebugInfo(
            session_id=self.session_id,
            term=self.term,
            debounced_term=self.debounced_term,
            validation_errors=tuple(self.validation_errors),
            loading=self.loading.model_copy(),
            cache_stats=self.cache.stats(),
            search_history=tuple(self.history),
            metrics=self.metrics.model_copy(),
        )

    # ------------------------------------------------------------------ #
    # Lifecycle and observers

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def attach(self) -> None:
        """Import and start mirroring URL state when sync is enabled."""

        if not self._config.enable_url_sync:
            return
        if self.url_sync is None:
            logger.warning("url_sync_without_store", session_id=self.session_id)
            return
        self.url_sync.attach(self)

    async def aclose(self) -> None:
        self._search_debouncer.cancel()
        self._suggestion_debouncer.cancel()
        self.suggestions.invalidate()
        self._generation += 1
        if self.url_sync is not None:
            self.url_sync.detach()
        self._listeners.clear()

    def update_config(self, **changes: Any) -> SearchConfig:
        """Swap in a new configuration derived from the current one."""

        config = self._config.evolve(**changes)
        self._config = config
        self._search_debouncer.delay_ms = config.debounce_ms
        self._suggestion_debouncer.delay_ms = config.suggestion_debounce_ms
        self.cache.resize(config.cache_size, config.cache_ttl_ms)
        self.suggestions.enabled = config.enable_suggestions
        self.suggestions.max_suggestions = config.max_suggestions
        logger.debug("search_config_updated", session_id=self.session_id, fields=sorted(changes))
        self._notify()
        return config

    def realtime_link(self, connect: Connector) -> RealTimeLink:
        return RealTimeLink(self._config.realtime, connect, on_status=self.set_realtime_connected)

    def set_realtime_connected(self, connected: bool) -> None:
        self._realtime_connected = connected
        self._notify()

    # ------------------------------------------------------------------ #
    # Term, filters, pagination

    def set_term(self, term: str) -> None:
        self.term = term
        self._reset_position()
        self.suggestions.reset_selection()
        self._search_debouncer.push(term)
        self._suggestion_debouncer.push(term)
        self._notify()

    async def flush_debounce(self) -> None:
        """Apply pending debounced values now instead of waiting."""

        await self._search_debouncer.flush()
        await self._suggestion_debouncer.flush()

    def restore(
        self,
        *,
        term: str | None = None,
        page: int | None = None,
        filters: Mapping[str, Any] | None = None,
    ) -> None:
        """Apply externally stored state in one step, without position resets."""

        if term is None and page is None and filters is None:
            return
        if term is not None:
            self.term = term
            self._search_debouncer.push(term)
            self._suggestion_debouncer.push(term)
        if filters is not None:
            self.filters = {key: value for key, value in filters.items() if value is not None}
        if page is not None:
            self.page = max(1, page)
        self._notify()

    def set_filter(self, key: str, value: Any) -> None:
        if value is None:
            self.remove_filter(key)
            return
        if key in self.filters and self.filters[key] == value:
            return
        self.filters = {**self.filters, key: value}
        self._reset_position()
        self._notify()

    def remove_filter(self, key: str) -> None:
        if key not in self.filters:
            return
        self.filters = {name: value for name, value in self.filters.items() if name != key}
        self._reset_position()
        self._notify()

    def clear_filters(self) -> None:
        if not self.filters:
            return
        self.filters = {}
        self._reset_position()
        self._notify()

    def next_page(self) -> None:
        if self.has_next_page:
            self.page += 1
            self._notify()

    def prev_page(self) -> None:
        if self.has_prev_page:
            self.page -= 1
            self._notify()

    def set_page(self, page: int) -> None:
        self.page = max(1, min(page, self.total_pages))
        self._notify()

    def go_to_first_page(self) -> None:
        self.page = 1
        self._notify()

    def go_to_last_page(self) -> None:
        self.page = max(self.total_pages, 1)
        self._notify()

    def set_cursor(self, cursor: str | None) -> None:
        self.cursor = cursor
        self._notify()

    # ------------------------------------------------------------------ #
    # Requests

    async def search(self, term: str | None = None) -> None:
        resolved = term if term is not None else self.trimmed_term
        if not resolved or not resolved.strip() or self.validation_errors:
            return

        config = self._config
        cache_key = join_key(self._build_key(resolved.strip()))

        if config.enable_caching:
            cached = self.get_cached_results(cache_key)
            if cached is not None:
                # a cache hit is the newest outcome; older in-flight calls lose
                self._next_generation()
                self._flag_owners.pop("searching", None)
                self.loading.searching = False
                self.results = cached
                self._notify()
                return

        generation = self._next_generation()
        self._raise_flag("searching", generation)
        self.error = None
        self._notify()

        started = self._clock()
        try:
            result = coerce_result(await self.hooks.on_search(resolved, dict(self.filters)))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._is_current(generation):
                self._fail(exc, "Search failed", term=resolved)
            else:
                logger.debug("search_error_discarded", session_id=self.session_id, term=resolved)
        else:
            if self._is_current(generation):
                latency_ms = elapsed_ms(started, self._clock())
                self.results = result
                if config.enable_caching:
                    self.cache.set(cache_key, result)
                self._remember(resolved)
                self.metrics.record(latency_ms)
                logger.info(
                    "search_completed",
                    session_id=self.session_id,
                    term=resolved,
                    items=len(result.data),
                    latency_ms=round(latency_ms, 2),
                )
            else:
                logger.debug(
                    "search_response_discarded",
                    session_id=self.session_id,
                    term=resolved,
                    generation=generation,
                    current=self._generation,
                )
        finally:
            self._lower_flag("searching", generation)
            self._notify()

    async def load_more(self) -> None:
        if self._config.mode != "infinite" or not self.has_more:
            return
        if "searching" in self._flag_owners:
            # the current results belong to a query that is being replaced
            logger.debug("load_more_skipped_during_search", session_id=self.session_id)
            return

        generation = self._next_generation()
        self._raise_flag("loading_more", generation)
        self._notify()
        try:
            page = coerce_result(await self.hooks.on_load_more())
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._is_current(generation):
                self._fail(exc, "Load more failed")
        else:
            if self._is_current(generation):
                self.results = self.results.append_page(page) if self.results else page
                if page.next_cursor:
                    self.cursor = page.next_cursor
            else:
                logger.debug("load_more_response_discarded", session_id=self.session_id)
        finally:
            self._lower_flag("loading_more", generation)
            self._notify()

    async def retry_search(self) -> None:
        self.clear_error()
        await self.search()

    async def refresh(self) -> None:
        self.loading.refreshing = True
        self._notify()
        try:
            self.clear_cache()
            await self.search()
        finally:
            self.loading.refreshing = False
            self._notify()

    def reset(self) -> None:
        self._search_debouncer.cancel()
        self._suggestion_debouncer.cancel()
        self._next_generation()
        for flag in ("searching", "loading_more"):
            setattr(self.loading, flag, False)
        self._flag_owners.clear()

        self.term = ""
        self.debounced_term = ""
        self.filters = {}
        self.page = 1
        self.cursor = None
        self.results = None
        self.error = None
        self.suggestions.clear()
        self._notify()

    # ------------------------------------------------------------------ #
    # Error, loading and cache helpers

    def clear_error(self) -> None:
        self.error = None
        self._notify()

    def set_loading_state(self, name: str, value: bool) -> None:
        if name not in LoadingFlags.model_fields:
            raise ValueError(f"Unknown loading flag: {name!r}")
        setattr(self.loading, name, value)
        self._notify()

    def get_cached_results(self, key: str) -> ResultSet | None:
        cached = self.cache.get(key)
        if cached is None:
            return None
        logger.debug("search_cache_hit", session_id=self.session_id, key=key)
        self._fire("on_cache_hit", key)
        return cached

    def clear_cache(self) -> None:
        self.cache.clear()
        self._notify()

    # ------------------------------------------------------------------ #
    # Suggestions and keyboard

    def navigate_suggestions(self, direction: Direction) -> None:
        self.suggestions.navigate(direction)

    def select_suggestion(self, suggestion: Suggestion | str | Mapping[str, Any]) -> None:
        item = coerce_suggestion(suggestion)
        self.set_term(item.value)
        # the picked value should not immediately reopen the list
        self._suggestion_debouncer.cancel()
        self.suggestions.invalidate()
        self.loading.suggestions = False
        self.suggestions.hide()

    def hide_suggestions(self) -> None:
        self.suggestions.hide()

    async def handle_key(self, key: str) -> bool:
        """Apply combobox keyboard behaviour; return True when the key was used."""

        if not self.suggestions.visible:
            if key == "Enter":
                await self.search()
                return True
            return False

        if key == "ArrowDown":
            self.navigate_suggestions("down")
        elif key == "ArrowUp":
            self.navigate_suggestions("up")
        elif key == "Enter":
            selected = self.suggestions.selected
            if selected is not None:
                self.select_suggestion(selected)
            else:
                await self.search()
        elif key == "Escape":
            self.hide_suggestions()
        else:
            return False
        return True

    # ------------------------------------------------------------------ #
    # Internals

    def _build_key(self, term: str) -> SearchKey:
        config = self._config
        return build_key(
            self.session_id,
            config.mode,
            term,
            self.filters,
            self.page,
            config.page_size,
            self.cursor,
        )

    def _apply_debounced_term(self, value: str) -> None:
        self.debounced_term = value
        self._notify()

    async def _fetch_suggestions(self, term: str) -> Iterable[Any]:
        return await self.hooks.on_suggestions(term)

    def _reset_position(self) -> None:
        if self._config.mode == "pagination":
            self.page = 1
        else:
            self.cursor = None

    def _remember(self, term: str) -> None:
        self.history = [term, *(item for item in self.history if item != term)][:HISTORY_LIMIT]

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _raise_flag(self, name: str, generation: int) -> None:
        self._flag_owners[name] = generation
        setattr(self.loading, name, True)

    def _lower_flag(self, name: str, generation: int) -> None:
        # only the call that raised the flag most recently may lower it
        if self._flag_owners.get(name) != generation:
            return
        del self._flag_owners[name]
        setattr(self.loading, name, False)

    def _fail(self, exc: Exception, default_message: str, **context: Any) -> None:
        message = getattr(exc, "message", None) or str(exc) or default_message
        code = getattr(exc, "code", None)
        kind = getattr(exc, "kind", None) or "network"
        if kind not in ERROR_KINDS:
            kind = "unknown"
        error = SearchError(
            message=str(message),
            code=str(code) if code is not None else None,
            kind=kind,
            timestamp=utc_now(),
        )
        self.error = error
        logger.warning(
            "search_failed",
            session_id=self.session_id,
            kind=error.kind,
            code=error.code,
            error=error.message,
            **context,
        )
        self._fire("on_error", error)

    def _fire(self, hook_name: str, *args: Any) -> None:
        hook = getattr(self.hooks, hook_name)
        try:
            result = hook(*args)
        except Exception:
            logger.exception("session_hook_failed", session_id=self.session_id, hook=hook_name)
            return
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._background.add(future)
            future.add_done_callback(lambda done: self._hook_finished(hook_name, done))

    def _hook_finished(self, hook_name: str, future: asyncio.Future[Any]) -> None:
        self._background.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "session_hook_failed",
                session_id=self.session_id,
                hook=hook_name,
                error=str(exc),
                exc_info=exc,
            )

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("session_listener_failed", session_id=self.session_id)


__all__ = ["HISTORY_LIMIT", "SearchHooks", "SearchSessionEngine", "coerce_result"]
