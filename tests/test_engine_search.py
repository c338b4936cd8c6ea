"""Search, load-more and error handling of the session engine."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from search_session.domain.models import ResultSet
from search_session.services.engine import SearchHooks
from search_session.services.exceptions import SearchFailure


def _recording_hooks(clock=None, latency: float = 0.0, **overrides) -> SimpleNamespace:
    recorded = SimpleNamespace(calls=[], errors=[], cache_hits=[])

    async def on_search(term, filters):
        recorded.calls.append((term, filters))
        if clock is not None:
            clock.advance(latency)
        return {"data": [f"{term}-1", f"{term}-2"], "total": 2}

    recorded.hooks = SearchHooks(
        on_search=overrides.get("on_search", on_search),
        on_load_more=overrides.get("on_load_more", SearchHooks().on_load_more),
        on_error=recorded.errors.append,
        on_cache_hit=recorded.cache_hits.append,
    )
    return recorded


async def _type(engine, term: str) -> None:
    engine.set_term(term)
    await engine.flush_debounce()


@pytest.mark.asyncio
async def test_search_populates_results_history_and_metrics(make_engine, clock):
    recorded = _recording_hooks(clock, latency=0.25)
    engine = make_engine(recorded.hooks)

    await _type(engine, "  shoes ")
    await engine.search()

    assert recorded.calls == [("shoes", {})]
    assert engine.results == ResultSet(data=["shoes-1", "shoes-2"], total=2)
    assert engine.history == ["shoes"]
    assert engine.metrics.total_searches == 1
    assert engine.metrics.average_latency_ms == pytest.approx(250.0)
    assert engine.loading.searching is False
    assert engine.error is None


@pytest.mark.asyncio
async def test_average_latency_is_running_mean(make_engine, clock):
    latencies = [0.1, 0.3]

    async def on_search(term, filters):
        clock.advance(latencies.pop(0))
        return ResultSet(data=[term])

    engine = make_engine(SearchHooks(on_search=on_search))
    await engine.search("a")
    await engine.search("b")

    assert engine.metrics.total_searches == 2
    assert engine.metrics.average_latency_ms == pytest.approx(200.0)


@pytest.mark.asyncio
async def test_search_is_noop_for_empty_term(make_engine):
    recorded = _recording_hooks()
    engine = make_engine(recorded.hooks)

    await engine.search()
    await _type(engine, "   ")
    await engine.search()

    assert recorded.calls == []
    assert engine.results is None


@pytest.mark.asyncio
async def test_search_is_blocked_by_validation(make_engine):
    recorded = _recording_hooks()
    engine = make_engine(recorded.hooks, min_length=3)

    await _type(engine, "ab")

    assert engine.validation_errors == ["Search term must be at least 3 characters"]
    await engine.search()
    assert recorded.calls == []
    assert engine.error is None


@pytest.mark.asyncio
async def test_cache_hit_skips_callback_metrics_and_history(make_engine):
    recorded = _recording_hooks()
    engine = make_engine(recorded.hooks)
    await _type(engine, "shoes")

    await engine.search()
    engine.results = None
    await engine.search()

    assert len(recorded.calls) == 1
    assert engine.results.data == ["shoes-1", "shoes-2"]
    assert recorded.cache_hits == ["default-search-shoes-{}-1-20"]
    assert engine.metrics.total_searches == 1
    assert engine.history == ["shoes"]
    assert engine.cache.stats().hits == 1


@pytest.mark.asyncio
async def test_disabled_cache_always_calls_back(make_engine):
    recorded = _recording_hooks()
    engine = make_engine(recorded.hooks, enable_caching=False)

    await engine.search("shoes")
    await engine.search("shoes")

    assert len(recorded.calls) == 2
    assert len(engine.cache) == 0
    assert engine.history == ["shoes"]


@pytest.mark.asyncio
async def test_filters_change_cache_key_and_are_passed_through(make_engine):
    recorded = _recording_hooks()
    engine = make_engine(recorded.hooks)
    await _type(engine, "shoes")

    await engine.search()
    engine.set_filter("color", "red")
    await engine.search()

    assert recorded.calls == [("shoes", {}), ("shoes", {"color": "red"})]


@pytest.mark.asyncio
async def test_history_is_deduplicated_and_capped(make_engine):
    engine = make_engine(_recording_hooks().hooks, enable_caching=False)

    for index in range(12):
        await engine.search(f"t{index}")
    await engine.search("t5")

    assert engine.history[0] == "t5"
    assert len(engine.history) == 10
    assert engine.history.count("t5") == 1


@pytest.mark.asyncio
async def test_classified_failure_is_stored_and_reported(make_engine):
    async def on_search(term, filters):
        raise SearchFailure("Service unavailable", code="503", kind="server")

    recorded = _recording_hooks(on_search=on_search)
    engine = make_engine(recorded.hooks)
    engine.results = ResultSet(data=["previous"])

    await engine.search("shoes")

    assert engine.error.message == "Service unavailable"
    assert engine.error.code == "503"
    assert engine.error.kind == "server"
    assert recorded.errors == [engine.error]
    assert engine.results.data == ["previous"]
    assert engine.loading.searching is False
    assert engine.history == []


@pytest.mark.asyncio
async def test_unclassified_failure_defaults_to_network(make_engine):
    async def on_search(term, filters):
        raise RuntimeError()

    recorded = _recording_hooks(on_search=on_search)
    engine = make_engine(recorded.hooks)

    await engine.search("shoes")

    assert engine.error.kind == "network"
    assert engine.error.message == "Search failed"
    assert engine.error.timestamp.tzinfo is not None


@pytest.mark.asyncio
async def test_unrecognised_failure_kind_maps_to_unknown(make_engine):
    class WeirdError(Exception):
        kind = "teapot"

    async def on_search(term, filters):
        raise WeirdError("odd")

    engine = make_engine(_recording_hooks(on_search=on_search).hooks)
    await engine.search("shoes")

    assert engine.error.kind == "unknown"
    assert engine.error.message == "odd"


@pytest.mark.asyncio
async def test_failing_error_hook_does_not_escape(make_engine):
    def on_error(error):
        raise RuntimeError("hook broke")

    async def on_search(term, filters):
        raise SearchFailure("boom")

    engine = make_engine(SearchHooks(on_search=on_search, on_error=on_error))
    await engine.search("shoes")

    assert engine.error.message == "boom"


@pytest.mark.asyncio
async def test_async_error_hook_failure_is_logged(make_engine, monkeypatch):
    events = []

    def record(event, **kwargs):
        events.append((event, kwargs.get("hook")))

    fake_logger = SimpleNamespace(debug=record, info=record, warning=record, error=record, exception=record)
    monkeypatch.setattr("search_session.services.engine.logger", fake_logger)

    async def on_error(error):
        raise RuntimeError("hook broke")

    async def on_search(term, filters):
        raise SearchFailure("boom")

    engine = make_engine(SearchHooks(on_search=on_search, on_error=on_error))
    await engine.search("shoes")
    assert len(engine._background) == 1

    for _ in range(3):
        await asyncio.sleep(0)

    assert engine._background == set()
    assert ("session_hook_failed", "on_error") in events


@pytest.mark.asyncio
async def test_latest_issued_search_wins_when_resolved_out_of_order(make_engine, gated_search):
    engine = make_engine(SearchHooks(on_search=gated_search))

    first = asyncio.create_task(engine.search("first"))
    await asyncio.sleep(0)
    second = asyncio.create_task(engine.search("second"))
    await asyncio.sleep(0)
    assert engine.loading.searching is True

    gated_search.release("second")
    await second
    assert engine.results.data == ["second"]
    assert engine.loading.searching is False

    gated_search.release("first")
    await first

    assert engine.results.data == ["second"]
    assert engine.history == ["second"]
    assert engine.metrics.total_searches == 1
    assert engine.loading.searching is False
    assert "default-search-first-{}-1-20" not in engine.cache


@pytest.mark.asyncio
async def test_older_search_keeps_spinner_off_until_latest_finishes(make_engine, gated_search):
    engine = make_engine(SearchHooks(on_search=gated_search))

    first = asyncio.create_task(engine.search("first"))
    await asyncio.sleep(0)
    second = asyncio.create_task(engine.search("second"))
    await asyncio.sleep(0)

    gated_search.release("first")
    await first
    assert engine.results is None
    assert engine.loading.searching is True

    gated_search.release("second")
    await second
    assert engine.results.data == ["second"]
    assert engine.loading.searching is False


@pytest.mark.asyncio
async def test_stale_failure_is_discarded(make_engine, gated_search):
    errors = []
    engine = make_engine(SearchHooks(on_search=gated_search, on_error=errors.append))

    first = asyncio.create_task(engine.search("first"))
    await asyncio.sleep(0)
    second = asyncio.create_task(engine.search("second"))
    await asyncio.sleep(0)

    gated_search.release("second")
    await second
    gated_search.release("first", SearchFailure("late failure"))
    await first

    assert engine.error is None
    assert errors == []
    assert engine.results.data == ["second"]


@pytest.mark.asyncio
async def test_cache_hit_supersedes_in_flight_search(make_engine, gated_search):
    engine = make_engine(SearchHooks(on_search=gated_search))
    gated_search.release("cached")
    await engine.search("cached")

    pending = asyncio.create_task(engine.search("slow"))
    await asyncio.sleep(0)
    await engine.search("cached")
    assert engine.loading.searching is False

    gated_search.release("slow")
    await pending

    assert engine.results.data == ["cached"]
    assert engine.loading.searching is False


@pytest.mark.asyncio
async def test_retry_search_clears_error_and_reissues(make_engine):
    attempts = []

    async def on_search(term, filters):
        attempts.append(term)
        if len(attempts) == 1:
            raise SearchFailure("flaky")
        return ResultSet(data=["ok"])

    engine = make_engine(SearchHooks(on_search=on_search))
    await _type(engine, "shoes")
    await engine.search()
    assert engine.error is not None

    await engine.retry_search()

    assert engine.error is None
    assert engine.results.data == ["ok"]
    assert attempts == ["shoes", "shoes"]


@pytest.mark.asyncio
async def test_refresh_clears_cache_and_refetches(make_engine):
    seen_flags = []

    async def on_search(term, filters):
        seen_flags.append(engine.loading.refreshing)
        return ResultSet(data=[len(seen_flags)])

    engine = make_engine(SearchHooks(on_search=on_search))
    await _type(engine, "shoes")
    await engine.search()
    await engine.refresh()

    assert seen_flags == [False, True]
    assert engine.results.data == [2]
    assert engine.loading.refreshing is False
    assert engine.cache.stats().size == 1


@pytest.mark.asyncio
async def test_reset_restores_initial_state_but_keeps_history(make_engine):
    engine = make_engine(_recording_hooks().hooks)
    await _type(engine, "shoes")
    engine.set_filter("color", "red")
    await engine.search()
    engine.page = 2

    engine.reset()

    assert engine.term == ""
    assert engine.debounced_term == ""
    assert engine.filters == {}
    assert engine.page == 1
    assert engine.cursor is None
    assert engine.results is None
    assert engine.error is None
    assert engine.suggestions.items == []
    assert engine.history == ["shoes"]
    assert engine.metrics.total_searches == 1
    assert engine.cache.stats().size == 1


@pytest.mark.asyncio
async def test_reset_discards_in_flight_search(make_engine, gated_search):
    engine = make_engine(SearchHooks(on_search=gated_search))

    pending = asyncio.create_task(engine.search("shoes"))
    await asyncio.sleep(0)
    engine.reset()
    assert engine.loading.searching is False

    gated_search.release("shoes")
    await pending

    assert engine.results is None
    assert engine.loading.searching is False


@pytest.mark.asyncio
async def test_load_more_appends_data_and_advances_cursor(make_engine):
    async def on_search(term, filters):
        return ResultSet(data=[1, 2], total=4, has_more=True, next_cursor="c1")

    async def on_load_more():
        return ResultSet(data=[3, 4], total=4, has_more=False, next_cursor="x")

    engine = make_engine(SearchHooks(on_search=on_search, on_load_more=on_load_more), mode="infinite")
    await engine.search("shoes")
    assert engine.has_more is True

    await engine.load_more()

    assert engine.results.data == [1, 2, 3, 4]
    assert engine.results.has_more is False
    assert engine.cursor == "x"
    assert engine.loading.loading_more is False
    assert engine.metrics.total_searches == 1
    assert engine.history == ["shoes"]


@pytest.mark.asyncio
async def test_load_more_keeps_cursor_without_next_cursor(make_engine):
    async def on_search(term, filters):
        return ResultSet(data=[1], has_more=True)

    async def on_load_more():
        return ResultSet(data=[2], has_more=True)

    engine = make_engine(SearchHooks(on_search=on_search, on_load_more=on_load_more), mode="infinite")
    await engine.search("shoes")
    engine.set_cursor("kept")

    await engine.load_more()

    assert engine.cursor == "kept"
    assert engine.results.data == [1, 2]


@pytest.mark.asyncio
async def test_load_more_is_noop_outside_infinite_mode_or_without_more(make_engine):
    calls = []

    async def on_load_more():
        calls.append(True)
        return ResultSet(data=[9])

    async def on_search(term, filters):
        return ResultSet(data=[1], has_more=True)

    paged = make_engine(SearchHooks(on_search=on_search, on_load_more=on_load_more))
    await paged.search("shoes")
    await paged.load_more()

    infinite = make_engine(SearchHooks(on_load_more=on_load_more), mode="infinite")
    await infinite.load_more()

    assert calls == []


@pytest.mark.asyncio
async def test_load_more_failure_sets_error(make_engine):
    errors = []

    async def on_search(term, filters):
        return ResultSet(data=[1], has_more=True)

    async def on_load_more():
        raise ConnectionError()

    engine = make_engine(
        SearchHooks(on_search=on_search, on_load_more=on_load_more, on_error=errors.append),
        mode="infinite",
    )
    await engine.search("shoes")
    await engine.load_more()

    assert engine.error.message == "Load more failed"
    assert engine.error.kind == "network"
    assert errors == [engine.error]
    assert engine.results.data == [1]
    assert engine.loading.loading_more is False


@pytest.mark.asyncio
async def test_search_supersedes_in_flight_load_more(make_engine):
    gate = asyncio.Event()

    async def on_search(term, filters):
        return ResultSet(data=[term], has_more=True)

    async def on_load_more():
        await gate.wait()
        return ResultSet(data=["stale"])

    engine = make_engine(SearchHooks(on_search=on_search, on_load_more=on_load_more), mode="infinite")
    await engine.search("first")
    pending = asyncio.create_task(engine.load_more())
    await asyncio.sleep(0)
    assert engine.loading.loading_more is True

    await engine.search("second")
    gate.set()
    await pending

    assert engine.results.data == ["second"]
    assert engine.loading.loading_more is False


@pytest.mark.asyncio
async def test_load_more_waits_out_in_flight_search(make_engine, gated_search):
    load_more_calls = []

    async def on_load_more():
        load_more_calls.append(True)
        return ResultSet(data=["old-3"], next_cursor="c2")

    engine = make_engine(
        SearchHooks(on_search=gated_search, on_load_more=on_load_more),
        mode="infinite",
    )
    engine.results = ResultSet(data=["old-1", "old-2"], has_more=True)

    engine.set_term("new")
    pending = asyncio.create_task(engine.search("new"))
    await asyncio.sleep(0)
    assert engine.loading.searching is True

    await engine.load_more()
    gated_search.release("new", ResultSet(data=["new-1"]))
    await pending

    assert load_more_calls == []
    assert engine.results.data == ["new-1"]
    assert engine.cursor is None
    assert engine.history == ["new"]
    assert engine.loading.loading_more is False
    assert engine.loading.searching is False
