"""Shared pytest fixtures for session engine tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
import structlog

from search_session.config import SearchConfig
from search_session.domain.models import ResultSet
from search_session.services.engine import SearchHooks, SearchSessionEngine


class FakeClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class GatedSearch:
    """Search callback whose calls stay pending until released by term."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._gates: dict[str, asyncio.Event] = {}
        self._outcomes: dict[str, Any] = {}

    async def __call__(self, term: str, filters: dict[str, Any]) -> ResultSet:
        self.calls.append((term, filters))
        gate = self._gates.setdefault(term, asyncio.Event())
        await gate.wait()
        outcome = self._outcomes.get(term, ResultSet(data=[term]))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def release(self, term: str, outcome: Any = None) -> None:
        if outcome is not None:
            self._outcomes[term] = outcome
        self._gates.setdefault(term, asyncio.Event()).set()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_engine(clock):
    def factory(hooks: SearchHooks | None = None, **config: Any) -> SearchSessionEngine:
        session_id = config.pop("session_id", "default")
        store = config.pop("store", None)
        return SearchSessionEngine(
            SearchConfig(**config),
            hooks,
            session_id=session_id,
            store=store,
            clock=clock,
        )

    return factory


@pytest.fixture
def gated_search() -> GatedSearch:
    return GatedSearch()


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
