"""Demo entrypoint: drive one session against an in-memory catalogue."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Sequence

from search_session.config import SearchConfig, get_settings
from search_session.domain.models import ResultSet
from search_session.logging import bind_session, configure_logging, logger
from search_session.services.engine import SearchHooks, SearchSessionEngine

DEMO_CATALOGUE = (
    "python",
    "pydantic",
    "pytest",
    "structlog",
    "asyncio",
    "async generators",
    "type hints",
    "typing extensions",
)


def catalogue_hooks(catalogue: Sequence[str], page_size: int) -> SearchHooks:
    async def on_search(term: str, filters: dict[str, Any]) -> ResultSet:
        matches = [item for item in catalogue if term.lower() in item.lower()]
        return ResultSet(data=matches[:page_size], total=len(matches), has_more=len(matches) > page_size)

    async def on_suggestions(term: str) -> list[str]:
        return [item for item in catalogue if item.lower().startswith(term.lower())]

    return SearchHooks(on_search=on_search, on_suggestions=on_suggestions)


async def main(argv: Sequence[str] | None = None) -> ResultSet | None:
    settings = get_settings()
    configure_logging(getattr(logging, settings.log_level), json=settings.environment != "dev")
    bind_session("demo")

    terms = list(argv if argv is not None else sys.argv[1:]) or ["py"]
    config: SearchConfig = settings.engine.evolve(enable_suggestions=True)
    engine = SearchSessionEngine(
        config,
        catalogue_hooks(DEMO_CATALOGUE, config.page_size),
        session_id="demo",
    )

    for term in terms:
        engine.set_term(term)
    await engine.flush_debounce()
    await engine.search()

    logger.info(
        "demo_search_finished",
        term=engine.trimmed_term,
        results=engine.results.data if engine.results else [],
        suggestions=[item.value for item in engine.suggestions.items],
        errors=engine.validation_errors,
    )
    await engine.aclose()
    return engine.results


if __name__ == "__main__":
    asyncio.run(main())
