"""Autocomplete state: candidates, highlighted row and visibility."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Iterable, Literal

from search_session.domain.models import LoadingFlags, Suggestion, SuggestionState
from search_session.logging import logger

Direction = Literal["up", "down"]
SuggestionFetcher = Callable[[str], Awaitable[Iterable[Any]]]


def coerce_suggestion(item: Any) -> Suggestion:
    if isinstance(item, Suggestion):
        return item
    if isinstance(item, str):
        return Suggestion(value=item)
    return Suggestion.model_validate(item)


class SuggestionController:
    """Loads suggestions for a debounced term and tracks keyboard navigation.

    Only the most recently started load may write its outcome; older loads
    finishing later are ignored.
    """

    def __init__(
        self,
        loading: LoadingFlags,
        fetch: SuggestionFetcher,
        *,
        max_suggestions: int = 10,
        enabled: bool = False,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.state = SuggestionState()
        self.loading = loading
        self.enabled = enabled
        self.max_suggestions = max_suggestions
        self._fetch = fetch
        self._on_change = on_change or (lambda: None)
        self._generation = 0

    @property
    def items(self) -> list[Suggestion]:
        return self.state.items

    @property
    def selected_index(self) -> int:
        return self.state.selected_index

    @property
    def visible(self) -> bool:
        return self.state.visible

    @property
    def selected(self) -> Suggestion | None:
        if self.state.selected_index < 0:
            return None
        return self.state.items[self.state.selected_index]

    @property
    def active_descendant(self) -> str | None:
        if self.state.selected_index < 0:
            return None
        return f"suggestion-{self.state.selected_index}"

    async def load(self, term: str) -> None:
        generation = self.invalidate()
        if not self.enabled or not term or not term.strip():
            self.loading.suggestions = False
            self._set_items([])
            return

        self.loading.suggestions = True
        self._on_change()
        try:
            raw = await self._fetch(term)
            items = [coerce_suggestion(item) for item in raw]
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation == self._generation:
                logger.debug("suggestions_failed", term=term, error=str(exc))
                self._set_items([])
        else:
            if generation == self._generation:
                self._set_items(items[: self.max_suggestions])
            else:
                logger.debug("suggestions_discarded", term=term)
        finally:
            if generation == self._generation:
                self.loading.suggestions = False
                self._on_change()

    def invalidate(self) -> int:
        """Start a new generation so in-flight loads can no longer write."""

        self._generation += 1
        return self._generation

    def navigate(self, direction: Direction) -> None:
        count = len(self.state.items)
        if not self.state.visible or count == 0:
            return
        current = self.state.selected_index
        if direction == "down":
            self.state.selected_index = current + 1 if current < count - 1 else 0
        elif direction == "up":
            self.state.selected_index = current - 1 if current > 0 else count - 1
        else:
            raise ValueError(f"Unknown direction: {direction!r}")
        self._on_change()

    def hide(self) -> None:
        self.state.visible = False
        self.state.selected_index = -1
        self._on_change()

    def reset_selection(self) -> None:
        self.state.selected_index = -1

    def clear(self) -> None:
        self.invalidate()
        self.loading.suggestions = False
        self._set_items([])

    def _set_items(self, items: list[Suggestion]) -> None:
        self.state.items = items
        self.state.visible = len(items) > 0
        self.state.selected_index = -1
        self._on_change()


__all__ = ["Direction", "SuggestionController", "coerce_suggestion"]
