"""Cancel-and-restart debouncing on top of asyncio tasks."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")
EmitCallback = Callable[[T], "Awaitable[Any] | Any"]

_MISSING = object()


class Debouncer(Generic[T]):
    """Emit the latest pushed value once it has been stable for ``delay_ms``.

    Every ``push`` cancels the pending timer, so superseded values are never
    handed to ``on_emit``. When no event loop is running the value is kept
    pending until :meth:`flush`.
    """

    def __init__(self, delay_ms: int, on_emit: EmitCallback) -> None:
        self.delay_ms = delay_ms
        self._on_emit = on_emit
        self._task: asyncio.Task | None = None
        self._pending: Any = _MISSING
        self.last_emitted: Any = None

    @property
    def pending(self) -> bool:
        return self._pending is not _MISSING

    def push(self, value: T) -> None:
        self._cancel_timer()
        self._pending = value
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._wait_and_emit(value))

    def cancel(self) -> None:
        """Drop the pending value without emitting it."""

        self._cancel_timer()
        self._pending = _MISSING

    async def flush(self) -> None:
        """Emit the pending value immediately, if there is one."""

        if not self.pending:
            return
        value = self._pending
        self.cancel()
        await self._emit(value)

    async def _wait_and_emit(self, value: T) -> None:
        await asyncio.sleep(self.delay_ms / 1000)
        # detach before emitting so a new push cannot cancel a running emit
        self._task = None
        self._pending = _MISSING
        await self._emit(value)

    async def _emit(self, value: T) -> None:
        self.last_emitted = value
        result = self._on_emit(value)
        if inspect.isawaitable(result):
            await result

    def _cancel_timer(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


__all__ = ["Debouncer"]
