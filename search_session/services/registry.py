"""Addressing layer for running several sessions side by side."""

from __future__ import annotations

from typing import Iterable

from search_session.services.engine import SearchSessionEngine
from search_session.services.exceptions import SessionAlreadyRegistered, SessionNotFound


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, SearchSessionEngine] = {}

    def register(self, engine: SearchSessionEngine) -> SearchSessionEngine:
        if engine.session_id in self._sessions:
            raise SessionAlreadyRegistered(f"Session '{engine.session_id}' is already registered.")
        self._sessions[engine.session_id] = engine
        return engine

    def unregister(self, session_id: str) -> SearchSessionEngine:
        try:
            return self._sessions.pop(session_id)
        except KeyError as exc:
            raise SessionNotFound(f"Session '{session_id}' is not registered.") from exc

    def get(self, session_id: str) -> SearchSessionEngine:
        try:
            return self._sessions[session_id]
        except KeyError as exc:
            raise SessionNotFound(f"Session '{session_id}' is not registered.") from exc

    def get_many(self, session_ids: Iterable[str]) -> dict[str, SearchSessionEngine]:
        return {session_id: self.get(session_id) for session_id in session_ids}

    def ids(self) -> list[str]:
        return list(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


__all__ = ["SessionRegistry"]
