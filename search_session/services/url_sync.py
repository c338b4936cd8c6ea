"""Mirror term, page and filters into a namespaced key/value store."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Callable, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from search_session.logging import logger
from search_session.services.keys import stable_serialize

if TYPE_CHECKING:
    from search_session.services.engine import SearchSessionEngine


class KeyValueStore(Protocol):
    def get(self, name: str) -> str | None: ...
    def set(self, name: str, value: str | None) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    def get(self, name: str) -> str | None:
        return self.values.get(name)

    def set(self, name: str, value: str | None) -> None:
        if value:
            self.values[name] = value
        else:
            self.values.pop(name, None)


class QueryStringStore:
    """Key/value view over a URL query string."""

    def __init__(self, query: str = "") -> None:
        self._params: dict[str, str] = dict(parse_qsl(query.lstrip("?"), keep_blank_values=False))

    @classmethod
    def from_url(cls, url: str) -> "QueryStringStore":
        return cls(urlsplit(url).query)

    def get(self, name: str) -> str | None:
        return self._params.get(name)

    def set(self, name: str, value: str | None) -> None:
        if value:
            self._params[name] = value
        else:
            self._params.pop(name, None)

    @property
    def query_string(self) -> str:
        return urlencode(self._params)

    def apply_to(self, url: str) -> str:
        """Return ``url`` with its query replaced by the current parameters."""

        parts = urlsplit(url)
        return urlunsplit(parts._replace(query=self.query_string))


class UrlSyncAdapter:
    def __init__(self, store: KeyValueStore, session_id: str = "default") -> None:
        self.store = store
        self.session_id = session_id
        self._unsubscribe: Callable[[], None] | None = None
        self._last_written: tuple[str, int, str] | None = None

    @property
    def search_name(self) -> str:
        return f"{self.session_id}_search"

    @property
    def page_name(self) -> str:
        return f"{self.session_id}_page"

    @property
    def filters_name(self) -> str:
        return f"{self.session_id}_filters"

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def attach(self, engine: "SearchSessionEngine") -> None:
        if self.attached:
            return
        self.import_state(engine)
        self.write(engine)
        self._unsubscribe = engine.subscribe(self.write)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def import_state(self, engine: "SearchSessionEngine") -> None:
        term = self.store.get(self.search_name) or ""
        page = self._read_page()
        filters = self._read_filters()

        engine.restore(
            term=term if term != engine.term else None,
            page=page if page is not None and page != engine.page else None,
            filters=filters if filters is not None and filters != engine.filters else None,
        )

    def write(self, engine: "SearchSessionEngine") -> None:
        snapshot = (engine.term, engine.page, stable_serialize(engine.filters))
        if snapshot == self._last_written:
            return
        self._last_written = snapshot
        self.store.set(self.search_name, engine.term or None)
        self.store.set(self.page_name, str(engine.page) if engine.page != 1 else None)
        self.store.set(
            self.filters_name,
            stable_serialize(engine.filters) if engine.filters else None,
        )

    def _read_page(self) -> int | None:
        raw = self.store.get(self.page_name)
        if not raw:
            return None
        try:
            page = int(raw)
        except ValueError:
            logger.debug("url_sync_page_ignored", session_id=self.session_id, value=raw)
            return None
        return page if page >= 1 else None

    def _read_filters(self) -> dict[str, Any] | None:
        raw = self.store.get(self.filters_name)
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.debug("url_sync_filters_ignored", session_id=self.session_id)
            return None
        if not isinstance(parsed, dict):
            return None
        return {key: value for key, value in parsed.items() if value is not None}


__all__ = ["InMemoryKeyValueStore", "KeyValueStore", "QueryStringStore", "UrlSyncAdapter"]
