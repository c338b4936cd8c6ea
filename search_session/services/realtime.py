"""Connection status contract for the real-time update channel."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from search_session.config import RealTimeConfig
from search_session.logging import logger

Connector = Callable[[str | None], Awaitable[Any]]


class RealTimeLink:
    """Keeps a push channel connected and reports its status.

    The transport is external: ``connect`` receives the configured URL and
    returns whatever handle it likes. Failed attempts are retried with a
    fixed ``reconnect_delay_ms`` pause, up to ``max_reconnect_attempts``.
    """

    def __init__(
        self,
        config: RealTimeConfig,
        connect: Connector,
        on_status: Callable[[bool], None] | None = None,
    ) -> None:
        self.config = config
        self._connect = connect
        self._on_status = on_status or (lambda connected: None)
        self.connection: Any = None
        self.connected = False

    async def start(self) -> bool:
        if not self.config.enabled:
            return False
        url = self.config.websocket_url
        try:
            self.connection = await self._connect_with_retries(url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(
                "realtime_connect_failed",
                url=url,
                attempts=self.config.max_reconnect_attempts,
                error=str(exc),
            )
            self._set_status(False)
            return False
        logger.info("realtime_connected", url=url)
        self._set_status(True)
        return True

    async def connection_lost(self) -> bool:
        logger.warning("realtime_connection_lost", url=self.config.websocket_url)
        self.connection = None
        self._set_status(False)
        return await self.start()

    def stop(self) -> None:
        self.connection = None
        self._set_status(False)

    async def _connect_with_retries(self, url: str | None) -> Any:
        max_attempts = self.config.max_reconnect_attempts
        delay = self.config.reconnect_delay_ms / 1000
        for attempt in range(1, max_attempts + 1):
            try:
                return await self._connect(url)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if attempt >= max_attempts:
                    raise
                logger.warning(
                    "realtime_reconnecting",
                    url=url,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    delay=delay,
                    error=str(exc),
                )
                await asyncio.sleep(delay)
        raise RuntimeError(f"realtime connect failed after {max_attempts} attempts")

    def _set_status(self, connected: bool) -> None:
        if connected == self.connected:
            return
        self.connected = connected
        self._on_status(connected)


__all__ = ["Connector", "RealTimeLink"]
