"""Domain-specific exceptions."""

from __future__ import annotations

from typing import Literal

ErrorKind = Literal["validation", "network", "server", "unknown"]


class ServiceError(Exception):
    pass


class SearchFailure(ServiceError):
    """Raised by search/load-more callbacks to report a classified failure."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        kind: ErrorKind = "network",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.kind = kind


class SessionNotFound(ServiceError):
    pass


class SessionAlreadyRegistered(ServiceError):
    pass


__all__ = [
    "ErrorKind",
    "ServiceError",
    "SearchFailure",
    "SessionNotFound",
    "SessionAlreadyRegistered",
]
