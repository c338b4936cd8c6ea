"""Clock helpers: wall-clock timestamps and monotonic intervals."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

# Monotonic source in seconds; injectable so expiry and latency are testable.
Clock = Callable[[], float]


def utc_now() -> datetime:
    """Return current UTC time with tzinfo."""

    return datetime.now(timezone.utc)


def elapsed_ms(started: float, now: float) -> float:
    return max(0.0, (now - started) * 1000.0)


__all__ = ["Clock", "elapsed_ms", "utc_now"]
