"""In-memory fixed-window request limiting."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict

from .database import current_timestamp
from .errors import RateLimited


@dataclass
class _Window:
    started_at: datetime
    count: int


class RateLimiter:
    """Allow at most ``ceiling`` requests per client in each ``window``.

    A ceiling of zero or less disables limiting entirely.
    """

    def __init__(
        self,
        *,
        window: timedelta,
        ceiling: int,
        clock: Callable[[], datetime] = current_timestamp,
    ) -> None:
        self._window = window
        self._ceiling = ceiling
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._next_sweep: datetime | None = None
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._ceiling > 0

    def hit(self, key: str) -> None:
        if not self.enabled:
            return
        now = self._clock()
        with self._lock:
            self._evict(now)
            record = self._windows.get(key)
            if record is None or now - record.started_at >= self._window:
                self._windows[key] = _Window(started_at=now, count=1)
                return
            if record.count >= self._ceiling:
                remaining = record.started_at + self._window - now
                retry_after = max(1, math.ceil(remaining.total_seconds()))
                raise RateLimited(details={"retryAfter": retry_after})
            record.count += 1

    def _evict(self, now: datetime) -> None:
        # Stale windows are dropped at most once per window length.
        if self._next_sweep is not None and now < self._next_sweep:
            return
        self._next_sweep = now + self._window
        expired = [key for key, record in self._windows.items() if now - record.started_at >= self._window]
        for key in expired:
            self._windows.pop(key, None)


__all__ = ["RateLimiter"]
