"""In-process alert cooldown cache.

Suppresses re-notification of the same (user, device, severity) inside a
fixed window. State lives in process memory only: a restart clears every
cooldown, which can cause at most one duplicate alert per key. Workers that
share this tracker must therefore run in a single process.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict

DEFAULT_WINDOW = timedelta(hours=1)


@dataclass(frozen=True)
class CooldownKey:
    user_id: str
    device_id: str
    severity: str

    def __str__(self) -> str:
        return f"{self.user_id}_{self.device_id}_{self.severity}"


class CooldownTracker:
    """Thread-safe record of the last dispatch time per :class:`CooldownKey`."""

    def __init__(self, window: timedelta = DEFAULT_WINDOW) -> None:
        self.window = window
        self._lock = threading.Lock()
        self._last_dispatch: Dict[CooldownKey, datetime] = {}

    def _active(self, key: CooldownKey, now: datetime) -> bool:
        last = self._last_dispatch.get(key)
        return last is not None and now - last < self.window

    def should_suppress(self, key: CooldownKey, now: datetime) -> bool:
        """Return ``True`` if ``key`` was dispatched within the window. Does not record."""

        with self._lock:
            return self._active(key, now)

    def record_dispatch(self, key: CooldownKey, now: datetime) -> None:
        with self._lock:
            self._last_dispatch[key] = now

    def acquire(self, key: CooldownKey, now: datetime) -> bool:
        """Atomically check and record a dispatch.

        Returns ``True`` when the caller may notify; the dispatch time is then
        already recorded. Returns ``False`` when the key is cooling down.
        """

        with self._lock:
            if self._active(key, now):
                return False
            self._last_dispatch[key] = now
            return True

    def release(self, key: CooldownKey, acquired_at: datetime) -> None:
        """Undo an :meth:`acquire` whose alert could not be stored."""

        with self._lock:
            if self._last_dispatch.get(key) == acquired_at:
                self._last_dispatch.pop(key, None)

    def reset(self) -> int:
        """Forget every cooldown and return how many were cleared."""

        with self._lock:
            cleared = len(self._last_dispatch)
            self._last_dispatch.clear()
            return cleared

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_dispatch)
