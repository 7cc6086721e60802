"""Fixed-window admission control keyed by client address."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable


UNKNOWN_CLIENT = "unknown"
SWEEP_INTERVAL = 256


@dataclass
class _WindowState:
    attempts: int
    window_start: float


class FixedWindowRateLimiter:
    """Admit at most ``permit_limit`` requests per key in each window.

    A key's window opens with its first admitted request and its counter is
    reset entirely once the window has elapsed. Nothing is queued: requests
    over budget are rejected immediately.
    """

    def __init__(
        self,
        permit_limit: int,
        window: timedelta,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if permit_limit < 1:
            raise ValueError("permit_limit must be at least 1")
        if window <= timedelta(0):
            raise ValueError("window must be positive")
        self.permit_limit = permit_limit
        self.window_seconds = window.total_seconds()
        self._clock = clock
        self._states: dict[str, _WindowState] = {}
        self._lock = threading.Lock()
        self._calls = 0

    def _expired(self, state: _WindowState, now: float) -> bool:
        return now - state.window_start >= self.window_seconds

    def _sweep(self, now: float) -> None:
        stale = [key for key, state in self._states.items() if self._expired(state, now)]
        for key in stale:
            del self._states[key]

    def try_acquire(self, key: str | None) -> bool:
        key = key or UNKNOWN_CLIENT
        with self._lock:
            now = self._clock()
            self._calls += 1
            if self._calls % SWEEP_INTERVAL == 0:
                self._sweep(now)
            state = self._states.get(key)
            if state is None or self._expired(state, now):
                self._states[key] = _WindowState(attempts=1, window_start=now)
                return True
            if state.attempts >= self.permit_limit:
                return False
            state.attempts += 1
            return True

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._states.clear()
            else:
                self._states.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
