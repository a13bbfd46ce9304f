"""
Fixed-window rate limiting for order creation.

Process-local and best effort: each instance counts on its own and the table
is lost on restart. A multi-instance deployment needs a shared store with TTL
behind the same ``check_and_consume`` interface.
"""
import math
import threading
import time
from typing import Callable, Dict, NamedTuple

SWEEP_THRESHOLD = 1000


class RateLimitDecision(NamedTuple):
    allowed: bool
    remaining: int
    reset_in: float

    @property
    def retry_after(self) -> int:
        return max(1, math.ceil(self.reset_in))


class _Entry:
    __slots__ = ("count", "reset_at")

    def __init__(self, count: int, reset_at: float):
        self.count = count
        self.reset_at = reset_at


def normalize_key(key: str) -> str:
    return key.strip().lower()


class RateLimiter:
    def __init__(self, max_attempts: int = 5, window_seconds: float = 600,
                 clock: Callable[[], float] = time.monotonic):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._entries)

    def _sweep(self, now: float):
        expired = [k for k, v in self._entries.items() if v.reset_at <= now]
        for k in expired:
            del self._entries[k]

    def check_and_consume(self, key: str) -> RateLimitDecision:
        key = normalize_key(key)
        with self._lock:
            now = self._clock()
            if len(self._entries) > SWEEP_THRESHOLD:
                self._sweep(now)

            entry = self._entries.get(key)
            if entry is None or entry.reset_at <= now:
                self._entries[key] = _Entry(1, now + self.window_seconds)
                return RateLimitDecision(True, self.max_attempts - 1, self.window_seconds)

            if entry.count >= self.max_attempts:
                return RateLimitDecision(False, 0, entry.reset_at - now)

            entry.count += 1
            return RateLimitDecision(True, self.max_attempts - entry.count, entry.reset_at - now)

