"""In-memory flood guards applied before any activity is forwarded.

Both guards are process-local and reset on restart. They take a ``clock``
returning epoch milliseconds so tests can drive time explicitly.
"""

from collections.abc import Callable
from threading import RLock

from mc_relay.activity.classifier import now_ms
from mc_relay.constants import DEFAULT_DEDUP_WINDOW_MS, DEFAULT_RATE_LIMIT_MS


class RateLimiter:
    """Allow at most one event per key (the event type) per interval.

    The key is deliberately coarse: every ``cron_fire`` shares one budget
    regardless of which job fired.
    """

    def __init__(
        self,
        interval_ms: int = DEFAULT_RATE_LIMIT_MS,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self._interval_ms = interval_ms
        self._clock = clock
        self._last_seen: dict[str, float] = {}
        self._lock = RLock()

    def is_limited(self, key: str) -> bool:
        """Return True if ``key`` was allowed less than one interval ago.

        An allowed call records the current time; a rejected one does not.
        """
        now = self._clock()
        with self._lock:
            last = self._last_seen.get(key)
            if last is not None and now - last < self._interval_ms:
                return True
            self._last_seen[key] = now
            return False

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_seen)

    def clear(self) -> None:
        with self._lock:
            self._last_seen.clear()


class DedupGate:
    """Suppress a title seen within the dedup window.

    Each check first sweeps entries older than the window, so memory is
    bounded by the number of distinct titles per window.
    """

    def __init__(
        self,
        window_ms: int = DEFAULT_DEDUP_WINDOW_MS,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self._window_ms = window_ms
        self._clock = clock
        self._recent: dict[str, float] = {}
        self._lock = RLock()

    def is_duplicate(self, title: str) -> bool:
        """Return True if ``title`` is still inside the window; otherwise record it."""
        now = self._clock()
        with self._lock:
            expired = [key for key, seen in self._recent.items() if now - seen > self._window_ms]
            for key in expired:
                del self._recent[key]

            if title in self._recent:
                return True
            self._recent[title] = now
            return False

    def __len__(self) -> int:
        with self._lock:
            return len(self._recent)

    def clear(self) -> None:
        with self._lock:
            self._recent.clear()
