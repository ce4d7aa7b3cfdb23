"""In-process counter store using sliding windows of monotonic timestamps.

Events for each key live in a deque; expired timestamps are pruned from
the left on every access. A single lock guards all keys so the
count-then-record sequence is atomic across threads and event loops.
Counts do not survive a restart and are not shared between processes; use
the Redis store for multi-worker deployments.
"""

import threading
import time
from collections import deque

from pcc_gateway.counters.base import CounterStore

SWEEP_INTERVAL = 60.0  # seconds between reclamation passes


class MemoryCounterStore(CounterStore):
    def __init__(self, sweep_interval: float = SWEEP_INTERVAL):
        self._events: dict[str, deque[float]] = {}
        self._windows: dict[str, int] = {}
        self._lock = threading.Lock()
        self._sweep_interval = sweep_interval
        self._last_sweep = time.monotonic()

    async def count(self, key: str, window: int) -> int:
        now = time.monotonic()
        with self._lock:
            return self._live_count(key, window, now)

    async def record(self, key: str, window: int) -> None:
        now = time.monotonic()
        with self._lock:
            self._append(key, window, now)
            self._maybe_sweep(now)

    async def acquire(self, key: str, threshold: int, window: int) -> bool:
        now = time.monotonic()
        with self._lock:
            if self._live_count(key, window, now) >= threshold:
                return False
            self._append(key, window, now)
            self._maybe_sweep(now)
            return True

    async def purge_expired(self) -> int:
        with self._lock:
            return self._sweep(time.monotonic())

    def _live_count(self, key: str, window: int, now: float) -> int:
        events = self._events.get(key)
        if not events:
            return 0
        # Prune only what is dead under the widest window recorded for the key
        retention = max(window, self._windows.get(key, 0))
        while events and events[0] <= now - retention:
            events.popleft()
        # (now - W, now]: an event exactly W seconds old has expired
        window_start = now - window
        live = 0
        for ts in reversed(events):
            if ts <= window_start:
                break
            live += 1
        return live

    def _append(self, key: str, window: int, now: float) -> None:
        self._events.setdefault(key, deque()).append(now)
        self._windows[key] = max(window, self._windows.get(key, 0))

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self._sweep_interval:
            self._sweep(now)

    def _sweep(self, now: float) -> int:
        self._last_sweep = now
        expired = [
            key for key, events in self._events.items()
            if not events or events[-1] <= now - self._windows.get(key, 0)
        ]
        for key in expired:
            del self._events[key]
            self._windows.pop(key, None)
        return len(expired)
