"""Counter store abstraction for sliding-window rate limiting."""

from abc import ABC, abstractmethod


class StoreUnavailableError(Exception):
    """The counter store could not be reached or answered with an error."""


class CounterStore(ABC):
    """Keeps event timestamps per composite key.

    Implementations must make `acquire` atomic: two callers racing on the
    same key may never both be admitted when only one slot remains.
    """

    @abstractmethod
    async def count(self, key: str, window: int) -> int:
        """Number of events recorded for key in the trailing `window` seconds."""
        ...

    @abstractmethod
    async def record(self, key: str, window: int) -> None:
        """Record one event for key now. It expires after `window` seconds."""
        ...

    @abstractmethod
    async def acquire(self, key: str, threshold: int, window: int) -> bool:
        """Atomically count events in the window and record one if below threshold.

        Returns True when the event was recorded.
        """
        ...

    async def purge_expired(self) -> int:
        """Drop keys with no live events. Returns the number of keys removed."""
        return 0

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
