"""Factory for rate-limit counter store backends."""

from pcc_gateway.config.settings import get_settings
from pcc_gateway.counters.base import CounterStore
from pcc_gateway.counters.memory import MemoryCounterStore

_store: CounterStore | None = None


def get_counter_store() -> CounterStore:
    """Get the counter store singleton, creating it from settings on first use."""
    global _store
    if _store is not None:
        return _store

    settings = get_settings()
    backend = settings.rate_limit_backend

    if backend == "redis":
        # Imported lazily so memory-only deployments never load the redis client
        from pcc_gateway.counters.redis_store import RedisCounterStore
        _store = RedisCounterStore.from_url(settings.redis_url, settings.rate_limit_store_timeout)
        return _store

    if backend != "memory":
        raise ValueError(f"Unknown rate limit backend: {backend}")

    _store = MemoryCounterStore()
    return _store


async def close_counter_store() -> None:
    """Close the store on shutdown and forget the singleton."""
    global _store
    if _store is not None:
        await _store.close()
    _store = None
