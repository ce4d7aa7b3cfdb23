"""Redis-backed counter store shared by every worker process.

Each composite key is a sorted set of event members scored by unix time in
milliseconds. Every operation runs as a Lua script that reads the clock
with TIME, so all workers share the Redis server's notion of "now" and the
count-then-record sequence is atomic regardless of how many race on a key.
Requires Redis 5+ (scripts that write after TIME).
"""

import uuid

from redis.asyncio import Redis
from redis.exceptions import RedisError

from pcc_gateway.counters.base import CounterStore, StoreUnavailableError

_SERVER_NOW_MS = """
local t = redis.call('TIME')
local now = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)
"""

# KEYS[1] = key; ARGV = window_ms, threshold, event id
_ACQUIRE_LUA = _SERVER_NOW_MS + """
local key = KEYS[1]
local window = tonumber(ARGV[1])
local threshold = tonumber(ARGV[2])

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
if count >= threshold then
  return 0
end
redis.call('ZADD', key, now, string.format('%d-%s', now, ARGV[3]))
redis.call('PEXPIRE', key, window)
return 1
"""

# KEYS[1] = key; ARGV = window_ms, event id
_RECORD_LUA = _SERVER_NOW_MS + """
local key = KEYS[1]
local window = tonumber(ARGV[1])
redis.call('ZADD', key, now, string.format('%d-%s', now, ARGV[2]))
if redis.call('PTTL', key) < window then
  redis.call('PEXPIRE', key, window)
end
return 1
"""

# KEYS[1] = key; ARGV = window_ms. Exclusive lower bound: an event exactly
# `window` old has expired. Read-only, so a narrow window never drops events.
_COUNT_LUA = _SERVER_NOW_MS + """
return redis.call('ZCOUNT', KEYS[1], string.format('(%d', now - tonumber(ARGV[1])), '+inf')
"""


class RedisCounterStore(CounterStore):
    """Sliding-window counters in Redis. Expiry is delegated to key TTLs."""

    def __init__(self, client: Redis, namespace: str = "pcc:rl:"):
        self._redis = client
        self._namespace = namespace
        self._acquire = client.register_script(_ACQUIRE_LUA)
        self._record = client.register_script(_RECORD_LUA)
        self._count = client.register_script(_COUNT_LUA)

    @classmethod
    def from_url(cls, url: str, timeout: float) -> "RedisCounterStore":
        client = Redis.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout)
        return cls(client)

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def count(self, key: str, window: int) -> int:
        try:
            return int(await self._count(keys=[self._key(key)], args=[window * 1000]))
        except RedisError as e:
            raise StoreUnavailableError(str(e)) from e

    async def record(self, key: str, window: int) -> None:
        try:
            await self._record(keys=[self._key(key)], args=[window * 1000, _event_id()])
        except RedisError as e:
            raise StoreUnavailableError(str(e)) from e

    async def acquire(self, key: str, threshold: int, window: int) -> bool:
        try:
            allowed = await self._acquire(
                keys=[self._key(key)],
                args=[window * 1000, threshold, _event_id()],
            )
        except RedisError as e:
            raise StoreUnavailableError(str(e)) from e
        return int(allowed) == 1

    async def close(self) -> None:
        await self._redis.aclose()


def _event_id() -> str:
    # Unique per event: two hits in the same millisecond must both count
    return uuid.uuid4().hex
