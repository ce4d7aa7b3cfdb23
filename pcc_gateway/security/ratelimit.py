"""Per-route rate limiting with sliding windows.

Clients are identified by account id when authenticated and by IP address
otherwise. Counters are keyed by (route key, client identity) and live in a
CounterStore, so the same limiter works in-process or against Redis.

A RequestCache memoizes verdicts for the lifetime of one inbound request:
asking twice for the same route returns the same answer and registers a
single event.
"""

import asyncio
import ipaddress
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from pcc_gateway.counters.base import CounterStore, StoreUnavailableError

logger = logging.getLogger("pcc.audit")

UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class RateLimitConfig:
    threshold: int
    window_seconds: int

    @property
    def enabled(self) -> bool:
        return self.threshold > 0 and self.window_seconds > 0


@dataclass(frozen=True)
class Authenticated:
    user_id: str

    @property
    def key(self) -> str:
        return f"uid:{self.user_id}"


@dataclass(frozen=True)
class Anonymous:
    ip_address: str

    @property
    def key(self) -> str:
        return f"ip:{self.ip_address}"


ClientIdentity = Authenticated | Anonymous


def resolve_identity(user_id: str | None, client_ip: str | None) -> ClientIdentity:
    """Authenticated identity wins; otherwise fall back to the client IP."""
    if user_id:
        return Authenticated(str(user_id))
    return Anonymous(client_ip or UNKNOWN_CLIENT)


def resolve_client_ip(
    peer: str | None,
    forwarded_for: str | None = None,
    trusted_proxies: Iterable[str] = (),
) -> str:
    """Resolve the client address behind trusted reverse proxies.

    X-Forwarded-For is only honored when the direct peer is a trusted proxy.
    The chain is walked right to left and the first untrusted hop is the
    client. Garbage in the header never raises; it yields the last trusted hop.
    """
    if not peer:
        return UNKNOWN_CLIENT

    trusted = set(trusted_proxies)
    if peer not in trusted or not forwarded_for:
        return peer

    client = peer
    for hop in reversed([h.strip() for h in forwarded_for.split(",") if h.strip()]):
        if not _is_ip(hop):
            break
        client = hop
        if hop not in trusted:
            break
    return client


def _is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


@dataclass
class RequestCache:
    """Verdicts already computed for the current request, keyed by route key.

    Create one per inbound request and drop it when the response is sent.
    """

    verdicts: dict[str, bool] = field(default_factory=dict)

    def get(self, route_key: str) -> bool | None:
        return self.verdicts.get(route_key)

    def set(self, route_key: str, allowed: bool) -> None:
        self.verdicts[route_key] = allowed


class RateLimiter:
    """Sliding-window limiter over an injected counter store.

    Store faults and timeouts fail closed: the request is denied and the
    fault is logged, the handler never sees an exception.
    """

    def __init__(self, store: CounterStore, timeout: float = 0.5):
        self.store = store
        self.timeout = timeout

    @staticmethod
    def composite_key(route_key: str, identity: ClientIdentity) -> str:
        return f"pcc.{route_key}:{identity.key}"

    async def check(
        self,
        route_key: str,
        identity: ClientIdentity,
        config: RateLimitConfig,
        cache: RequestCache | None = None,
    ) -> bool:
        """Return True if allowed; an allowed call counts as one event."""
        if cache is not None:
            cached = cache.get(route_key)
            if cached is not None:
                return cached

        if not config.enabled:
            allowed = True
        else:
            allowed = await self._acquire(self.composite_key(route_key, identity), config)

        if cache is not None:
            cache.set(route_key, allowed)
        return allowed

    def retry_after_seconds(self, config: RateLimitConfig) -> int:
        """Seconds a throttled client should wait: the full configured window."""
        return max(1, config.window_seconds)

    async def _acquire(self, key: str, config: RateLimitConfig) -> bool:
        try:
            return await asyncio.wait_for(
                self.store.acquire(key, config.threshold, config.window_seconds),
                timeout=self.timeout,
            )
        except (StoreUnavailableError, asyncio.TimeoutError) as e:
            logger.error(
                "Rate limit store unavailable, denying request",
                extra={"audit_data": {"rate_limit_key": key, "error": repr(e)}},
            )
            return False
        except Exception:
            logger.exception(
                "Rate limit store failed, denying request",
                extra={"audit_data": {"rate_limit_key": key}},
            )
            return False
