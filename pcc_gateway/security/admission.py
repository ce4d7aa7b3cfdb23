"""Admission control for the snapshot routes.

Pipeline per request:
    OPTIONS          -> origin allow-list only (preflight is always answerable)
    GET/HEAD signed  -> signature -> rate limit
    GET/HEAD plain   -> rate limit
    anything else    -> pass-through (the router rejects write methods)

Signature runs before the rate limiter so that probing with bad signatures
cannot spend a legitimate caller's budget. The result is a Verdict which
knows how to render itself as an HTTP response or decorate an allowed one.
"""

import logging
import time
from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass, field
from enum import Enum

from fastapi.responses import JSONResponse, Response

from pcc_gateway.security.origin import allowed_origin
from pcc_gateway.security.ratelimit import (
    ClientIdentity,
    RateLimitConfig,
    RateLimiter,
    RequestCache,
)
from pcc_gateway.security.signature import DEFAULT_SKEW_SECONDS, SignedRequestProof, verify

logger = logging.getLogger("pcc.audit")

SNAPSHOT_ROUTE_KEY = "snapshot"  # shared bucket for the plain and signed routes

SAFE_METHODS = frozenset({"GET", "HEAD"})

RATE_LIMITED_MESSAGE = "Too many requests. Please try again later."
INVALID_SIGNATURE_MESSAGE = "Forbidden: invalid signature."

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


class RouteClass(str, Enum):
    PUBLIC_PLAIN = "public_plain"
    PUBLIC_SIGNED = "public_signed"


class DenyReason(str, Enum):
    RATE_LIMITED = "rate_limited"
    INVALID_SIGNATURE = "invalid_signature"
    ORIGIN_NOT_ALLOWED = "origin_not_allowed"


@dataclass(frozen=True)
class AdmissionRequest:
    method: str
    path: str  # without query string
    origin: str
    proof: SignedRequestProof
    identity: ClientIdentity


@dataclass(frozen=True)
class AdmissionPolicy:
    enable_cors: bool
    allowed_origins: list[str]
    rate_limit: RateLimitConfig
    signing_keys: Mapping[str, str] = field(default_factory=dict, repr=False)
    skew_seconds: int = DEFAULT_SKEW_SECONDS


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    reason: DenyReason | None = None
    retry_after: int | None = None
    cors_origin: str | None = None  # set only when CORS is on and the origin matched
    preflight: bool = False

    @property
    def status_code(self) -> int:
        if self.allowed:
            return 204 if self.preflight else 200
        if self.reason is DenyReason.RATE_LIMITED:
            return 429
        return 403

    def headers(self) -> dict[str, str]:
        headers = {"X-Content-Type-Options": "nosniff"}
        if self.reason is DenyReason.RATE_LIMITED and self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        if self.cors_origin is not None:
            headers["Access-Control-Allow-Origin"] = self.cors_origin
            headers["Vary"] = "Origin"
            if self.preflight:
                headers.update(PREFLIGHT_HEADERS)
        return headers

    def body(self) -> dict | None:
        if self.reason is DenyReason.RATE_LIMITED:
            return {"message": RATE_LIMITED_MESSAGE}
        if self.reason is DenyReason.INVALID_SIGNATURE:
            return {"message": INVALID_SIGNATURE_MESSAGE}
        return None

    def decorate(self, headers: MutableMapping[str, str]) -> None:
        """Apply this verdict's headers to an outgoing response."""
        for name, value in self.headers().items():
            headers[name] = value

    def render(self) -> Response:
        """Build the response for a denial or for a preflight."""
        body = self.body()
        if body is None:
            return Response(status_code=self.status_code, headers=self.headers())
        return JSONResponse(status_code=self.status_code, content=body, headers=self.headers())

    @property
    def terminal(self) -> bool:
        """True when the response is fully decided here (denials and preflights)."""
        return not self.allowed or self.preflight


class AdmissionPipeline:
    """Runs the origin, signature and rate-limit gates in order."""

    def __init__(
        self,
        limiter: RateLimiter,
        route_key: str = SNAPSHOT_ROUTE_KEY,
        clock: Callable[[], float] = time.time,
    ):
        self.limiter = limiter
        self.route_key = route_key
        self.clock = clock

    async def evaluate(
        self,
        request: AdmissionRequest,
        route_class: RouteClass,
        policy: AdmissionPolicy,
        cache: RequestCache,
    ) -> Verdict:
        cors_origin = None
        if policy.enable_cors:
            cors_origin = allowed_origin(request.origin, policy.allowed_origins)

        if request.method == "OPTIONS":
            if policy.enable_cors and cors_origin is None:
                self._log_denial(request, route_class, DenyReason.ORIGIN_NOT_ALLOWED)
                return Verdict(allowed=False, reason=DenyReason.ORIGIN_NOT_ALLOWED)
            return Verdict(allowed=True, cors_origin=cors_origin, preflight=True)

        if request.method not in SAFE_METHODS:
            return Verdict(allowed=True, cors_origin=cors_origin)

        if route_class is RouteClass.PUBLIC_SIGNED and not self._signature_ok(request, policy):
            self._log_denial(request, route_class, DenyReason.INVALID_SIGNATURE)
            return Verdict(
                allowed=False,
                reason=DenyReason.INVALID_SIGNATURE,
                cors_origin=cors_origin,
            )

        if not await self.limiter.check(self.route_key, request.identity, policy.rate_limit, cache):
            self._log_denial(request, route_class, DenyReason.RATE_LIMITED)
            return Verdict(
                allowed=False,
                reason=DenyReason.RATE_LIMITED,
                retry_after=self.limiter.retry_after_seconds(policy.rate_limit),
                cors_origin=cors_origin,
            )

        return Verdict(allowed=True, cors_origin=cors_origin)

    def _signature_ok(self, request: AdmissionRequest, policy: AdmissionPolicy) -> bool:
        try:
            now = int(self.clock())
        except Exception:
            logger.exception("Clock unavailable, rejecting signed request")
            return False
        return verify(
            request.proof,
            request.method,
            request.path,
            policy.signing_keys,
            now,
            policy.skew_seconds,
        )

    def _log_denial(self, request: AdmissionRequest, route_class: RouteClass, reason: DenyReason) -> None:
        logger.warning(
            "Request denied",
            extra={"audit_data": {
                "route": route_class.value,
                "reason": reason.value,
                "method": request.method,
                "path": request.path,
                "client": request.identity.key,
                "origin": request.origin,
                "key_id": request.proof.key_id,
            }},
        )
