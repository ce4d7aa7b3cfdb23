"""Project Context Connector gateway — FastAPI application entry point.

Serves a read-only snapshot of the running environment on two routes that
share one rate-limit bucket:

    /project-context-connector/snapshot          plain (CORS + rate limit)
    /project-context-connector/snapshot/signed   HMAC signed (CORS + signature + rate limit)
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response

from pcc_gateway.accounts.models import Account
from pcc_gateway.config.settings import Settings, get_settings
from pcc_gateway.counters.factory import close_counter_store, get_counter_store
from pcc_gateway.logging.audit import (
    RequestTimer,
    get_audit_logger,
    setup_logging,
    start_request,
)
from pcc_gateway.security.admission import (
    AdmissionPipeline,
    AdmissionRequest,
    RouteClass,
)
from pcc_gateway.security.auth import AuthRejection, authenticate_account
from pcc_gateway.security.keys import get_signing_key_store
from pcc_gateway.security.ratelimit import RateLimiter, RequestCache, resolve_client_ip, resolve_identity
from pcc_gateway.security.signature import extract_proof
from pcc_gateway.snapshot.builder import EnvironmentSnapshotBuilder, SnapshotBuilder

VERSION = "1.0.0"

SNAPSHOT_PATH = "/project-context-connector/snapshot"
SIGNED_SNAPSHOT_PATH = "/project-context-connector/snapshot/signed"
SNAPSHOT_METHODS = ["GET", "HEAD", "OPTIONS"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    get_audit_logger().info("Gateway started")
    yield
    await close_counter_store()
    get_audit_logger().info("Gateway stopped")


app = FastAPI(
    title="Project Context Connector",
    description="Read-only project context snapshot behind CORS, HMAC and rate limiting",
    version=VERSION,
    lifespan=lifespan,
)


def get_request_cache() -> RequestCache:
    """One cache per request: FastAPI reuses a dependency's value within a request."""
    return RequestCache()


def get_pipeline() -> AdmissionPipeline:
    settings = get_settings()
    limiter = RateLimiter(get_counter_store(), timeout=settings.rate_limit_store_timeout)
    return AdmissionPipeline(limiter)


def get_snapshot_builder() -> SnapshotBuilder:
    return EnvironmentSnapshotBuilder(cache_max_age=get_settings().cache_max_age)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


@app.api_route(SNAPSHOT_PATH, methods=SNAPSHOT_METHODS)
async def snapshot(
    request: Request,
    auth: Account | AuthRejection | None = Depends(authenticate_account),
    cache: RequestCache = Depends(get_request_cache),
    pipeline: AdmissionPipeline = Depends(get_pipeline),
    builder: SnapshotBuilder = Depends(get_snapshot_builder),
):
    return await _serve_snapshot(request, RouteClass.PUBLIC_PLAIN, auth, cache, pipeline, builder)


@app.api_route(SIGNED_SNAPSHOT_PATH, methods=SNAPSHOT_METHODS)
async def signed_snapshot(
    request: Request,
    auth: Account | AuthRejection | None = Depends(authenticate_account),
    cache: RequestCache = Depends(get_request_cache),
    pipeline: AdmissionPipeline = Depends(get_pipeline),
    builder: SnapshotBuilder = Depends(get_snapshot_builder),
):
    return await _serve_snapshot(request, RouteClass.PUBLIC_SIGNED, auth, cache, pipeline, builder)


async def _serve_snapshot(
    request: Request,
    route_class: RouteClass,
    auth: Account | AuthRejection | None,
    cache: RequestCache,
    pipeline: AdmissionPipeline,
    builder: SnapshotBuilder,
) -> Response:
    """Admission: Origin -> Signature (signed route) -> Rate Limit -> Auth -> Build -> Decorate.

    Rejected credentials are judged as the anonymous caller they turned out
    to be, so the rejection is only sent once the IP's budget allows it.
    """
    logger = get_audit_logger()
    rid = start_request()
    account = auth if isinstance(auth, Account) else None

    settings = get_settings()
    signing_keys = get_signing_key_store().get_keys() if route_class is RouteClass.PUBLIC_SIGNED else {}
    policy = settings.admission_policy(signing_keys)

    admission = _admission_request(request, account, settings)
    verdict = await pipeline.evaluate(admission, route_class, policy, cache)
    if verdict.terminal:
        response = verdict.render()
        response.headers["X-Request-Id"] = rid
        return response

    if isinstance(auth, AuthRejection):
        logger.warning(
            "Authentication failed",
            extra={"audit_data": {
                "route": route_class.value,
                "status": auth.status_code,
                "detail": auth.detail,
                "client": admission.identity.key,
            }},
        )
        response = JSONResponse(status_code=auth.status_code, content={"detail": auth.detail})
        response.headers["X-Request-Id"] = rid
        verdict.decorate(response.headers)
        return response

    with RequestTimer() as timer:
        data = builder.build()
    max_age = int(data["_meta"]["cache"]["max_age"])

    if request.method == "HEAD":
        response = Response(status_code=200, media_type="application/json")
    else:
        response = JSONResponse(status_code=200, content=data)
    response.headers["Cache-Control"] = f"max-age={max_age}, public"
    response.headers["X-Request-Id"] = rid
    verdict.decorate(response.headers)

    logger.info(
        "Snapshot served",
        extra={"audit_data": {
            "route": route_class.value,
            "method": request.method,
            "account_id": account.account_id if account else None,
            "cors_origin": verdict.cors_origin,
            "build_ms": timer.elapsed_ms,
        }},
    )
    return response


def _admission_request(request: Request, account: Account | None, settings: Settings) -> AdmissionRequest:
    client_ip = resolve_client_ip(
        request.client.host if request.client else None,
        request.headers.get("X-Forwarded-For"),
        settings.trusted_proxies_list,
    )
    return AdmissionRequest(
        method=request.method,
        path=request.url.path,
        origin=request.headers.get("Origin", ""),
        proof=extract_proof(request.headers),
        identity=resolve_identity(account.account_id if account else None, client_ip),
    )
