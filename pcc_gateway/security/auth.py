"""Optional API key authentication for snapshot consumers.

Validates the X-API-Key header against the account store. A request
without a key is anonymous (rate limited by IP) unless
REQUIRE_AUTHENTICATION is set. Preflight requests carry no credentials and
are never authenticated.

Failures are returned as an AuthRejection rather than raised: the route
runs the admission gates against the caller's IP first, so a rejected key
spends the same budget as any other anonymous request.
"""

from dataclasses import dataclass

from fastapi import Request, Security
from fastapi.security import APIKeyHeader

from pcc_gateway.accounts.factory import get_account_store
from pcc_gateway.accounts.models import Account
from pcc_gateway.config.settings import get_settings

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


@dataclass(frozen=True)
class AuthRejection:
    """Why the presented credentials were refused."""

    status_code: int
    detail: str


MISSING_KEY = AuthRejection(401, "Missing API key")
INVALID_KEY = AuthRejection(403, "Invalid API key")
SUSPENDED = AuthRejection(403, "Account suspended")


async def authenticate_account(
    request: Request,
    api_key: str | None = Security(api_key_header),
) -> Account | AuthRejection | None:
    """FastAPI dependency: the calling account, a rejection, or None for anonymous."""
    if request.method == "OPTIONS":
        return None

    if api_key is None:
        return MISSING_KEY if get_settings().require_authentication else None

    store = get_account_store()
    account = await store.get_by_api_key(api_key) if store is not None else None
    if account is None:
        return INVALID_KEY
    if not account.is_active:
        return SUSPENDED
    return account
