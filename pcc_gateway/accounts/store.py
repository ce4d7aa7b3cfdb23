"""Account lookup by API key.

The JSON file lists the known consumers:

    {"accounts": [{"account_id": "ci-bot", "api_key": "...", "label": "CI", "status": "active"}]}

Malformed entries are skipped with a warning instead of failing the whole
file; a file that cannot be parsed leaves the previous accounts in place.
"""

import hashlib
import hmac
import logging
from abc import ABC, abstractmethod

from pcc_gateway.accounts.models import ACCOUNT_STATUSES, Account
from pcc_gateway.config.jsonfile import MISSING, ReloadingJSONFile

logger = logging.getLogger("pcc.audit")


class AccountStore(ABC):
    """Abstract base for account lookups."""

    @abstractmethod
    async def get_by_api_key(self, api_key: str) -> Account | None:
        """Look up an account by API key. Returns None if not found."""
        ...


def _key_digest(api_key: str) -> bytes:
    return hashlib.sha256(api_key.encode("utf-8")).digest()


class JSONAccountStore(AccountStore):
    """File-backed account store, reloaded when the file changes."""

    def __init__(self, path: str):
        self._file = ReloadingJSONFile(path, "accounts")
        self._entries: list[tuple[bytes, Account]] = []
        self._refresh()

    @property
    def accounts(self) -> list[Account]:
        return [account for _, account in self._entries]

    def _refresh(self) -> None:
        data = self._file.poll()
        if data is None:
            return
        if data is MISSING:
            self._entries = []
            return

        raw = data.get("accounts") if isinstance(data, dict) else None
        entries: list[tuple[bytes, Account]] = []
        seen: set[bytes] = set()
        for item in raw if isinstance(raw, list) else []:
            account = _parse_account(item)
            if account is None:
                continue
            digest = _key_digest(account.api_key)
            if digest in seen:
                logger.warning(
                    "Duplicate API key in accounts file, keeping first",
                    extra={"audit_data": {"account_id": account.account_id}},
                )
                continue
            seen.add(digest)
            entries.append((digest, account))

        self._entries = entries
        logger.info("Accounts loaded", extra={"audit_data": {"account_count": len(entries)}})

    async def get_by_api_key(self, api_key: str) -> Account | None:
        """Compare against every stored digest so timing does not reveal a match position."""
        self._refresh()
        candidate = _key_digest(api_key)
        match: Account | None = None
        for digest, account in self._entries:
            if hmac.compare_digest(candidate, digest) and match is None:
                match = account
        return match


def _parse_account(item) -> Account | None:
    if not isinstance(item, dict):
        logger.warning("Skipping malformed account entry")
        return None

    account_id = item.get("account_id")
    api_key = item.get("api_key")
    status = item.get("status", "active")
    if not isinstance(account_id, str) or not account_id:
        logger.warning("Skipping account entry without account_id")
        return None
    if not isinstance(api_key, str) or not api_key:
        logger.warning("Skipping account without API key", extra={"audit_data": {"account_id": account_id}})
        return None
    if status not in ACCOUNT_STATUSES:
        logger.warning(
            "Skipping account with unknown status",
            extra={"audit_data": {"account_id": account_id, "status": str(status)}},
        )
        return None

    return Account(
        account_id=account_id,
        api_key=api_key,
        label=str(item.get("label", "")),
        status=status,
    )
