"""Signing key store for the signed snapshot route.

Secrets live in their own JSON file, separate from user-editable settings:

    {"keys": {"prompt-bot": "strong-random-secret"}}

The file is re-read when its mtime changes. Secrets are never logged.
"""

import logging

from pcc_gateway.config.jsonfile import MISSING, ReloadingJSONFile
from pcc_gateway.config.settings import get_settings

logger = logging.getLogger("pcc.audit")


class JSONSigningKeyStore:
    """File-backed key_id -> secret map."""

    def __init__(self, path: str):
        self._file = ReloadingJSONFile(path, "signing keys")
        self._keys: dict[str, str] = {}
        self._refresh()

    def _refresh(self) -> None:
        data = self._file.poll()
        if data is None:
            return
        if data is MISSING:
            self._keys = {}
            return

        raw = data.get("keys") if isinstance(data, dict) else None
        if not isinstance(raw, dict):
            raw = {}
        self._keys = {
            str(key_id): secret
            for key_id, secret in raw.items()
            if isinstance(secret, str) and secret
        }
        logger.info("Signing keys loaded", extra={"audit_data": {"key_count": len(self._keys)}})

    def get_keys(self) -> dict[str, str]:
        """Current key map (reloaded if the file changed)."""
        self._refresh()
        return dict(self._keys)


_store: JSONSigningKeyStore | None = None


def get_signing_key_store() -> JSONSigningKeyStore:
    """Get the signing key store singleton."""
    global _store
    if _store is None:
        _store = JSONSigningKeyStore(get_settings().signing_keys_path)
    return _store
