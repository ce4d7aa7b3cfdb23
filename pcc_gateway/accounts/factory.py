"""Factory for the account store."""

import os

from pcc_gateway.accounts.store import AccountStore, JSONAccountStore
from pcc_gateway.config.settings import get_settings

_store: AccountStore | None = None


def get_account_store() -> AccountStore | None:
    """Get the account store singleton. Returns None if no accounts file exists."""
    global _store
    if _store is not None:
        return _store

    path = get_settings().account_config_path
    if path and os.path.isfile(path):
        _store = JSONAccountStore(path)
        return _store
    return None  # no accounts file = anonymous-only mode
