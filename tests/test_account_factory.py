"""Tests for pcc_gateway/accounts/factory.py — get_account_store factory."""

import pcc_gateway.accounts.factory as factory_mod
from pcc_gateway.accounts.store import JSONAccountStore


class TestGetAccountStore:

    def test_with_file(self, override_settings, accounts_json_file):
        override_settings(ACCOUNT_CONFIG_PATH=accounts_json_file)
        store = factory_mod.get_account_store()
        assert isinstance(store, JSONAccountStore)

    def test_missing_file(self, override_settings, tmp_path):
        override_settings(ACCOUNT_CONFIG_PATH=str(tmp_path / "nonexistent.json"))
        assert factory_mod.get_account_store() is None

    def test_singleton_returns_same_instance(self, override_settings, accounts_json_file):
        override_settings(ACCOUNT_CONFIG_PATH=accounts_json_file)
        assert factory_mod.get_account_store() is factory_mod.get_account_store()
