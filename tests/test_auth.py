"""Tests for pcc_gateway/security/auth.py — optional API key authentication."""

from unittest.mock import MagicMock

from pcc_gateway.security.auth import (
    INVALID_KEY,
    MISSING_KEY,
    SUSPENDED,
    AuthRejection,
    authenticate_account,
)


def _request(method: str = "GET") -> MagicMock:
    request = MagicMock()
    request.method = method
    return request


class TestAuthenticateAccount:

    async def test_missing_key_is_anonymous(self, override_settings):
        override_settings(REQUIRE_AUTHENTICATION="false")
        assert await authenticate_account(_request(), api_key=None) is None

    async def test_missing_key_rejected_when_required(self, override_settings):
        override_settings(REQUIRE_AUTHENTICATION="true")
        result = await authenticate_account(_request(), api_key=None)
        assert result is MISSING_KEY
        assert result.status_code == 401

    async def test_preflight_never_authenticated(self, override_settings):
        override_settings(REQUIRE_AUTHENTICATION="true")
        assert await authenticate_account(_request("OPTIONS"), api_key="anything") is None

    async def test_store_match_returns_account(self, override_settings, accounts_json_file):
        override_settings(ACCOUNT_CONFIG_PATH=accounts_json_file)
        account = await authenticate_account(_request(), api_key="key-aaa-111")
        assert account.account_id == "acct-a"

    async def test_unknown_key_returns_403(self, override_settings, accounts_json_file):
        override_settings(ACCOUNT_CONFIG_PATH=accounts_json_file)
        result = await authenticate_account(_request(), api_key="wrong-key")
        assert result is INVALID_KEY
        assert result.status_code == 403

    async def test_no_store_rejects_keys(self, override_settings, tmp_path):
        override_settings(ACCOUNT_CONFIG_PATH=str(tmp_path / "nope.json"))
        assert await authenticate_account(_request(), api_key="key-aaa-111") is INVALID_KEY

    async def test_suspended_account_returns_403(self, override_settings, accounts_json_file):
        override_settings(ACCOUNT_CONFIG_PATH=accounts_json_file)
        result = await authenticate_account(_request(), api_key="key-bbb-222")
        assert result is SUSPENDED
        assert isinstance(result, AuthRejection)
        assert result.status_code == 403
        assert "suspended" in result.detail.lower()
