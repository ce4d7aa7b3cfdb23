"""Shared fixtures for the snapshot gateway test suite."""

import json
import logging

import pytest

import pcc_gateway.accounts.factory as accounts_factory_mod
import pcc_gateway.counters.factory as counters_factory_mod
import pcc_gateway.security.keys as keys_mod
from pcc_gateway.config.settings import get_settings
from pcc_gateway.counters.memory import MemoryCounterStore
from pcc_gateway.security.admission import AdmissionPolicy, AdmissionRequest
from pcc_gateway.security.ratelimit import Anonymous, RateLimitConfig
from pcc_gateway.security.signature import SignedRequestProof

SNAPSHOT_PATH = "/project-context-connector/snapshot"
SIGNED_PATH = "/project-context-connector/snapshot/signed"


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    """Reset store singletons and audit logger state between tests."""
    monkeypatch.setattr(accounts_factory_mod, "_store", None)
    monkeypatch.setattr(counters_factory_mod, "_store", None)
    monkeypatch.setattr(keys_mod, "_store", None)
    yield
    audit = logging.getLogger("pcc.audit")
    audit.handlers.clear()
    audit.propagate = True


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(ENABLE_CORS="true", RATE_LIMIT_THRESHOLD="2")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()


@pytest.fixture
def accounts_json_file(tmp_path):
    """Create a temp accounts.json file and return its path."""
    data = {
        "accounts": [
            {"account_id": "acct-a", "api_key": "key-aaa-111", "label": "Prompt bot"},
            {"account_id": "acct-b", "api_key": "key-bbb-222", "status": "suspended"},
        ]
    }
    path = tmp_path / "accounts.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


@pytest.fixture
def signing_keys_file(tmp_path):
    """Create a temp signing keys file with one usable key and return its path."""
    data = {"keys": {"bot": "topsecret", "empty": ""}}
    path = tmp_path / "signing_keys.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


@pytest.fixture
def memory_store() -> MemoryCounterStore:
    return MemoryCounterStore()


@pytest.fixture
def make_policy():
    """Build an AdmissionPolicy with test-friendly defaults."""
    def _make(**kwargs) -> AdmissionPolicy:
        defaults = {
            "enable_cors": True,
            "allowed_origins": ["https://app.example.com", "*.example.org"],
            "rate_limit": RateLimitConfig(threshold=2, window_seconds=60),
            "signing_keys": {"bot": "topsecret"},
            "skew_seconds": 300,
        }
        defaults.update(kwargs)
        return AdmissionPolicy(**defaults)

    return _make


@pytest.fixture
def make_request():
    """Build an AdmissionRequest for an anonymous client."""
    def _make(
        method: str = "GET",
        path: str = SNAPSHOT_PATH,
        origin: str = "",
        proof: SignedRequestProof | None = None,
        ip: str = "203.0.113.7",
    ) -> AdmissionRequest:
        return AdmissionRequest(
            method=method,
            path=path,
            origin=origin,
            proof=proof or SignedRequestProof("", "", ""),
            identity=Anonymous(ip),
        )

    return _make
