"""Application settings loaded from environment variables.

Signing secrets are NOT part of these settings. They live in a separate,
more restricted JSON file (see pcc_gateway.security.keys); only its path is here.
"""

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings

from pcc_gateway.security.admission import AdmissionPolicy
from pcc_gateway.security.origin import is_valid_origin_pattern
from pcc_gateway.security.ratelimit import RateLimitConfig

logger = logging.getLogger("pcc.audit")


class Settings(BaseSettings):
    # CORS
    # Comma-separated list: exact origins or wildcard subdomains ("*.example.com")
    allowed_origins: str = ""
    enable_cors: bool = False

    # Rate limiting (threshold or window <= 0 disables it)
    rate_limit_threshold: int = 60
    rate_limit_window: int = 60  # seconds
    rate_limit_backend: str = "memory"  # "memory" | "redis"
    redis_url: str = "redis://localhost:6379/0"
    rate_limit_store_timeout: float = 0.5  # seconds before failing closed

    # Signed route
    signing_keys_path: str = "signing_keys.json"
    signature_skew_seconds: int = 300

    # Client identity
    account_config_path: str = "accounts.json"
    require_authentication: bool = False
    trusted_proxies: str = ""  # comma-separated proxy IPs allowed to set X-Forwarded-For

    # Snapshot
    cache_max_age: int = 300

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse the allow-list, dropping entries that are not origin patterns."""
        patterns = []
        for entry in (p.strip() for p in self.allowed_origins.split(",")):
            if not entry:
                continue
            if not is_valid_origin_pattern(entry):
                logger.warning("Ignoring invalid allowed origin", extra={"audit_data": {"origin": entry}})
                continue
            patterns.append(entry)
        return patterns

    @property
    def trusted_proxies_list(self) -> list[str]:
        return [p.strip() for p in self.trusted_proxies.split(",") if p.strip()]

    @property
    def rate_limit(self) -> RateLimitConfig:
        return RateLimitConfig(
            threshold=self.rate_limit_threshold,
            window_seconds=self.rate_limit_window,
        )

    def admission_policy(self, signing_keys: dict[str, str]) -> AdmissionPolicy:
        """Snapshot of everything the admission pipeline reads for one request."""
        return AdmissionPolicy(
            enable_cors=self.enable_cors,
            allowed_origins=self.allowed_origins_list,
            rate_limit=self.rate_limit,
            signing_keys=signing_keys,
            skew_seconds=self.signature_skew_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
