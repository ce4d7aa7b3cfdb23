"""CORS origin allow-listing.

Patterns are either exact origins ("https://app.example.com:8443") or
wildcard subdomains ("*.example.com", "https://*.example.com"). Wildcard
patterns match the bare domain and any subdomain; their scheme is ignored.
"""

import re
from collections.abc import Iterable
from urllib.parse import urlsplit

_WILDCARD_PREFIXES = ("*.", "http://*.", "https://*.")
_SCHEME_RE = re.compile(r"^\w+://")
_EXACT_ORIGIN_RE = re.compile(r"^https?://[^/]+$", re.I)


def allowed_origin(request_origin: str, allow_list: Iterable[str]) -> str | None:
    """Return the request origin unchanged if any pattern allows it, else None.

    An empty origin means a same-origin or non-CORS request: no decision applies.
    """
    if not request_origin:
        return None

    for pattern in allow_list:
        if _matches(request_origin, pattern):
            return request_origin
    return None


def is_valid_origin_pattern(pattern: str) -> bool:
    """Whether an allow-list entry is a wildcard pattern or a bare scheme://host[:port]."""
    pattern = pattern.strip()
    if pattern.startswith(_WILDCARD_PREFIXES):
        return True
    return bool(_EXACT_ORIGIN_RE.match(pattern))


def _matches(origin: str, pattern: str) -> bool:
    origin = origin.rstrip("/")
    pattern = pattern.strip().rstrip("/")
    if not pattern:
        return False

    if origin.lower() == pattern.lower():
        return True

    if not pattern.startswith(_WILDCARD_PREFIXES):
        return False

    domain = _SCHEME_RE.sub("", pattern).lstrip("*.").lower()
    host = _host_of(origin)
    if not host or not domain:
        return False
    return host == domain or host.endswith("." + domain)


def _host_of(origin: str) -> str:
    try:
        return (urlsplit(origin).hostname or "").lower()
    except ValueError:
        # Unparsable origins (e.g. bad IPv6 brackets) never match
        return ""
