"""HMAC request signing for the signed snapshot route.

Signature scheme:
    base = "<METHOD>\\n<PATH>\\n<TIMESTAMP>"
    signature = hex(HMAC-SHA256(base, secret))

PATH never includes the query string and METHOD is compared exactly as the
signer sent it. Required headers: X-PCC-Key, X-PCC-Timestamp, X-PCC-Signature.
"""

import hashlib
import hmac
from collections.abc import Mapping
from dataclasses import dataclass

KEY_HEADER = "X-PCC-Key"
TIMESTAMP_HEADER = "X-PCC-Timestamp"
SIGNATURE_HEADER = "X-PCC-Signature"

DEFAULT_SKEW_SECONDS = 300
# Unix seconds fit in 11 digits until the year 5138
MAX_TIMESTAMP_DIGITS = 12


@dataclass(frozen=True)
class SignedRequestProof:
    key_id: str
    timestamp: str  # unix seconds as sent, decimal string
    signature: str  # lower-case hex

    def __repr__(self) -> str:
        # Keep signatures out of logs and tracebacks
        return f"SignedRequestProof(key_id={self.key_id!r}, timestamp={self.timestamp!r})"


def extract_proof(headers: Mapping[str, str]) -> SignedRequestProof:
    """Build a proof from request headers. Missing headers become empty strings.

    `headers` must do case-insensitive lookups (Starlette Headers does).
    """
    return SignedRequestProof(
        key_id=(headers.get(KEY_HEADER) or "").strip(),
        timestamp=(headers.get(TIMESTAMP_HEADER) or "").strip(),
        signature=(headers.get(SIGNATURE_HEADER) or "").strip().lower(),
    )


def canonical_message(method: str, path: str, timestamp: str) -> str:
    return f"{method}\n{path}\n{timestamp}"


def sign(method: str, path: str, timestamp: str, secret: str) -> str:
    """Compute the hex signature a client must send. Used by callers and tests."""
    message = canonical_message(method, path, timestamp)
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def verify(
    proof: SignedRequestProof,
    method: str,
    path: str,
    keys: Mapping[str, str],
    now: int,
    skew_seconds: int = DEFAULT_SKEW_SECONDS,
) -> bool:
    """Check a request proof. Malformed input is a failed check, never an exception.

    Args:
        proof: Key id, timestamp and signature taken from the request.
        method: HTTP verb exactly as received.
        path: Request path without query string.
        keys: key_id -> secret map.
        now: Current unix time in seconds.
        skew_seconds: Allowed clock difference between signer and verifier (min 1).
    """
    if not proof.key_id or not proof.timestamp or not proof.signature:
        return False

    secret = keys.get(proof.key_id)
    if not isinstance(secret, str) or not secret:
        return False

    # Digits only: rejects signs, whitespace, decimals and non-ASCII digits
    if not (proof.timestamp.isascii() and proof.timestamp.isdigit()):
        return False
    if len(proof.timestamp) > MAX_TIMESTAMP_DIGITS:
        return False
    if abs(int(now) - int(proof.timestamp)) > max(1, skew_seconds):
        return False

    expected = sign(method, path, proof.timestamp, secret)
    received = proof.signature.lower()
    if not received.isascii():
        return False
    return hmac.compare_digest(expected, received)
