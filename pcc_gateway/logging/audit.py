"""Structured JSON audit logging for the snapshot gateway.

Every admission decision worth keeping (denials, store faults, served
snapshots, key reloads) is written to the "pcc.audit" logger as one JSON
line on stdout, and optionally to AUDIT_LOG_FILE as well.

Callers attach fields with ``extra={"audit_data": {...}}``. Credential-like
fields are masked by the formatter, so a careless call site cannot leak a
signature or secret into the log stream.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from pcc_gateway.config.settings import get_settings

AUDIT_LOGGER = "pcc.audit"

REDACTED = "[redacted]"
SENSITIVE_FIELDS = frozenset({"signature", "secret", "api_key", "authorization"})
# audit_data may not overwrite these
RESERVED_FIELDS = frozenset({"timestamp", "level", "logger", "message", "request_id"})

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, merged with the record's audit_data."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(""),
        }
        audit_data = getattr(record, "audit_data", None) or {}
        for key, value in audit_data.items():
            if key in RESERVED_FIELDS:
                continue
            entry[key] = REDACTED if key.lower() in SENSITIVE_FIELDS else value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging() -> None:
    """(Re)configure the audit logger from settings. Safe to call repeatedly."""
    settings = get_settings()

    logger = logging.getLogger(AUDIT_LOGGER)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = JSONFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.audit_log_file:
        handlers.append(logging.FileHandler(settings.audit_log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # Root handlers would print every line twice
    logger.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


def start_request() -> str:
    """Allocate a request id and bind it to the current context."""
    rid = generate_request_id()
    request_id_var.set(rid)
    return rid


class RequestTimer:
    """Measures a block in milliseconds (used for snapshot build time)."""

    def __init__(self):
        self.elapsed_ms: float = 0.0
        self._start: float = 0.0

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc):
        self.elapsed_ms = round((time.perf_counter() - self._start) * 1000, 2)
