"""JSON config files that are re-read when they change on disk.

Used for the signing key file and the account file: both are edited out of
band (rotation, suspension) and picked up without a restart.
"""

import json
import logging
import os

logger = logging.getLogger("pcc.audit")

MISSING = object()


class ReloadingJSONFile:
    """Polls one JSON file by mtime.

    `poll()` returns the parsed document when the file changed, `MISSING`
    when the file does not exist, and None when there is nothing new. A file
    that fails to parse is reported once and then treated as unchanged, so
    callers keep serving their last good state until it is rewritten.
    """

    def __init__(self, path: str, kind: str):
        self.path = path
        self._kind = kind
        self._last_mtime: float | None = None

    def poll(self):
        try:
            mtime = os.path.getmtime(self.path)
        except OSError:
            self._last_mtime = None
            return MISSING

        if mtime == self._last_mtime:
            return None
        self._last_mtime = mtime

        try:
            with open(self.path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            # Error type only: the message can quote file contents
            logger.error(
                f"Could not read {self._kind} file",
                extra={"audit_data": {"path": self.path, "error": type(e).__name__}},
            )
            return None
