"""Snapshot payload builders.

The admission layer only needs `SnapshotBuilder.build()`; this module ships
a builder that describes the running Python environment: interpreter,
platform and installed distributions. Only non-sensitive metadata is
included (no paths, no environment variables).
"""

import platform
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from importlib import metadata


class SnapshotBuilder(ABC):
    """Produces the JSON-serializable snapshot served on Allow."""

    @abstractmethod
    def build(self) -> dict:
        """Build the snapshot. Must include `_meta.cache.max_age`."""
        ...


class EnvironmentSnapshotBuilder(SnapshotBuilder):
    def __init__(self, cache_max_age: int = 300):
        self.cache_max_age = max(0, cache_max_age)

    def build(self) -> dict:
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "python": {
                "version": platform.python_version(),
                "implementation": platform.python_implementation(),
            },
            "platform": {
                "system": platform.system(),
                "machine": platform.machine(),
            },
            "packages": _installed_packages(),
            "_meta": {
                "cache": {"max_age": self.cache_max_age},
            },
        }


def _installed_packages() -> list[dict]:
    packages: dict[str, dict] = {}
    for dist in metadata.distributions():
        name = dist.metadata["Name"]
        if not name:
            # Broken installs can leave metadata without a name
            continue
        # First one on sys.path wins, like the import system
        packages.setdefault(name.lower(), {"name": name, "version": dist.version})
    return sorted(packages.values(), key=lambda p: p["name"].lower())
