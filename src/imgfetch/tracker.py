"""WarningTracker: emit each run-scoped warning at most once."""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class WarningTracker:
    """Remember which warnings were already emitted during one run.

    Construct one per run and hand it to every component that can warn about
    the same endpoint or reference; concurrent fetches share it safely.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        """Initialize an empty tracker that logs through ``log``."""
        self._log = log or logger
        self._lock = threading.Lock()
        self._seen: set[str] = set()

    def warn_once(self, key: str, message: str, *args: object) -> bool:
        """Log ``message`` at warning level unless ``key`` was seen. Return whether it was logged."""
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
        self._log.warning(message, *args)
        return True

    def warn_unencrypted(self, uri: str) -> bool:
        """Warn once per URI about plain-text transport."""
        return self.warn_once(
            f"unencrypted:{uri}",
            "Using unencrypted connection to %s - please consider using https instead",
            uri,
        )

    def seen(self, key: str) -> bool:
        """Return whether a warning with ``key`` was emitted."""
        with self._lock:
            return key in self._seen
