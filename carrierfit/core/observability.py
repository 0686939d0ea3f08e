"""
Observability context for the carrier matching core.
Holds failure counters and a bounded ring of recent errors.
"""

import logging
import threading
from collections import Counter, deque
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Deque, Dict, List, Optional


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for scripts and host applications."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


class ObservabilityContext:
    """
    Per-process counters and recent error records.

    Created once per process (see get_observability) or constructed by the
    caller and passed into the pipeline. flush() logs a summary and resets
    the state, so the host can call it on whatever schedule it runs.
    """

    def __init__(self, max_errors: int = 200):
        self._lock = threading.Lock()
        self._counters: Counter = Counter()
        self._errors: Deque[Dict[str, Any]] = deque(maxlen=max_errors)
        self._started_at = datetime.now(timezone.utc)

    def increment(self, name: str, amount: int = 1) -> None:
        """Increase a named counter."""
        with self._lock:
            self._counters[name] += amount

    def record_error(self, kind: str, detail: str, **context: Any) -> None:
        """Count an error by kind and keep it in the recent-error ring."""
        record = {
            "kind": kind,
            "detail": detail,
            "at": datetime.now(timezone.utc).isoformat(),
            **context,
        }
        with self._lock:
            self._counters[kind] += 1
            self._errors.append(record)

    def count(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def snapshot(self) -> Dict[str, Any]:
        """Return a copy of the current counters and recent errors."""
        with self._lock:
            return {
                "since": self._started_at.isoformat(),
                "counters": dict(self._counters),
                "recent_errors": list(self._errors),
            }

    def recent_errors(self, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [e for e in self._errors if kind is None or e["kind"] == kind]

    def flush(self) -> Dict[str, Any]:
        """Log a summary of the collected state, then reset it."""
        with self._lock:
            summary = {
                "since": self._started_at.isoformat(),
                "counters": dict(self._counters),
                "error_count": len(self._errors),
            }
            self._counters.clear()
            self._errors.clear()
            self._started_at = datetime.now(timezone.utc)

        logger.info(f"Observability flush: {summary}")
        return summary


@lru_cache()
def get_observability() -> ObservabilityContext:
    """Get the process-wide observability context."""
    return ObservabilityContext()
