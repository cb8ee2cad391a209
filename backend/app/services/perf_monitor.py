"""Performance monitoring utilities for the quote normalization pipeline."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("housewise-api.perf")


def timed(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for synchronous functions.

    Usage::

        @timed
        def normalize_lines(lines):
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "function timed",
                extra={
                    "function": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for quote processing metrics.

    Tracks:
    - Total quotes processed and lines normalized
    - Cumulative and average processing duration
    - Slowest stage across all quotes
    - Error count broken down by stage name
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._quotes_processed: int = 0
        self._items_normalized: int = 0
        self._total_duration_ms: float = 0.0
        self._stage_durations: Dict[str, list] = {}   # stage -> [duration_ms, ...]
        self._error_counts: Dict[str, int] = {}        # stage -> count
        self._slowest_stage: Optional[str] = None
        self._slowest_stage_ms: float = 0.0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_quote_complete(self, duration_ms: float, item_count: int = 0) -> None:
        """Call once when a quote has been normalized and reconciled."""
        with self._lock:
            self._quotes_processed += 1
            self._items_normalized += item_count
            self._total_duration_ms += duration_ms

    def record_stage_duration(self, stage: str, duration_ms: float) -> None:
        """Record how long a single stage (parse, normalize, reconcile) took."""
        with self._lock:
            self._stage_durations.setdefault(stage, []).append(duration_ms)
            if duration_ms > self._slowest_stage_ms:
                self._slowest_stage_ms = duration_ms
                self._slowest_stage = stage

    def record_error(self, stage: str) -> None:
        """Increment the error counter for a given stage."""
        with self._lock:
            self._error_counts[stage] = self._error_counts.get(stage, 0) + 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            quotes_processed        : int
            items_normalized        : int
            avg_quote_duration_ms   : float  (0 if none processed)
            slowest_stage           : str | None
            slowest_stage_ms        : float
            error_count             : int   (total across all stages)
            error_count_by_stage    : dict  {stage: count}
            stage_avg_durations_ms  : dict  {stage: avg_ms}
        """
        with self._lock:
            avg = (
                round(self._total_duration_ms / self._quotes_processed, 2)
                if self._quotes_processed > 0
                else 0.0
            )
            stage_avgs = {
                stage: round(sum(d) / len(d), 2) if d else 0.0
                for stage, d in self._stage_durations.items()
            }
            return {
                "quotes_processed": self._quotes_processed,
                "items_normalized": self._items_normalized,
                "avg_quote_duration_ms": avg,
                "slowest_stage": self._slowest_stage,
                "slowest_stage_ms": round(self._slowest_stage_ms, 2),
                "error_count": sum(self._error_counts.values()),
                "error_count_by_stage": dict(self._error_counts),
                "stage_avg_durations_ms": stage_avgs,
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._quotes_processed = 0
            self._items_normalized = 0
            self._total_duration_ms = 0.0
            self._stage_durations.clear()
            self._error_counts.clear()
            self._slowest_stage = None
            self._slowest_stage_ms = 0.0


# Module-level singleton; import this instance everywhere else.
tracker = PerformanceTracker()
