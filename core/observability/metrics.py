"""
Metrics Collection for the Board Sync Pipeline

In-memory counters for one process:
- batches started / completed / in progress
- record outcomes, broken down by Action kind and error code
- pipeline retries
- stage timings (resolve, locate, execute, record, batch) with average and p95

The API server reports the shared collector at /sync/metrics. The CLI and
tests pass their own collector so counts stay per run.
"""

import math
from collections import Counter, deque
from threading import Lock
from typing import Any, Deque, Dict, Optional


# Samples kept per stage for percentiles
MAX_SAMPLES = 1000


class TimingWindow:
    """Most recent duration samples for one stage."""

    def __init__(self, size: int = MAX_SAMPLES):
        self._samples: Deque[float] = deque(maxlen=size)

    def add(self, duration_ms: float):
        self._samples.append(float(duration_ms))

    def __len__(self) -> int:
        return len(self._samples)

    def average(self) -> float:
        if not self._samples:
            return 0.0
        return sum(self._samples) / len(self._samples)

    def percentile(self, pct: float) -> float:
        """Nearest-rank percentile."""
        if not self._samples:
            return 0.0
        ordered = sorted(self._samples)
        rank = max(1, math.ceil(pct / 100 * len(ordered)))
        return ordered[rank - 1]

    def stats(self) -> Dict[str, float]:
        return {"average_ms": self.average(), "p95_ms": self.percentile(95)}


class MetricsCollector:
    """
    Thread-safe counters for sync batches and records.

    Usage:
        metrics = MetricsCollector()
        metrics.record_record_started()
        metrics.record_record_succeeded("create", duration_ms=120)
        metrics.get_summary()["records"]["by_action"]  # {"create": 1}
    """

    _instance: Optional["MetricsCollector"] = None
    _instance_lock = Lock()

    def __init__(self):
        self._lock = Lock()
        self._batches = Counter()
        self._open_batches = set()
        self._records = Counter()
        self._by_action = Counter()
        self._by_error = Counter()
        self._overall = TimingWindow()
        self._stages: Dict[str, TimingWindow] = {}

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Process-wide collector."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def _time(self, stage: str, duration_ms: float):
        self._overall.add(duration_ms)
        self._stages.setdefault(stage, TimingWindow()).add(duration_ms)

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    def record_batch_started(self, batch_id: str):
        with self._lock:
            self._batches["started"] += 1
            self._open_batches.add(batch_id)

    def record_batch_completed(self, batch_id: str, duration_ms: Optional[float] = None):
        with self._lock:
            self._batches["completed"] += 1
            self._open_batches.discard(batch_id)
            if duration_ms is not None:
                self._time("batch", duration_ms)

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def record_record_started(self):
        with self._lock:
            self._records["started"] += 1

    def record_record_succeeded(self, action: str, duration_ms: Optional[float] = None):
        with self._lock:
            self._records["succeeded"] += 1
            self._by_action[action] += 1
            if duration_ms is not None:
                self._time("record", duration_ms)

    def record_record_skipped(self, reason: str):
        with self._lock:
            self._records["skipped"] += 1
            self._by_error[reason] += 1

    def record_record_failed(self, error_code: str):
        with self._lock:
            self._records["failed"] += 1
            self._by_error[error_code] += 1

    def record_record_retry(self, attempt: int, error_code: str):
        with self._lock:
            self._records["retries"] += 1

    # -------------------------------------------------------------------------
    # Timings
    # -------------------------------------------------------------------------

    def record_processing_time(self, stage: str, duration_ms: float):
        with self._lock:
            self._time(stage, duration_ms)

    def get_timing_stats(self, stage: Optional[str] = None) -> Dict[str, float]:
        """Average, p95 and sample count for a stage, or across all stages."""
        with self._lock:
            window = self._overall if stage is None else self._stages.get(stage, TimingWindow())
            return {**window.stats(), "sample_count": len(window)}

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "batches": {
                    "started": self._batches["started"],
                    "completed": self._batches["completed"],
                    "in_progress": len(self._open_batches),
                },
                "records": {
                    **{key: self._records[key] for key in ("started", "succeeded", "skipped", "failed", "retries")},
                    "by_error": dict(self._by_error),
                    "by_action": dict(self._by_action),
                },
                "timings": {
                    "overall": self._overall.stats(),
                    "by_stage": {stage: window.stats() for stage, window in self._stages.items()},
                },
            }


def get_metrics() -> MetricsCollector:
    """Shared collector reported by the API."""
    return MetricsCollector.instance()


def record_processing_time(stage: str, duration_ms: float):
    get_metrics().record_processing_time(stage, duration_ms)
