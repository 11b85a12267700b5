"""
Audit Metrics
=============
In-process counters for monitoring audit completeness.

A persisted record, a dropped record and an emergency backup are each
counted, so a snapshot shows how many audit writes never reached the store.
"""

from collections import Counter
from contextlib import contextmanager
from time import perf_counter
from typing import Dict, Iterator, List, Optional, Tuple

MetricKey = Tuple[str, Tuple[Tuple[str, str], ...]]


class MetricNames:
    RECORDS_PERSISTED = "audit_records_persisted"
    PERSIST_FAILURES = "audit_persist_failures"
    RECORDS_DROPPED = "audit_records_dropped"
    EMERGENCY_BACKUPS = "audit_emergency_backups"
    EMERGENCY_FAILURES = "audit_emergency_failures"
    DISPATCH_FAILURES = "audit_dispatch_failures"
    RETRY_ATTEMPTS = "audit_retry_attempts"
    RETRY_EXHAUSTED = "audit_retry_exhausted"
    QUEUE_DEPTH = "audit_queue_depth"
    STORE_SAVE_DURATION = "audit_store_save_duration_seconds"


def _key(name: str, labels: Optional[Dict[str, str]]) -> MetricKey:
    return name, tuple(sorted((k, str(v)) for k, v in (labels or {}).items()))


def _render(key: MetricKey) -> str:
    name, labels = key
    if not labels:
        return name
    return name + "{" + ",".join(f"{k}={v}" for k, v in labels) + "}"


class AuditMetrics:
    """Counters, gauges and save timings for one audit pipeline."""

    def __init__(self, service: str = "audit-trail"):
        self.service = service
        self._counters: Counter = Counter()
        self._gauges: Dict[MetricKey, float] = {}
        self._durations: Dict[MetricKey, List[float]] = {}

    def increment(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None) -> None:
        self._counters[_key(name, labels)] += value

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        self._gauges[_key(name, labels)] = value

    def observe(self, name: str, seconds: float, labels: Optional[Dict[str, str]] = None) -> None:
        self._durations.setdefault(_key(name, labels), []).append(seconds)

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> int:
        return self._counters[_key(name, labels)]

    def get_gauge(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self._gauges.get(_key(name, labels), 0.0)

    def snapshot(self) -> Dict[str, float]:
        """
        Flat view of every metric, suitable as structured log context.

        Durations are reported as <name>_count and <name>_max.
        """
        values: Dict[str, float] = {_render(k): v for k, v in self._counters.items()}
        values.update({_render(k): v for k, v in self._gauges.items()})
        for key, samples in self._durations.items():
            name = _render(key)
            values[f"{name}_count"] = len(samples)
            values[f"{name}_max"] = max(samples)
        return values


@contextmanager
def timed(metrics: AuditMetrics, name: str, labels: Optional[Dict[str, str]] = None) -> Iterator[None]:
    """Record the duration of the enclosed block, including when it raises."""
    start = perf_counter()
    try:
        yield
    finally:
        metrics.observe(name, perf_counter() - start, labels)
