from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import cast

DEFAULT_METRICS_CAPACITY = 100


@dataclass(frozen=True)
class PerformanceMetric:
    url: str
    method: str
    status: int
    duration_ms: int
    timestamp: datetime
    error: bool = False


@dataclass(frozen=True)
class PerformanceSummary:
    total_requests: int
    average_response_ms: int
    slowest_request: PerformanceMetric | None
    failed_requests: int
    successful_requests: int


class PerformanceMetricsBuffer:
    """Ring buffer of the most recent HTTP exchanges; the oldest entry is evicted first."""

    def __init__(self, capacity: int = DEFAULT_METRICS_CAPACITY) -> None:
        self._metrics: deque[PerformanceMetric] = deque(maxlen=max(1, capacity))
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return cast(int, self._metrics.maxlen)

    def add(self, metric: PerformanceMetric) -> None:
        with self._lock:
            self._metrics.append(metric)

    def get_all(self) -> list[PerformanceMetric]:
        with self._lock:
            return list(self._metrics)

    def average_ms(self) -> int:
        metrics = self.get_all()
        if not metrics:
            return 0
        return round(sum(metric.duration_ms for metric in metrics) / len(metrics))

    def slowest(self) -> PerformanceMetric | None:
        slowest: PerformanceMetric | None = None
        for metric in self.get_all():
            if slowest is None or metric.duration_ms > slowest.duration_ms:
                slowest = metric
        return slowest

    def summary(self) -> PerformanceSummary:
        metrics = self.get_all()
        failed = sum(1 for metric in metrics if metric.error)
        return PerformanceSummary(
            total_requests=len(metrics),
            average_response_ms=self.average_ms(),
            slowest_request=self.slowest(),
            failed_requests=failed,
            successful_requests=len(metrics) - failed,
        )

    def clear(self) -> None:
        with self._lock:
            self._metrics.clear()
