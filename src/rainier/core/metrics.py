# src/rainier/core/metrics.py
"""Thread-safe execution counters and latency samples."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple
import numpy as np
import logging

logger = logging.getLogger(__name__)


class StatementObserver(Protocol):
    """Receives every statement execution, e.g. a Prometheus exporter."""

    def record_statement(self, step: int, duration_seconds: float, rows: int, success: bool) -> None:
        ...


@dataclass
class StepMetrics:
    """Metrics for one chain step (statement position)."""
    step: int
    count: int = 0
    error_count: int = 0
    rows_returned: int = 0
    latencies: List[float] = field(default_factory=list)

    def get_percentiles(self) -> Tuple[float, float, float]:
        """Calculate p50, p95, p99 in milliseconds."""
        return percentiles(self.latencies)


def percentiles(latencies: List[float]) -> Tuple[float, float, float]:
    """Return (p50, p95, p99) of latency samples, zeros when empty."""
    if not latencies:
        return 0.0, 0.0, 0.0

    sorted_latencies = np.sort(latencies)
    p50 = np.percentile(sorted_latencies, 50)
    p95 = np.percentile(sorted_latencies, 95)
    p99 = np.percentile(sorted_latencies, 99)

    return float(p50), float(p95), float(p99)


class ExecutionStats:
    """Aggregates statement executions across all worker threads."""

    def __init__(self,
                 observer: Optional[StatementObserver] = None,
                 max_latency_samples: int = 100_000):
        self.observer = observer
        self.max_latency_samples = max_latency_samples
        self._lock = threading.Lock()
        self._start_time = time.monotonic()
        self.statements_executed = 0
        self.statement_errors = 0
        self.retries = 0
        self.skipped_branches = 0
        self.rows_returned = 0
        self.steps: Dict[int, StepMetrics] = {}
        self._latencies: List[float] = []

    def reset(self) -> None:
        """Reset all counters for a new run."""
        with self._lock:
            self._start_time = time.monotonic()
            self.statements_executed = 0
            self.statement_errors = 0
            self.retries = 0
            self.skipped_branches = 0
            self.rows_returned = 0
            self.steps = {}
            self._latencies = []

    def _step(self, step: int) -> StepMetrics:
        metrics = self.steps.get(step)
        if metrics is None:
            metrics = self.steps[step] = StepMetrics(step=step)
        return metrics

    def record_success(self, step: int, duration_seconds: float, rows: int) -> None:
        """Record a successful statement execution."""
        latency_ms = duration_seconds * 1000.0
        with self._lock:
            self.statements_executed += 1
            self.rows_returned += rows
            metrics = self._step(step)
            metrics.count += 1
            metrics.rows_returned += rows
            if len(self._latencies) < self.max_latency_samples:
                self._latencies.append(latency_ms)
                metrics.latencies.append(latency_ms)
        if self.observer is not None:
            self.observer.record_statement(step, duration_seconds, rows, True)

    def record_failure(self, step: int, duration_seconds: float) -> None:
        """Record a failed statement execution."""
        with self._lock:
            self.statement_errors += 1
            self._step(step).error_count += 1
        if self.observer is not None:
            self.observer.record_statement(step, duration_seconds, 0, False)

    def record_retry(self) -> None:
        with self._lock:
            self.retries += 1

    def record_skipped_branch(self) -> None:
        with self._lock:
            self.skipped_branches += 1

    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start_time

    def get_percentiles(self) -> Dict[str, float]:
        """Latency percentiles over all steps, in milliseconds."""
        with self._lock:
            samples = list(self._latencies)
        p50, p95, p99 = percentiles(samples)
        return {"p50": p50, "p95": p95, "p99": p99}

    def statements_per_second(self) -> float:
        elapsed = self.elapsed_seconds()
        if elapsed > 0:
            return self.statements_executed / elapsed
        return 0.0

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view for reports."""
        with self._lock:
            steps = {}
            for step, m in sorted(self.steps.items()):
                p50, _, p99 = m.get_percentiles()
                steps[step] = {
                    "count": m.count,
                    "errors": m.error_count,
                    "rows": m.rows_returned,
                    "p50_ms": p50,
                    "p99_ms": p99,
                }
            counters = {
                "statements_executed": self.statements_executed,
                "statement_errors": self.statement_errors,
                "retries": self.retries,
                "skipped_branches": self.skipped_branches,
                "rows_returned": self.rows_returned,
            }
        return {**counters, "steps": steps}
