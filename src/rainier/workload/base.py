# src/rainier/workload/base.py
"""Run summary reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..core.metrics import ExecutionStats
from .scheduler import ScheduleResult


@dataclass
class RunSummary:
    """Results of a chain run."""
    iterations_requested: int
    iterations_completed: int
    iterations_failed: int
    iterations_cancelled: int
    total_chains: int
    statements_executed: int
    total_time_seconds: float
    statements_per_second: float
    latency_percentiles: Dict[str, float]
    errors: List[str] = field(default_factory=list)
    additional_metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        """Share of finished iterations that completed."""
        total = self.iterations_completed + self.iterations_failed
        if total == 0:
            return 0.0
        return self.iterations_completed / total

    @property
    def succeeded(self) -> bool:
        return self.iterations_failed == 0 and self.iterations_cancelled == 0

    @classmethod
    def from_run(cls,
                 n_iterations: int,
                 result: ScheduleResult,
                 stats: ExecutionStats,
                 max_errors: int = 100) -> "RunSummary":
        """Combine the scheduler outcome with the collected statistics."""
        snapshot = stats.snapshot()
        return cls(
            iterations_requested=n_iterations,
            iterations_completed=result.iterations_completed,
            iterations_failed=result.iterations_failed,
            iterations_cancelled=result.iterations_cancelled,
            total_chains=result.total_chains,
            statements_executed=result.statements_executed,
            total_time_seconds=stats.elapsed_seconds(),
            statements_per_second=stats.statements_per_second(),
            latency_percentiles=stats.get_percentiles(),
            errors=result.errors[:max_errors],
            additional_metrics={
                "statement_errors": snapshot["statement_errors"],
                "retries": snapshot["retries"],
                "skipped_branches": snapshot["skipped_branches"],
                "rows_returned": snapshot["rows_returned"],
                "steps": snapshot["steps"],
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for reporting."""
        return {
            "iterations_requested": self.iterations_requested,
            "iterations_completed": self.iterations_completed,
            "iterations_failed": self.iterations_failed,
            "iterations_cancelled": self.iterations_cancelled,
            "total_chains": self.total_chains,
            "statements_executed": self.statements_executed,
            "total_time_seconds": self.total_time_seconds,
            "statements_per_second": self.statements_per_second,
            "success_rate": self.success_rate,
            "latency_p50": self.latency_percentiles.get("p50", 0.0),
            "latency_p95": self.latency_percentiles.get("p95", 0.0),
            "latency_p99": self.latency_percentiles.get("p99", 0.0),
            "error_count": len(self.errors),
            "errors": list(self.errors),
            **self.additional_metrics
        }
