# src/rainier/monitoring/exporter.py
"""Metric export to Prometheus."""

from __future__ import annotations

from typing import Any, Dict, Optional
import logging

from prometheus_client import CollectorRegistry, Gauge, Counter, Histogram, push_to_gateway
from prometheus_client.exposition import basic_auth_handler, default_handler

logger = logging.getLogger(__name__)


class PrometheusExporter:
    """Collects statement metrics in a private registry and pushes them."""

    def __init__(self,
                pushgateway_url: Optional[str] = None,
                job_name: str = "rainier",
                instance: Optional[str] = None,
                username: Optional[str] = None,
                password: Optional[str] = None):
        """
        Initialize Prometheus exporter.

        Args:
            pushgateway_url: URL of Prometheus pushgateway (None to only collect)
            job_name: Job name for grouping metrics
            instance: Instance label
            username: Basic auth username
            password: Basic auth password
        """
        self.pushgateway_url = pushgateway_url
        self.job_name = job_name
        self.instance = instance or "rainier"

        self.auth_handler = None
        if username and password:
            def handler(url, method, timeout, headers, data):
                return basic_auth_handler(url, method, timeout, headers, data, username, password)
            self.auth_handler = handler

        self.registry = CollectorRegistry()
        self._define_metrics()

        if pushgateway_url:
            logger.info(f"Initialized Prometheus exporter: {pushgateway_url}")

    def _define_metrics(self) -> None:
        """Define Prometheus metrics."""
        self.statements_total = Counter(
            'rainier_statements_total',
            'Statements executed',
            ['step', 'outcome'],
            registry=self.registry
        )
        self.rows_total = Counter(
            'rainier_rows_total',
            'Rows returned by statements',
            ['step'],
            registry=self.registry
        )
        self.statement_duration = Histogram(
            'rainier_statement_duration_seconds',
            'Statement execution duration in seconds',
            ['step'],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self.registry
        )
        self.iterations = Gauge(
            'rainier_iterations',
            'Iterations by final status',
            ['status'],
            registry=self.registry
        )
        self.total_chains = Gauge(
            'rainier_total_chains',
            'Full chain runs completed',
            registry=self.registry
        )

    def record_statement(self, step: int, duration_seconds: float, rows: int, success: bool) -> None:
        """Record one statement execution."""
        label = str(step)
        self.statements_total.labels(step=label, outcome="success" if success else "error").inc()
        if success:
            self.rows_total.labels(step=label).inc(rows)
            self.statement_duration.labels(step=label).observe(duration_seconds)

    def update_run_summary(self, summary: Dict[str, Any]) -> None:
        """Set the end-of-run gauges from a ``RunSummary.to_dict()``."""
        for status in ("completed", "failed", "cancelled"):
            self.iterations.labels(status=status).set(summary.get(f"iterations_{status}", 0))
        self.total_chains.set(summary.get("total_chains", 0))

    def push_metrics(self) -> None:
        """Push metrics to the Prometheus pushgateway, if one is configured."""
        if not self.pushgateway_url:
            return
        try:
            push_to_gateway(
                self.pushgateway_url,
                job=self.job_name,
                registry=self.registry,
                grouping_key={'instance': self.instance},
                handler=self.auth_handler or default_handler
            )
            logger.debug("Pushed metrics to Prometheus pushgateway")
        except Exception as e:
            logger.error(f"Failed to push metrics to Prometheus: {e}")
