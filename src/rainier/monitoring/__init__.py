"""Metric export components."""

from .exporter import PrometheusExporter

__all__ = [
    "PrometheusExporter",
]
