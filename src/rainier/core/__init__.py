# src/rainier/core/__init__.py
"""Core components: configuration, store session, codec and errors."""

from .errors import (
    RainierError,
    ConfigurationError,
    PrepareError,
    BindingError,
    MissingBindingError,
    StoreExecutionError,
    RunCancelled,
)
from .codec import RowValueCodec
from .connection import (
    ConnectionManager,
    CassandraSession,
    StoreSession,
    PreparedTemplate,
    Parameter,
    Row,
)
from .metrics import ExecutionStats, StepMetrics
from .config import (
    Config,
    ClusterConfig,
    WorkloadConfig,
    MonitoringConfig,
    OutputConfig,
    parse_key_value_pairs,
)

__all__ = [
    # Errors
    "RainierError",
    "ConfigurationError",
    "PrepareError",
    "BindingError",
    "MissingBindingError",
    "StoreExecutionError",
    "RunCancelled",

    # Codec
    "RowValueCodec",

    # Store session
    "ConnectionManager",
    "CassandraSession",
    "StoreSession",
    "PreparedTemplate",
    "Parameter",
    "Row",

    # Metrics
    "ExecutionStats",
    "StepMetrics",

    # Configuration
    "Config",
    "ClusterConfig",
    "WorkloadConfig",
    "MonitoringConfig",
    "OutputConfig",
    "parse_key_value_pairs",
]
