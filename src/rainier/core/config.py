# src/rainier/core/config.py
"""Configuration parsing and validation."""

from __future__ import annotations

import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
import logging
import os

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CONSISTENCY_LEVELS = [
    "ANY", "ONE", "TWO", "THREE", "QUORUM", "ALL",
    "LOCAL_QUORUM", "EACH_QUORUM", "SERIAL", "LOCAL_SERIAL", "LOCAL_ONE",
]
RATE_LIMITER_KINDS = ["leaky_bucket", "token_bucket", "sliding_window"]
STORE_ERROR_POLICIES = ["abort_iteration", "skip_branch"]


@dataclass
class ClusterConfig:
    """Connection settings handed to the driver."""
    host: Optional[str] = None
    port: int = 9042
    username: Optional[str] = None
    password: Optional[str] = None
    keyspace: Optional[str] = None
    consistency_level: str = "LOCAL_ONE"
    request_timeout: Optional[float] = None

    def validate(self, require_host: bool = False) -> None:
        """Validate cluster configuration."""
        if require_host and not self.host:
            raise ConfigurationError("No host provided.")

        if not 1 <= self.port <= 65535:
            raise ConfigurationError(f"Invalid port number: {self.port}")

        if self.consistency_level.upper() not in CONSISTENCY_LEVELS:
            raise ConfigurationError(f"Invalid consistency level: {self.consistency_level}")

        if self.password is not None and self.username is None:
            raise ConfigurationError("A password was given without a username")

        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigurationError(f"request_timeout must be positive: {self.request_timeout}")


@dataclass
class WorkloadConfig:
    """Configuration for chain execution."""
    chain_file: Optional[Path] = None
    n_threads: int = 1
    n_iterations: int = 1000
    min_repeat: int = 1
    max_repeat: int = 1
    rate: float = 50000
    rate_limiter: str = "leaky_bucket"
    seed_offset: int = 0
    args: Dict[str, str] = field(default_factory=dict)
    arg_files: Dict[str, Path] = field(default_factory=dict)
    strict: bool = False
    on_store_error: str = "abort_iteration"
    max_retries: int = 0
    duration_seconds: Optional[float] = None

    def validate(self, require_chain_file: bool = False) -> None:
        """Validate workload configuration."""
        if require_chain_file and self.chain_file is None:
            raise ConfigurationError("No input file provided.")

        if self.n_threads < 1:
            raise ConfigurationError(f"n_threads ({self.n_threads}) must be greater than 0.")

        if self.n_iterations < 1:
            raise ConfigurationError(f"n_iterations ({self.n_iterations}) must be greater than 0.")

        if self.min_repeat < 1:
            raise ConfigurationError(f"min_repeat ({self.min_repeat}) must be greater than 0.")

        if self.max_repeat < self.min_repeat:
            raise ConfigurationError(
                f"max_repeat ({self.max_repeat}) cannot be smaller than min_repeat ({self.min_repeat})."
            )

        if self.rate <= 0:
            raise ConfigurationError(f"rate ({self.rate}) must be greater than 0.")

        if self.rate_limiter not in RATE_LIMITER_KINDS:
            raise ConfigurationError(
                f"Invalid rate limiter: {self.rate_limiter}. Must be one of {', '.join(RATE_LIMITER_KINDS)}"
            )

        if self.on_store_error not in STORE_ERROR_POLICIES:
            raise ConfigurationError(
                f"Invalid on_store_error policy: {self.on_store_error}. "
                f"Must be one of {', '.join(STORE_ERROR_POLICIES)}"
            )

        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be non-negative: {self.max_retries}")

        if self.duration_seconds is not None and self.duration_seconds <= 0:
            raise ConfigurationError(f"duration_seconds must be positive: {self.duration_seconds}")

        for name, path in self.arg_files.items():
            if not Path(path).is_file():
                raise ConfigurationError(f"Error: cannot find file {path} for argument {name}")


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    prometheus_pushgateway: Optional[str] = None
    job_name: str = "rainier"
    pushgateway_username: Optional[str] = None
    pushgateway_password: Optional[str] = None

    def validate(self) -> None:
        """Validate monitoring configuration."""
        if not self.job_name:
            raise ConfigurationError("job_name cannot be empty")

        if self.pushgateway_password is not None and self.pushgateway_username is None:
            raise ConfigurationError("A pushgateway password was given without a username")


@dataclass
class OutputConfig:
    """Output configuration."""
    summary_path: Optional[Path] = None
    log_level: str = "INFO"

    def validate(self) -> None:
        """Validate output configuration."""
        if self.summary_path is not None:
            self.summary_path.parent.mkdir(parents=True, exist_ok=True)

        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR"]:
            raise ConfigurationError(f"Invalid log level: {self.log_level}")


def parse_key_value_pairs(text: Optional[str], what: str = "key-value pair") -> Dict[str, str]:
    """Parse ``key:value,key:value`` into a dict.

    Only the first colon separates key and value, so values may contain
    colons (timestamps, host:port pairs).
    """
    pairs: Dict[str, str] = {}
    if not text:
        return pairs
    for pair in text.split(","):
        key, sep, value = pair.partition(":")
        key = key.strip()
        if not sep or not key:
            raise ConfigurationError(f"Bad {what}: {pair}")
        pairs[key] = value
    return pairs


def _to_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid {name}: {value!r} is not an integer") from e


class Config:
    """Main configuration container."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration."""
        self.config_path = config_path
        self.data: Dict[str, Any] = {}

        # Initialize with defaults
        self.cluster = ClusterConfig()
        self.workload = WorkloadConfig()
        self.monitoring = MonitoringConfig()
        self.output = OutputConfig()

        # Always merge environment variables
        self._merge_env_vars()
        self._update_from_dict()

        # Load from file if provided
        if config_path:
            self.load()
        else:
            self.validate()

    def load(self) -> None:
        """Load configuration from file."""
        if not self.config_path:
            raise ConfigurationError("No configuration path specified")

        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        logger.info(f"Loading configuration from {self.config_path}")

        try:
            with open(self.config_path, 'r') as f:
                self.data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML configuration: {e}")
            raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(self.data, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        # Environment wins over the file
        self._merge_env_vars()
        self._update_from_dict()
        self.validate()

        logger.info("Configuration loaded successfully")

    def _merge_env_vars(self) -> None:
        """Merge environment variables into configuration."""
        if "RAINIER_HOST" in os.environ:
            self.data.setdefault("cluster", {})["host"] = os.environ["RAINIER_HOST"]
        if "RAINIER_PORT" in os.environ:
            self.data.setdefault("cluster", {})["port"] = _to_int(os.environ["RAINIER_PORT"], "RAINIER_PORT")
        if "RAINIER_USERNAME" in os.environ:
            self.data.setdefault("cluster", {})["username"] = os.environ["RAINIER_USERNAME"]
        if "RAINIER_PASSWORD" in os.environ:
            self.data.setdefault("cluster", {})["password"] = os.environ["RAINIER_PASSWORD"]

        if "RAINIER_LOG_LEVEL" in os.environ:
            self.data.setdefault("output", {})["log_level"] = os.environ["RAINIER_LOG_LEVEL"]

        if "RAINIER_PUSHGATEWAY" in os.environ:
            self.data.setdefault("monitoring", {})["prometheus_pushgateway"] = os.environ["RAINIER_PUSHGATEWAY"]
        if "RAINIER_PUSHGATEWAY_USERNAME" in os.environ:
            self.data.setdefault("monitoring", {})["pushgateway_username"] = os.environ["RAINIER_PUSHGATEWAY_USERNAME"]
        if "RAINIER_PUSHGATEWAY_PASSWORD" in os.environ:
            self.data.setdefault("monitoring", {})["pushgateway_password"] = os.environ["RAINIER_PUSHGATEWAY_PASSWORD"]

    def _update_from_dict(self) -> None:
        """Update configuration objects from loaded data."""
        if "cluster" in self.data:
            cluster_data = self.data["cluster"] or {}
            self.cluster = ClusterConfig(
                host=cluster_data.get("host", self.cluster.host),
                port=_to_int(cluster_data.get("port", self.cluster.port), "port"),
                username=cluster_data.get("username", self.cluster.username),
                password=cluster_data.get("password", self.cluster.password),
                keyspace=cluster_data.get("keyspace", self.cluster.keyspace),
                consistency_level=cluster_data.get("consistency_level", self.cluster.consistency_level),
                request_timeout=cluster_data.get("request_timeout", self.cluster.request_timeout),
            )

        if "workload" in self.data:
            workload_data = self.data["workload"] or {}
            chain_file = workload_data.get("chain_file", self.workload.chain_file)
            arg_files = workload_data.get("arg_files", self.workload.arg_files) or {}
            args = workload_data.get("args", self.workload.args) or {}
            self.workload = WorkloadConfig(
                chain_file=Path(chain_file) if chain_file is not None else None,
                n_threads=workload_data.get("n_threads", self.workload.n_threads),
                n_iterations=workload_data.get("n_iterations", self.workload.n_iterations),
                min_repeat=workload_data.get("min_repeat", self.workload.min_repeat),
                max_repeat=workload_data.get("max_repeat", self.workload.max_repeat),
                rate=workload_data.get("rate", self.workload.rate),
                rate_limiter=workload_data.get("rate_limiter", self.workload.rate_limiter),
                seed_offset=workload_data.get("seed_offset", self.workload.seed_offset),
                args={str(k): str(v) for k, v in args.items()},
                arg_files={str(k): Path(v) for k, v in arg_files.items()},
                strict=workload_data.get("strict", self.workload.strict),
                on_store_error=workload_data.get("on_store_error", self.workload.on_store_error),
                max_retries=workload_data.get("max_retries", self.workload.max_retries),
                duration_seconds=workload_data.get("duration_seconds", self.workload.duration_seconds),
            )

        if "monitoring" in self.data:
            monitoring_data = self.data["monitoring"] or {}
            self.monitoring = MonitoringConfig(
                prometheus_pushgateway=monitoring_data.get("prometheus_pushgateway", self.monitoring.prometheus_pushgateway),
                job_name=monitoring_data.get("job_name", self.monitoring.job_name),
                pushgateway_username=monitoring_data.get("pushgateway_username", self.monitoring.pushgateway_username),
                pushgateway_password=monitoring_data.get("pushgateway_password", self.monitoring.pushgateway_password),
            )

        if "output" in self.data:
            output_data = self.data["output"] or {}
            summary_path = output_data.get("summary_path", self.output.summary_path)
            self.output = OutputConfig(
                summary_path=Path(summary_path) if summary_path is not None else None,
                log_level=output_data.get("log_level", self.output.log_level),
            )

    def apply_overrides(self, section: str, **values: Any) -> None:
        """Override fields of one section, ignoring ``None`` values.

        Used by the CLI, whose unset options arrive as ``None``.
        """
        target = getattr(self, section)
        for key, value in values.items():
            if value is None:
                continue
            if not hasattr(target, key):
                raise ConfigurationError(f"Unknown {section} option: {key}")
            setattr(target, key, value)

    def validate(self, for_run: bool = False) -> None:
        """Validate all configuration sections.

        ``for_run`` additionally requires the fields a run cannot start
        without (host and chain file).
        """
        try:
            self.cluster.validate(require_host=for_run)
            self.workload.validate(require_chain_file=for_run)
            self.monitoring.validate()
            self.output.validate()
        except ConfigurationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary.

        The password is masked.
        """
        return {
            "cluster": {
                "host": self.cluster.host,
                "port": self.cluster.port,
                "username": self.cluster.username,
                "password": "****" if self.cluster.password else None,
                "keyspace": self.cluster.keyspace,
                "consistency_level": self.cluster.consistency_level,
                "request_timeout": self.cluster.request_timeout,
            },
            "workload": {
                "chain_file": str(self.workload.chain_file) if self.workload.chain_file else None,
                "n_threads": self.workload.n_threads,
                "n_iterations": self.workload.n_iterations,
                "min_repeat": self.workload.min_repeat,
                "max_repeat": self.workload.max_repeat,
                "rate": self.workload.rate,
                "rate_limiter": self.workload.rate_limiter,
                "seed_offset": self.workload.seed_offset,
                "args": dict(self.workload.args),
                "arg_files": {k: str(v) for k, v in self.workload.arg_files.items()},
                "strict": self.workload.strict,
                "on_store_error": self.workload.on_store_error,
                "max_retries": self.workload.max_retries,
                "duration_seconds": self.workload.duration_seconds,
            },
            "monitoring": {
                "prometheus_pushgateway": self.monitoring.prometheus_pushgateway,
                "job_name": self.monitoring.job_name,
                "pushgateway_username": self.monitoring.pushgateway_username,
                "pushgateway_password": "****" if self.monitoring.pushgateway_password else None,
            },
            "output": {
                "summary_path": str(self.output.summary_path) if self.output.summary_path else None,
                "log_level": self.output.log_level,
            },
        }
