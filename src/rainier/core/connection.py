# src/rainier/core/connection.py
"""Store session abstraction and its cassandra-driver implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

from cassandra import ConsistencyLevel
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import Cluster, ExecutionProfile, EXEC_PROFILE_DEFAULT, Session
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra.query import dict_factory

from .config import ClusterConfig

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


@dataclass(frozen=True)
class Parameter:
    """A named placeholder of a prepared statement."""
    name: str
    cql_type: Any = None


@dataclass(frozen=True)
class PreparedTemplate:
    """A statement prepared by the store."""
    query: str
    parameters: Tuple[Parameter, ...] = ()
    handle: Any = field(default=None, compare=False, repr=False)

    @property
    def parameter_names(self) -> List[str]:
        return [p.name for p in self.parameters]


class StoreSession(ABC):
    """The operations the engine needs from a store connection.

    Implementations must be safe to share between worker threads.
    """

    @abstractmethod
    def prepare(self, query: str) -> PreparedTemplate:
        """Prepare a statement template."""

    @abstractmethod
    def bind(self, template: PreparedTemplate, values: Dict[str, Any]) -> Any:
        """Bind typed values to a prepared template."""

    @abstractmethod
    def execute(self, bound: Any) -> List[Row]:
        """Execute a bound statement and return all result rows in order."""

    def close(self) -> None:
        """Release the session."""


class CassandraSession(StoreSession):
    """StoreSession backed by a cassandra-driver ``Session``.

    The session's default execution profile must use ``dict_factory`` so
    rows come back as ordered column-name mappings.
    """

    def __init__(self, session: Session, request_timeout: Optional[float] = None):
        self._session = session
        self.request_timeout = request_timeout

    def prepare(self, query: str) -> PreparedTemplate:
        prepared = self._session.prepare(query)
        parameters = tuple(
            Parameter(name=column.name, cql_type=column.type)
            for column in (prepared.column_metadata or [])
        )
        return PreparedTemplate(query=query, parameters=parameters, handle=prepared)

    def bind(self, template: PreparedTemplate, values: Dict[str, Any]) -> Any:
        return template.handle.bind(values)

    def execute(self, bound: Any) -> List[Row]:
        if self.request_timeout is not None:
            result = self._session.execute(bound, timeout=self.request_timeout)
        else:
            result = self._session.execute(bound)
        # Iterating the result set fetches every page
        return list(result)

    def close(self) -> None:
        self._session.shutdown()


class ConnectionManager:
    """Builds the cluster connection for a run."""

    def __init__(self, config: ClusterConfig):
        """Initialize connection manager."""
        self.config = config
        self._cluster: Optional[Cluster] = None
        self._session: Optional[CassandraSession] = None

    def _execution_profile(self) -> ExecutionProfile:
        return ExecutionProfile(
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            consistency_level=getattr(ConsistencyLevel, self.config.consistency_level.upper()),
            row_factory=dict_factory,
        )

    def connect(self) -> CassandraSession:
        """Connect to the cluster and return a shared session."""
        if self._session is not None:
            return self._session

        if not self.config.host:
            raise RuntimeError("Cannot connect without a host")

        auth_provider = None
        if self.config.username is not None:
            auth_provider = PlainTextAuthProvider(
                username=self.config.username,
                password=self.config.password or "",
            )

        self._cluster = Cluster(
            contact_points=[self.config.host],
            port=self.config.port,
            auth_provider=auth_provider,
            execution_profiles={EXEC_PROFILE_DEFAULT: self._execution_profile()},
        )
        try:
            session = self._cluster.connect(self.config.keyspace)
        except Exception as e:
            logger.error(f"Failed to connect to {self.config.host}:{self.config.port}: {e}")
            self._cluster.shutdown()
            self._cluster = None
            raise

        self._session = CassandraSession(session, request_timeout=self.config.request_timeout)
        logger.info(f"Connected to {self.config.host}:{self.config.port} "
                    f"(consistency={self.config.consistency_level})")
        return self._session

    def close(self) -> None:
        """Close the session and the cluster."""
        if self._session is not None:
            self._session.close()
            self._session = None
        if self._cluster is not None:
            self._cluster.shutdown()
            self._cluster = None
            logger.info("Cluster connection closed")

    def __enter__(self) -> CassandraSession:
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
