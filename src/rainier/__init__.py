"""Query-chain load generator for Cassandra-compatible data stores."""

__version__ = "0.1.0"
