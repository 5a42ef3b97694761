# tests/conftest.py
"""Pytest configuration and shared fixtures."""

import pytest
import threading

from tests.mocks import MockStoreSession, MockConnectionManager

from rainier.core import ExecutionStats, RowValueCodec
from rainier.workload import ChainExecutor, ChainLine, LeakyBucketRateLimiter, prepare_chain


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external services")
    config.addinivalue_line("markers", "integration: end-to-end tests against the mock store")
    config.addinivalue_line("markers", "slow: tests that wait on real time")


@pytest.fixture
def mock_session():
    """Provide an empty mock store session."""
    return MockStoreSession()


@pytest.fixture
def mock_connection_manager(mock_session):
    """Provide a connection manager handing out ``mock_session``."""
    return MockConnectionManager(mock_session)


@pytest.fixture
def fast_limiter():
    """A limiter fast enough never to throttle a unit test."""
    return LeakyBucketRateLimiter(rate=1_000_000)


@pytest.fixture
def stats():
    return ExecutionStats()


@pytest.fixture
def make_executor(fast_limiter, stats):
    """Factory building a ChainExecutor around a session."""
    def factory(session, **kwargs):
        kwargs.setdefault("rate_limiter", fast_limiter)
        kwargs.setdefault("stats", stats)
        kwargs.setdefault("retry_backoff", 0.0)
        return ChainExecutor(session=session, codec=RowValueCodec(), **kwargs)
    return factory


@pytest.fixture
def make_chain():
    """Factory preparing a chain from query strings."""
    def factory(session, *queries):
        lines = [ChainLine(line_number=i + 1, text=q) for i, q in enumerate(queries)]
        return prepare_chain(session, lines)
    return factory


@pytest.fixture
def chain_file(tmp_path):
    """Create a two-statement chain file with comments and blank lines."""
    path = tmp_path / "chain.cql"
    path.write_text(
        "# parents first\n"
        "SELECT id FROM ks.parent WHERE k = :k\n"
        "\n"
        "SELECT v FROM ks.child WHERE id = :id\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def arg_file(tmp_path):
    """Create an argument list file."""
    path = tmp_path / "keys.txt"
    path.write_text("alpha\nbeta\ngamma\n\n", encoding="utf-8")
    return path


@pytest.fixture
def config_file(tmp_path, chain_file, arg_file):
    """Create a temporary configuration file."""
    import yaml

    config_path = tmp_path / "rainier.yaml"

    config_data = {
        "cluster": {
            "host": "test-host",
            "port": 9142,
            "consistency_level": "LOCAL_QUORUM",
        },
        "workload": {
            "chain_file": str(chain_file),
            "n_threads": 4,
            "n_iterations": 20,
            "min_repeat": 1,
            "max_repeat": 3,
            "rate": 10000,
            "args": {"tenant": "acme"},
            "arg_files": {"k": str(arg_file)},
        },
        "output": {
            "log_level": "DEBUG",
        },
    }

    with open(config_path, 'w') as f:
        yaml.dump(config_data, f)

    return config_path


def run_in_threads(target, n_threads: int):
    """Run ``target`` concurrently and join all threads."""
    threads = [threading.Thread(target=target) for _ in range(n_threads)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
