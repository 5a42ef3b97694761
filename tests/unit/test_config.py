"""Unit tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from rainier.core import (
    ClusterConfig,
    Config,
    ConfigurationError,
    MonitoringConfig,
    WorkloadConfig,
    parse_key_value_pairs,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep RAINIER_* variables of the caller out of the tests."""
    for name in ("RAINIER_HOST", "RAINIER_PORT", "RAINIER_USERNAME", "RAINIER_PASSWORD",
                 "RAINIER_LOG_LEVEL", "RAINIER_PUSHGATEWAY", "RAINIER_PUSHGATEWAY_USERNAME",
                 "RAINIER_PUSHGATEWAY_PASSWORD"):
        monkeypatch.delenv(name, raising=False)


@pytest.mark.unit
class TestDefaults:
    """Test built-in defaults."""

    def test_default_values(self):
        config = Config()

        assert config.cluster.host is None
        assert config.cluster.port == 9042
        assert config.cluster.consistency_level == "LOCAL_ONE"
        assert config.workload.n_threads == 1
        assert config.workload.n_iterations == 1000
        assert config.workload.min_repeat == 1
        assert config.workload.max_repeat == 1
        assert config.workload.rate == 50000
        assert config.workload.rate_limiter == "leaky_bucket"
        assert config.workload.seed_offset == 0
        assert config.workload.on_store_error == "abort_iteration"
        assert config.workload.strict is False

    def test_run_requires_host_and_chain_file(self):
        config = Config()

        with pytest.raises(ConfigurationError, match="No host provided"):
            config.validate(for_run=True)

        config.apply_overrides("cluster", host="localhost")
        with pytest.raises(ConfigurationError, match="No input file provided"):
            config.validate(for_run=True)


@pytest.mark.unit
class TestLoading:
    """Test loading from YAML and the environment."""

    def test_load_file(self, config_file, arg_file):
        config = Config(config_path=config_file)

        assert config.cluster.host == "test-host"
        assert config.cluster.port == 9142
        assert config.cluster.consistency_level == "LOCAL_QUORUM"
        assert config.workload.n_threads == 4
        assert config.workload.max_repeat == 3
        assert config.workload.args == {"tenant": "acme"}
        assert config.workload.arg_files == {"k": arg_file}
        assert isinstance(config.workload.chain_file, Path)
        assert config.output.log_level == "DEBUG"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            Config(config_path=tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("cluster: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            Config(config_path=path)

    def test_environment_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("RAINIER_HOST", "env-host")
        monkeypatch.setenv("RAINIER_PORT", "9999")

        config = Config(config_path=config_file)

        assert config.cluster.host == "env-host"
        assert config.cluster.port == 9999
        assert config.cluster.consistency_level == "LOCAL_QUORUM"

    def test_non_integer_port_from_environment(self, config_file, monkeypatch):
        monkeypatch.setenv("RAINIER_PORT", "abc")

        with pytest.raises(ConfigurationError, match="Invalid RAINIER_PORT: 'abc'"):
            Config(config_path=config_file)

    def test_non_integer_port_in_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        with open(path, 'w') as f:
            yaml.dump({"cluster": {"host": "h", "port": "abc"}}, f)

        with pytest.raises(ConfigurationError, match="Invalid port"):
            Config(config_path=path)

    def test_pushgateway_credentials(self, tmp_path, monkeypatch):
        path = tmp_path / "monitoring.yaml"
        with open(path, 'w') as f:
            yaml.dump({"monitoring": {"prometheus_pushgateway": "gw:9091",
                                      "pushgateway_username": "file-user"}}, f)
        monkeypatch.setenv("RAINIER_PUSHGATEWAY_PASSWORD", "s3cret")

        config = Config(config_path=path)

        assert config.monitoring.pushgateway_username == "file-user"
        assert config.monitoring.pushgateway_password == "s3cret"
        data = config.to_dict()
        assert data["monitoring"]["pushgateway_password"] == "****"
        assert "s3cret" not in str(data)

    def test_pushgateway_username_from_environment(self, config_file, monkeypatch):
        monkeypatch.setenv("RAINIER_PUSHGATEWAY_USERNAME", "env-user")

        config = Config(config_path=config_file)

        assert config.monitoring.pushgateway_username == "env-user"
        assert config.monitoring.pushgateway_password is None

    def test_invalid_values_in_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        with open(path, 'w') as f:
            yaml.dump({"workload": {"min_repeat": 5, "max_repeat": 2}}, f)

        with pytest.raises(ConfigurationError, match="cannot be smaller than min_repeat"):
            Config(config_path=path)

    def test_to_dict_masks_password(self):
        config = Config()
        config.apply_overrides("cluster", host="h", username="cassandra", password="secret")

        data = config.to_dict()

        assert data["cluster"]["password"] == "****"
        assert data["cluster"]["username"] == "cassandra"
        assert "secret" not in str(data)


@pytest.mark.unit
class TestOverrides:
    """Test command-line style overrides."""

    def test_none_values_are_ignored(self, config_file):
        config = Config(config_path=config_file)

        config.apply_overrides("workload", n_threads=None, n_iterations=5)

        assert config.workload.n_threads == 4
        assert config.workload.n_iterations == 5

    def test_unknown_option(self):
        config = Config()

        with pytest.raises(ConfigurationError, match="Unknown workload option"):
            config.apply_overrides("workload", n_clients=5)


@pytest.mark.unit
class TestValidation:
    """Test section validation."""

    @pytest.mark.parametrize("kwargs, message", [
        ({"n_threads": 0}, "n_threads"),
        ({"n_iterations": 0}, "n_iterations"),
        ({"min_repeat": 0}, "min_repeat"),
        ({"min_repeat": 3, "max_repeat": 1}, "cannot be smaller"),
        ({"rate": 0}, "rate"),
        ({"rate_limiter": "fixed_window"}, "Invalid rate limiter"),
        ({"on_store_error": "ignore"}, "Invalid on_store_error"),
        ({"max_retries": -1}, "max_retries"),
        ({"duration_seconds": 0}, "duration_seconds"),
    ])
    def test_invalid_workload(self, kwargs, message):
        with pytest.raises(ConfigurationError, match=message):
            WorkloadConfig(**kwargs).validate()

    def test_missing_argument_file(self, tmp_path):
        workload = WorkloadConfig(arg_files={"k": tmp_path / "nope.txt"})

        with pytest.raises(ConfigurationError, match="cannot find file"):
            workload.validate()

    @pytest.mark.parametrize("kwargs", [
        {"port": 0},
        {"port": 70000},
        {"consistency_level": "SOME"},
        {"password": "secret"},
        {"request_timeout": 0},
    ])
    def test_invalid_cluster(self, kwargs):
        with pytest.raises(ConfigurationError):
            ClusterConfig(**kwargs).validate()

    def test_pushgateway_password_requires_username(self):
        with pytest.raises(ConfigurationError, match="without a username"):
            MonitoringConfig(pushgateway_password="secret").validate()

        MonitoringConfig(pushgateway_username="user", pushgateway_password="secret").validate()

    def test_consistency_level_case_insensitive(self):
        ClusterConfig(consistency_level="local_quorum").validate()


@pytest.mark.unit
class TestKeyValuePairs:
    """Test ``key:value,key:value`` parsing."""

    def test_parse(self):
        assert parse_key_value_pairs("a:1,b:two") == {"a": "1", "b": "two"}

    def test_value_keeps_later_colons(self):
        assert parse_key_value_pairs("ts:2024-01-01T10:00:00") == {"ts": "2024-01-01T10:00:00"}

    def test_empty(self):
        assert parse_key_value_pairs(None) == {}
        assert parse_key_value_pairs("") == {}

    def test_bad_pair(self):
        with pytest.raises(ConfigurationError, match="Bad argfile argument: nocolon"):
            parse_key_value_pairs("a:1,nocolon", "argfile argument")
