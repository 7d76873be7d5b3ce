"""Tests for the command-line interface."""

from unittest.mock import patch

import click
import pytest
import yaml
from click.testing import CliRunner

from cli import _validate_config, cli, parse_target
from config import BenchmarkConfig, TargetConfig


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def test_list_workloads(runner):
    result = runner.invoke(cli, ["list-workloads"])

    assert result.exit_code == 0
    assert " 1. Single operation" in result.output
    assert "14. Pub/Sub Latency" in result.output


def test_parse_target():
    assert parse_target("Garnet=a:7002,b:7002") == ("Garnet", ["a:7002", "b:7002"])


@pytest.mark.parametrize("value", ["Garnet", "=a:1", "Garnet="])
def test_parse_target_invalid(value):
    with pytest.raises(click.BadParameter):
        parse_target(value)


def test_save_config(runner, tmp_path):
    path = tmp_path / "saved.yaml"
    result = runner.invoke(cli, [
        "run",
        "--target", "Garnet=10.0.0.1:7002,10.0.0.2:7002",
        "--target", "Redis=10.0.0.1:7001",
        "--duration", "PT2S",
        "--workloads", "Single operation,Pipeline",
        "--no-allow-admin",
        "--save-config", str(path),
    ])

    assert result.exit_code == 0, result.output
    saved = yaml.safe_load(path.read_text())
    assert [t["name"] for t in saved["targets"]] == ["Garnet", "Redis"]
    assert saved["targets"][0]["endpoints"] == ["10.0.0.1:7002", "10.0.0.2:7002"]
    assert saved["targets"][0]["allow_admin"] is False
    assert saved["duration_ms"] == 2000
    assert saved["workloads"] == ["Single operation", "Pipeline"]


def test_run_reports_errors(runner):
    result = runner.invoke(cli, ["run", "--target", "Only=127.0.0.1:7000"])

    assert result.exit_code == 1
    assert "At least two targets" in result.output


def test_run_invokes_runner(runner):
    with patch("cli.BenchmarkRunner") as runner_cls:
        result = runner.invoke(cli, ["run", "--target", "A=127.0.0.1:7000", "--target", "B=127.0.0.1:7001"])

    assert result.exit_code == 0, result.output
    config = runner_cls.call_args[0][0]
    assert [t.name for t in config.targets] == ["A", "B"]
    runner_cls.return_value.run.assert_called_once()


def test_run_exits_non_zero_on_failure(runner):
    with patch("cli.BenchmarkRunner") as runner_cls:
        runner_cls.return_value.run.side_effect = ConnectionError("Cannot connect to B")
        result = runner.invoke(cli, ["run", "--target", "A=127.0.0.1:7000", "--target", "B=127.0.0.1:7001"])

    assert result.exit_code == 1
    assert "Error: Cannot connect to B" in result.output


class TestValidateConfig:
    """Tests for configuration validation."""

    def _config(self, **kwargs):
        defaults = {"targets": [TargetConfig(name="A", endpoints=["h:1"]), TargetConfig(name="B", endpoints=["h:2"])]}
        defaults.update(kwargs)
        return BenchmarkConfig(**defaults)

    def test_valid(self):
        _validate_config(self._config())

    def test_duplicate_names(self):
        targets = [TargetConfig(name="A", endpoints=["h:1"]), TargetConfig(name="A", endpoints=["h:2"])]
        with pytest.raises(ValueError, match="unique"):
            _validate_config(self._config(targets=targets))

    def test_bad_endpoint(self):
        targets = [TargetConfig(name="A", endpoints=["nope"]), TargetConfig(name="B", endpoints=["h:2"])]
        with pytest.raises(ValueError, match="host:port"):
            _validate_config(self._config(targets=targets))

    def test_non_positive_duration(self):
        with pytest.raises(ValueError, match="Duration"):
            _validate_config(self._config(duration_ms=0))

    def test_unknown_workload(self):
        with pytest.raises(ValueError, match="Unknown workloads"):
            _validate_config(self._config(workloads=["Bogus"]))


class TestTestConnection:
    """Tests for the test-connection command."""

    def test_reports_versions(self, runner):
        with patch("redis_client.RedisClient") as client_cls:
            client_cls.return_value.server_versions.return_value = {"127.0.0.1:7000": "7.2.4"}
            result = runner.invoke(cli, ["test-connection", "--target", "A=127.0.0.1:7000", "--standalone"])

        assert result.exit_code == 0, result.output
        assert "A: connected" in result.output
        assert "version 7.2.4" in result.output
        assert client_cls.call_args[0][0].cluster_mode is False
        client_cls.return_value.close.assert_called_once()

    def test_failure_exits_non_zero(self, runner):
        with patch("redis_client.RedisClient") as client_cls:
            client_cls.return_value.connect.side_effect = ConnectionError("refused")
            result = runner.invoke(cli, ["test-connection", "--target", "A=127.0.0.1:7000"])

        assert result.exit_code == 1
        client_cls.return_value.close.assert_called_once()
