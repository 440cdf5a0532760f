"""Tests for CLI commands."""
import json
import pytest
import sys
import os
import yaml
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from click.testing import CliRunner
from main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    """Config pointing at a scratch store, with no outbound channels."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "database": {"path": str(tmp_path / "guardian.db")},
        "monitor": {"inter_asset_delay": 0},
        "notifications": {
            "console": False,
            "file": {"enabled": True, "path": str(tmp_path / "notifications.jsonl")},
            "expo": {"enabled": False},
            "telegram": {"enabled": False},
        },
        "logging": {"level": "WARNING", "file": None},
    }))
    return str(path)


def test_cli_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Drawdown Guardian" in result.output
    for command in ("run", "watch", "status", "simulate", "assets", "levels", "notify"):
        assert command in result.output


def test_cli_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output


def test_assets_help(runner):
    result = runner.invoke(cli, ["assets", "--help"])
    assert result.exit_code == 0
    for command in ("init", "add", "list", "check", "activate", "deactivate", "threshold", "reset-peak"):
        assert command in result.output


def test_levels_help(runner):
    result = runner.invoke(cli, ["levels", "--help"])
    assert result.exit_code == 0
    assert "list" in result.output
    assert "use" in result.output


def test_simulate_crossing(runner, config_file):
    result = runner.invoke(cli, ["--config", config_file, "simulate", "100", "84", "83.7", "82.5"])
    assert result.exit_code == 0, result.output
    assert "NEW_CROSSING" in result.output
    assert "VARIATION" in result.output


def test_asset_management(runner, config_file, tmp_path):
    result = runner.invoke(cli, ["--config", config_file, "assets", "add", "XDWD", "--price", "100"])
    assert result.exit_code == 0, result.output
    assert "XDWD" in result.output

    result = runner.invoke(cli, ["--config", config_file, "assets", "threshold", "XDWD", "20"])
    assert result.exit_code == 0
    assert "-20%" in result.output
    result = runner.invoke(cli, ["--config", config_file, "assets", "deactivate", "XDWD"])
    assert result.exit_code == 0

    from models.database import Database
    with Database(str(tmp_path / "guardian.db")) as db:
        peak = db.get_peak("XDWD")
    assert peak.alert_threshold_pct == 20.0
    assert peak.active is False


def test_assets_add_unconfigured_needs_class(runner, config_file):
    result = runner.invoke(cli, ["--config", config_file, "assets", "add", "NEW", "--price", "5"])
    assert result.exit_code != 0
    result = runner.invoke(cli, ["--config", config_file, "assets", "add", "NEW",
                                 "--price", "5", "--class", "etf"])
    assert result.exit_code == 0, result.output


def test_threshold_unknown_asset(runner, config_file):
    result = runner.invoke(cli, ["--config", config_file, "assets", "threshold", "NOPE", "20"])
    assert result.exit_code == 1
    assert "NOPE" in result.output


def test_levels_use(runner, config_file):
    runner.invoke(cli, ["--config", config_file, "assets", "add", "BTC", "--price", "60000"])
    result = runner.invoke(cli, ["--config", config_file, "levels", "use", "BTC", "10"])
    assert result.exit_code == 0, result.output
    result = runner.invoke(cli, ["--config", config_file, "levels", "list"])
    assert "-10%" in result.output

    result = runner.invoke(cli, ["--config", config_file, "levels", "use", "BTC", "-15"])
    assert result.exit_code != 0


def test_devices_and_notify(runner, config_file, tmp_path):
    result = runner.invoke(cli, ["--config", config_file, "devices", "add", "ExponentPushToken[x]"])
    assert result.exit_code == 0
    result = runner.invoke(cli, ["--config", config_file, "devices", "list"])
    assert "ExponentPushToken[x]" in result.output

    result = runner.invoke(cli, ["--config", config_file, "notify", "test"])
    assert result.exit_code == 0, result.output
    log = (tmp_path / "notifications.jsonl").read_text().strip().split("\n")
    assert json.loads(log[-1])["data"]["type"] == "test"


def test_status_empty(runner, config_file):
    result = runner.invoke(cli, ["--config", config_file, "status"])
    assert result.exit_code == 0
    assert "No assets provisioned" in result.output


def test_alerts_history_empty(runner, config_file):
    result = runner.invoke(cli, ["--config", config_file, "alerts", "history"])
    assert result.exit_code == 0
    assert "No alerts" in result.output
