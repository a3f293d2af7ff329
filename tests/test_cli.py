"""
Tests for CLI commands — install, uninstall, list, locations and global options.
"""

import json
import logging
import sys
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from installkit.core import context
from installkit.main import cli


@pytest.fixture(autouse=True)
def _reset_process_state():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    context.set_data_dir(None)
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _write_description(tmp_path: Path, **overrides) -> Path:
    data = {
        "id": "org.example.tool",
        "name": "Example Tool",
        "version": "1.0.0",
        "root_location": str(tmp_path / "opt" / "tool"),
        "actions": [
            {
                "action": "installkit.command",
                "params": {
                    "install": [sys.executable, "-c", "open(r'{location}/marker', 'w').close()"],
                    "uninstall": [sys.executable, "-c", "import os; os.remove(r'{location}/marker')"],
                },
            }
        ],
        "uninstall": {"text": "Removes the example tool"},
    }
    data.update(overrides)
    path = tmp_path / "install.yml"
    path.write_text(yaml.safe_dump(data))
    return path


def _invoke(tmp_path: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(cli, ["--data-dir", str(tmp_path / "data"), *args])


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "install and uninstall products" in result.output

    def test_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestInstallCommand:
    def test_install_and_list(self, tmp_path: Path):
        description = _write_description(tmp_path)
        status_file = tmp_path / "status.json"

        result = _invoke(
            tmp_path, "install", "--description", str(description), "--yes", "--status-file", str(status_file)
        )

        assert result.exit_code == 0, result.output
        assert "Installed org.example.tool" in result.output
        root = tmp_path / "opt" / "tool"
        assert (root / "marker").is_file()
        assert (root / "uninstall" / "install.manifest").is_file()

        status = json.loads(status_file.read_text())
        assert status["status"] == "ok"
        assert status["actions_run"] == ["installkit.command"]

        listed = _invoke(tmp_path, "list", str(root), "--json")
        assert listed.exit_code == 0
        products = json.loads(listed.output)["products"]
        assert [p["id"] for p in products] == ["org.example.tool"]
        assert products[0]["properties"]["uninstallText"] == "Removes the example tool"

        locations = _invoke(tmp_path, "locations", "--json")
        tracked = {entry["path"]: entry["references"] for entry in json.loads(locations.output)}
        assert tracked[str(root)] == 1

    def test_install_is_recorded_in_install_log(self, tmp_path: Path):
        description = _write_description(tmp_path)
        _invoke(tmp_path, "install", "-d", str(description), "-y")

        log_text = (tmp_path / "data" / "logs" / "install.log").read_text(encoding="utf-8")
        assert "install started" in log_text
        assert "✓ installkit.command" in log_text

    def test_install_log_location_from_env(self, tmp_path: Path, monkeypatch):
        log_file = tmp_path / "custom" / "run.log"
        monkeypatch.setenv("INSTALLKIT_LOG_FILE", str(log_file))
        description = _write_description(tmp_path)

        _invoke(tmp_path, "install", "-d", str(description), "-y")

        assert "✓ installkit.command" in log_file.read_text(encoding="utf-8")
        assert not (tmp_path / "data" / "logs").exists()

    def test_failed_command_exits_1(self, tmp_path: Path):
        description = _write_description(
            tmp_path,
            actions=[{"action": "installkit.command", "params": {"install": [sys.executable, "-c", "raise SystemExit(4)"]}}],
        )
        status_file = tmp_path / "status.json"

        result = _invoke(
            tmp_path, "install", "-d", str(description), "-y", "--status-file", str(status_file)
        )

        assert result.exit_code == 1
        assert "exit 4" in result.output
        assert json.loads(status_file.read_text())["status"] == "failed"

    def test_declined_confirmation_is_cancelled(self, tmp_path: Path):
        description = _write_description(tmp_path)
        runner = CliRunner()

        result = runner.invoke(
            cli, ["--data-dir", str(tmp_path / "data"), "install", "-d", str(description)], input="n\n"
        )

        assert result.exit_code == 2
        assert not (tmp_path / "opt").exists()

    def test_missing_description(self, tmp_path: Path):
        result = _invoke(tmp_path, "install", "-d", str(tmp_path / "nope.yml"), "-y")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_unknown_action(self, tmp_path: Path):
        description = _write_description(tmp_path, actions=[{"action": "nope"}])
        result = _invoke(tmp_path, "install", "-d", str(description), "-y")
        assert result.exit_code == 1
        assert "Unknown install action" in result.output


class TestUninstallCommand:
    def test_uninstall_runs_uninstall_commands(self, tmp_path: Path):
        description = _write_description(tmp_path)
        _invoke(tmp_path, "install", "-d", str(description), "-y")
        root = tmp_path / "opt" / "tool"

        result = _invoke(tmp_path, "uninstall", str(root))

        assert result.exit_code == 0, result.output
        assert "Uninstalled org.example.tool" in result.output
        assert not (root / "marker").exists()
        assert not (root / "uninstall" / "install.manifest").exists()

        locations = _invoke(tmp_path, "locations", "--json")
        assert json.loads(locations.output) == []

    def test_nothing_installed(self, tmp_path: Path):
        result = _invoke(tmp_path, "uninstall", str(tmp_path / "empty"))
        assert result.exit_code == 1
        assert "Nothing is installed" in result.output

    def test_list_without_manifest(self, tmp_path: Path):
        result = _invoke(tmp_path, "list", str(tmp_path))
        assert result.exit_code == 0
        assert "No install manifest" in result.output
