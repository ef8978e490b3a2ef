"""Tests for the pomodorko CLI layer.

Commands are pointed at temporary directories with ``--cache-dir`` and
``--config-dir`` so nothing touches the real home directory.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import click.testing
import pytest

from pomodorko.cli.main import cli
from pomodorko.core.commands import Command, CommandSpool
from pomodorko.core.config import Settings, SettingsStore
from pomodorko.core.status import StatusFile, StatusSnapshot


@pytest.fixture()
def runner() -> click.testing.CliRunner:
    """Return a Click CliRunner for invoking CLI commands."""
    return click.testing.CliRunner()


@pytest.fixture()
def dirs(tmp_path: Path) -> list[str]:
    return ["--cache-dir", str(tmp_path / "cache"), "--config-dir", str(tmp_path / "config")]


def _spooled(tmp_path: Path) -> list[Command]:
    return CommandSpool(tmp_path / "cache").receive()


# ---------------------------------------------------------------------------
# Control commands
# ---------------------------------------------------------------------------


class TestControlCommands:
    """Tests for ``pomodorko start|stop|toggle|pause|reset``."""

    @pytest.mark.parametrize("name", ["start", "stop", "toggle", "pause", "reset"])
    def test_command_is_spooled(
        self, name: str, runner: click.testing.CliRunner, dirs: list[str], tmp_path: Path
    ) -> None:
        result = runner.invoke(cli, [*dirs, name])
        assert result.exit_code == 0
        assert f"Sent '{name}' command to Pomodorko" in result.output
        assert _spooled(tmp_path) == [Command(name)]

    def test_unknown_command(self, runner: click.testing.CliRunner) -> None:
        result = runner.invoke(cli, ["launch"])
        assert result.exit_code != 0


# ---------------------------------------------------------------------------
# pomodorko set
# ---------------------------------------------------------------------------


class TestSetCommand:
    """Tests for ``pomodorko set <setting> <value>``."""

    def test_set_work(
        self, runner: click.testing.CliRunner, dirs: list[str], tmp_path: Path
    ) -> None:
        result = runner.invoke(cli, [*dirs, "set", "work", "30"])
        assert result.exit_code == 0
        assert "Set work interval to 30 minutes" in result.output
        assert _spooled(tmp_path) == [Command("set", setting="work", value=30)]
        assert SettingsStore(tmp_path / "config").load().work_minutes == 30

    def test_set_intervals(
        self, runner: click.testing.CliRunner, dirs: list[str], tmp_path: Path
    ) -> None:
        result = runner.invoke(cli, [*dirs, "set", "intervals", "6"])
        assert result.exit_code == 0
        assert "Set intervals per set to 6" in result.output

    def test_set_keeps_other_stored_settings(
        self, runner: click.testing.CliRunner, dirs: list[str], tmp_path: Path
    ) -> None:
        store = SettingsStore(tmp_path / "config")
        store.save(Settings(long_rest_minutes=20))
        result = runner.invoke(cli, [*dirs, "set", "short", "3"])
        assert result.exit_code == 0
        assert store.load() == Settings(short_rest_minutes=3, long_rest_minutes=20)

    def test_set_work_zero_is_rejected(
        self, runner: click.testing.CliRunner, dirs: list[str], tmp_path: Path
    ) -> None:
        result = runner.invoke(cli, [*dirs, "set", "work", "0"])
        assert result.exit_code == 1
        assert "work interval must be between 1 and 60" in result.output
        assert _spooled(tmp_path) == []
        assert SettingsStore(tmp_path / "config").load() == Settings()

    def test_set_non_numeric_is_rejected(
        self, runner: click.testing.CliRunner, dirs: list[str], tmp_path: Path
    ) -> None:
        result = runner.invoke(cli, [*dirs, "set", "short", "five"])
        assert result.exit_code == 1
        assert "whole number" in result.output
        assert _spooled(tmp_path) == []

    def test_set_unknown_setting(self, runner: click.testing.CliRunner, dirs: list[str]) -> None:
        result = runner.invoke(cli, [*dirs, "set", "lunch", "30"])
        assert result.exit_code != 0

    def test_set_missing_value(self, runner: click.testing.CliRunner, dirs: list[str]) -> None:
        result = runner.invoke(cli, [*dirs, "set", "work"])
        assert result.exit_code != 0


# ---------------------------------------------------------------------------
# pomodorko status
# ---------------------------------------------------------------------------


class TestStatusCommand:
    """Tests for ``pomodorko status``."""

    def test_not_running(self, runner: click.testing.CliRunner, dirs: list[str]) -> None:
        result = runner.invoke(cli, [*dirs, "status"])
        assert result.exit_code == 1
        assert "Pomodorko is not running" in result.output

    def test_running(
        self, runner: click.testing.CliRunner, dirs: list[str], tmp_path: Path
    ) -> None:
        StatusFile(tmp_path / "cache").write(
            StatusSnapshot(
                phase="work",
                completed_intervals=1,
                total_intervals=4,
                time_left_display="07:34",
                is_paused=True,
                is_running=True,
                work_minutes=25,
                short_break_minutes=5,
                long_break_minutes=15,
            )
        )
        result = runner.invoke(cli, [*dirs, "status"])
        assert result.exit_code == 0
        assert "Work 1: complete" in result.output
        assert "Work 2: current - 07:34 remaining (paused)" in result.output

    def test_stale_snapshot(
        self, runner: click.testing.CliRunner, dirs: list[str], tmp_path: Path
    ) -> None:
        cache = tmp_path / "cache"
        cache.mkdir()
        (cache / "status.json").write_text(json.dumps({"phase": "work", "isRunning": True, "pid": -1}))
        result = runner.invoke(cli, [*dirs, "status"])
        assert result.exit_code == 1
        assert "not running" in result.output


# ---------------------------------------------------------------------------
# pomodorko run
# ---------------------------------------------------------------------------


class TestRunCommand:
    """Tests for ``pomodorko run``; the daemon itself is mocked."""

    @patch("pomodorko.cli.main.signal")
    @patch("pomodorko.cli.main.build_daemon")
    def test_run_applies_overrides(
        self,
        mock_build: MagicMock,
        mock_signal: MagicMock,
        runner: click.testing.CliRunner,
        dirs: list[str],
        tmp_path: Path,
    ) -> None:
        SettingsStore(tmp_path / "config").save(Settings(short_rest_minutes=7))
        result = runner.invoke(
            cli, [*dirs, "run", "--work", "50", "--intervals", "2", "--stop-after-break"]
        )
        assert result.exit_code == 0, result.output
        settings = mock_build.call_args.args[0]
        assert settings.work_minutes == 50
        assert settings.intervals_per_set == 2
        assert settings.stop_after_break is True
        assert settings.short_rest_minutes == 7
        mock_build.return_value.run.assert_called_once_with()

    def test_run_rejects_out_of_range_option(
        self, runner: click.testing.CliRunner, dirs: list[str]
    ) -> None:
        result = runner.invoke(cli, [*dirs, "run", "--work", "0"])
        assert result.exit_code != 0

    def test_run_rejects_positive_overrun_limit(
        self, runner: click.testing.CliRunner, dirs: list[str]
    ) -> None:
        result = runner.invoke(cli, [*dirs, "run", "--overrun-limit", "30"])
        assert result.exit_code != 0

    def test_run_rejects_zero_overrun_limit(
        self, runner: click.testing.CliRunner, dirs: list[str]
    ) -> None:
        result = runner.invoke(cli, [*dirs, "run", "--overrun-limit", "0"])
        assert result.exit_code != 0


# ---------------------------------------------------------------------------
# Environment and --version
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_env_cache_dir_is_used(
        self, runner: click.testing.CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("POMODORKO_CACHE_DIR", str(tmp_path / "env-cache"))
        result = runner.invoke(cli, ["toggle"])
        assert result.exit_code == 0
        assert (tmp_path / "env-cache" / "commands.jsonl").exists()


class TestVersionFlag:
    """Tests for ``pomodorko --version``."""

    def test_version_output(self, runner: click.testing.CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output
