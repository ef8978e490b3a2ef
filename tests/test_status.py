"""Tests for the status snapshot, status file, and progress report."""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from pomodorko.core.status import (
    NOT_RUNNING_MESSAGE,
    StatusFile,
    StatusSnapshot,
    format_time_left,
    process_alive,
    render_report,
)


def _snapshot(**overrides: object) -> StatusSnapshot:
    values: dict = {
        "phase": "work",
        "completed_intervals": 0,
        "total_intervals": 4,
        "time_left_display": "12:00",
        "is_paused": False,
        "is_running": True,
        "work_minutes": 25,
        "short_break_minutes": 5,
        "long_break_minutes": 15,
    }
    values.update(overrides)
    return StatusSnapshot(**values)


def _progress(report: str) -> list[str]:
    lines = report.splitlines()
    return [line.strip() for line in lines[lines.index("Progress:") + 1 :]]


# ---------------------------------------------------------------------------
# Time formatting
# ---------------------------------------------------------------------------


class TestFormatTimeLeft:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(1500, "25:00"), (454, "07:34"), (5, "00:05"), (59.9, "00:59"), (0, "00:00"), (-30, "00:00")],
    )
    def test_format(self, seconds: float, expected: str) -> None:
        assert format_time_left(seconds) == expected


# ---------------------------------------------------------------------------
# Snapshot serialisation
# ---------------------------------------------------------------------------


class TestSnapshotDict:
    def test_field_names(self) -> None:
        data = _snapshot().to_dict()
        assert set(data) >= {
            "phase",
            "completedIntervals",
            "totalIntervals",
            "timeLeftDisplay",
            "isPaused",
            "isRunning",
            "workMinutes",
            "shortBreakMinutes",
            "longBreakMinutes",
        }

    def test_from_dict_defaults_missing_fields(self) -> None:
        snapshot = StatusSnapshot.from_dict({})
        assert snapshot.phase == "idle"
        assert snapshot.total_intervals == 4
        assert snapshot.is_running is False

    def test_from_dict_ignores_wrong_types(self) -> None:
        snapshot = StatusSnapshot.from_dict(
            {"completedIntervals": "two", "isPaused": "yes", "updatedAt": "soon"}
        )
        assert snapshot.completed_intervals == 0
        assert snapshot.is_paused is False
        assert snapshot.updated_at == 0.0


# ---------------------------------------------------------------------------
# StatusFile
# ---------------------------------------------------------------------------


class TestStatusFile:
    def test_write_then_load(self, tmp_path: Path) -> None:
        status = StatusFile(tmp_path)
        status.write(_snapshot(completed_intervals=2))
        loaded = status.load()
        assert loaded is not None
        assert loaded.completed_intervals == 2
        assert loaded.pid == os.getpid()
        assert loaded.updated_at > 0

    def test_written_json_uses_camel_case(self, tmp_path: Path) -> None:
        StatusFile(tmp_path).write(_snapshot(is_paused=True))
        data = json.loads((tmp_path / "status.json").read_text())
        assert data["isPaused"] is True
        assert data["timeLeftDisplay"] == "12:00"

    def test_missing_file(self, tmp_path: Path) -> None:
        assert StatusFile(tmp_path).load() is None

    def test_corrupt_file(self, tmp_path: Path) -> None:
        (tmp_path / "status.json").write_text("[1, 2")
        assert StatusFile(tmp_path).load() is None

    def test_non_object_file(self, tmp_path: Path) -> None:
        (tmp_path / "status.json").write_text("[1, 2]")
        assert StatusFile(tmp_path).load() is None

    def test_stale_file_from_dead_process(self, tmp_path: Path) -> None:
        StatusFile(tmp_path).write(_snapshot())
        with patch("pomodorko.core.status.process_alive", return_value=False):
            assert StatusFile(tmp_path).load() is None

    def test_clear(self, tmp_path: Path) -> None:
        status = StatusFile(tmp_path)
        status.write(_snapshot())
        status.clear()
        status.clear()
        assert not status.path.exists()

    def test_write_failure_is_swallowed(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        StatusFile(blocker / "sub").write(_snapshot())


class TestProcessAlive:
    def test_self_is_alive(self) -> None:
        assert process_alive(os.getpid()) is True

    def test_non_positive_pid(self) -> None:
        assert process_alive(0) is False
        assert process_alive(-5) is False


# ---------------------------------------------------------------------------
# render_report()
# ---------------------------------------------------------------------------


class TestRenderReport:
    def test_not_running(self) -> None:
        assert render_report(None) == NOT_RUNNING_MESSAGE

    def test_header(self) -> None:
        lines = render_report(_snapshot(is_running=False, phase="idle")).splitlines()
        assert lines[:4] == [
            "Pomodorko Status",
            "================",
            "Total intervals: 4",
            "Work: 25 min | Short break: 5 min | Long break: 15 min",
        ]
        assert lines[-1] == "Status: Idle"

    def test_first_work_interval(self) -> None:
        progress = _progress(render_report(_snapshot()))
        assert progress[:4] == [
            "Work 1: current - 12:00 remaining",
            "Break 1: pending",
            "Work 2: pending",
            "Break 2: pending",
        ]
        assert progress[-1] == "Long break: pending"

    def test_paused_work(self) -> None:
        progress = _progress(render_report(_snapshot(completed_intervals=2, is_paused=True)))
        assert progress[:6] == [
            "Work 1: complete",
            "Break 1: complete",
            "Work 2: complete",
            "Break 2: complete",
            "Work 3: current - 12:00 remaining (paused)",
            "Break 3: pending",
        ]

    def test_short_rest(self) -> None:
        progress = _progress(
            render_report(_snapshot(phase="shortRest", completed_intervals=2, time_left_display="03:10"))
        )
        assert progress[:6] == [
            "Work 1: complete",
            "Break 1: complete",
            "Work 2: complete",
            "Break 2: current - 03:10 remaining",
            "Work 3: pending",
            "Break 3: pending",
        ]

    def test_long_rest(self) -> None:
        progress = _progress(render_report(_snapshot(phase="longRest", time_left_display="14:59")))
        assert progress[-2:] == ["Work 4: complete", "Long break: current - 14:59 remaining"]
        assert progress[1] == "Break 1: complete"
