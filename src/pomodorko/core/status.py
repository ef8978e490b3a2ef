"""Status snapshot — the persisted view other processes read.

The running daemon writes ``<cache_dir>/status.json`` after every change.
``pomodorko status`` rebuilds a progress report from that file alone and
never talks to the daemon.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pomodorko.core.config import default_cache_dir

_STATUS_FILE = "status.json"

NOT_RUNNING_MESSAGE = "Pomodorko is not running (no status file found)"


def format_time_left(seconds: float) -> str:
    """Format *seconds* as ``MM:SS``, clamping negatives to ``00:00``."""
    total = max(int(seconds), 0)
    return f"{total // 60:02d}:{total % 60:02d}"


@dataclass(frozen=True)
class StatusSnapshot:
    """Everything an observer needs to know about the session."""

    phase: str
    completed_intervals: int
    total_intervals: int
    time_left_display: str
    is_paused: bool
    is_running: bool
    work_minutes: int
    short_break_minutes: int
    long_break_minutes: int
    pid: int = 0
    updated_at: float = 0.0

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "completedIntervals": self.completed_intervals,
            "totalIntervals": self.total_intervals,
            "timeLeftDisplay": self.time_left_display,
            "isPaused": self.is_paused,
            "isRunning": self.is_running,
            "workMinutes": self.work_minutes,
            "shortBreakMinutes": self.short_break_minutes,
            "longBreakMinutes": self.long_break_minutes,
            "pid": self.pid,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StatusSnapshot":
        """Build a snapshot from a persisted payload, defaulting absent fields."""
        return cls(
            phase=str(data.get("phase", "idle")),
            completed_intervals=_as_int(data.get("completedIntervals"), 0),
            total_intervals=max(1, _as_int(data.get("totalIntervals"), 4)),
            time_left_display=str(data.get("timeLeftDisplay", "")),
            is_paused=data.get("isPaused") is True,
            is_running=data.get("isRunning") is True,
            work_minutes=_as_int(data.get("workMinutes"), 25),
            short_break_minutes=_as_int(data.get("shortBreakMinutes"), 5),
            long_break_minutes=_as_int(data.get("longBreakMinutes"), 15),
            pid=_as_int(data.get("pid"), 0),
            updated_at=_as_float(data.get("updatedAt")),
        )


def _as_int(value: object, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value


def _as_float(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def process_alive(pid: int) -> bool:
    """Return whether a process with *pid* exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class StatusFile:
    """Read and write the JSON status snapshot."""

    def __init__(
        self,
        cache_dir: Path | None = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._cache_dir: Path = cache_dir if cache_dir is not None else default_cache_dir()
        self._logger = logger or logging.getLogger("pomodorko.status")

    @property
    def path(self) -> Path:
        return self._cache_dir / _STATUS_FILE

    def write(self, snapshot: StatusSnapshot) -> None:
        """Persist *snapshot*.  I/O errors are logged and swallowed."""
        payload = snapshot.to_dict()
        if not payload["pid"]:
            payload["pid"] = os.getpid()
        payload["updatedAt"] = time.time()
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(".json.tmp")
            with open(tmp_path, "w") as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                json.dump(payload, f)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            self._logger.error("Cannot write status file %s: %s", self.path, exc)

    __call__ = write

    def read(self) -> Optional[dict]:
        """Return the raw persisted payload, or ``None`` if missing or unreadable."""
        if not self.path.exists():
            return None
        try:
            with open(self.path) as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def load(self) -> Optional[StatusSnapshot]:
        """Return the live snapshot, or ``None`` when no daemon owns it."""
        data = self.read()
        if data is None:
            return None
        snapshot = StatusSnapshot.from_dict(data)
        if not process_alive(snapshot.pid):
            return None
        return snapshot

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            self._logger.error("Cannot remove status file %s: %s", self.path, exc)


def _current(time_left: str, is_paused: bool) -> str:
    paused = " (paused)" if is_paused else ""
    return f"current - {time_left} remaining{paused}"


def render_report(snapshot: Optional[StatusSnapshot]) -> str:
    """Return the human-readable progress report for *snapshot*."""
    if snapshot is None:
        return NOT_RUNNING_MESSAGE

    lines = [
        "Pomodorko Status",
        "================",
        f"Total intervals: {snapshot.total_intervals}",
        f"Work: {snapshot.work_minutes} min | "
        f"Short break: {snapshot.short_break_minutes} min | "
        f"Long break: {snapshot.long_break_minutes} min",
        "",
    ]
    if not snapshot.is_running:
        lines.append("Status: Idle")
        return "\n".join(lines)

    done = snapshot.completed_intervals
    total = snapshot.total_intervals
    current = _current(snapshot.time_left_display, snapshot.is_paused)
    lines.append("Progress:")
    for i in range(1, total + 1):
        last = i == total
        break_label = "Long break" if last else f"Break {i}"

        if snapshot.phase == "longRest":
            work_status = "complete"
            break_status = current if last else "complete"
        elif snapshot.phase == "work":
            if i <= done:
                work_status, break_status = "complete", "complete"
            elif i == done + 1:
                work_status, break_status = current, "pending"
            else:
                work_status, break_status = "pending", "pending"
        elif snapshot.phase == "shortRest":
            if i < done:
                work_status, break_status = "complete", "complete"
            elif i == done:
                work_status, break_status = "complete", current
            else:
                work_status, break_status = "pending", "pending"
        else:
            work_status, break_status = "pending", "pending"

        lines.append(f"  Work {i}: {work_status}")
        lines.append(f"  {break_label}: {break_status}")
    return "\n".join(lines)
