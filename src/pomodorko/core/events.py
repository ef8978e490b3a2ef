"""Session events: the structured log of what happened during a session."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

APP_START = "app_start"
WORK_START = "work_start"
WORK_END = "work_end"
BREAK_START = "break_start"
BREAK_END = "break_end"
STOPPED = "stopped"
PAUSED = "paused"
RESUMED = "resumed"


def utc_now_iso() -> str:
    """Return the current time as an ISO-8601 UTC timestamp."""
    return datetime.now(tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class SessionEvent:
    """One entry in the session event log.

    *details* holds the event-specific fields, e.g. ``{"completed": True}``
    for ``work_end``.
    """

    name: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    def describe(self) -> str:
        """Render *details* as ``key=value`` pairs joined by commas."""
        return ",".join(f"{key}={value}" for key, value in self.details.items())


EventSink = Callable[[SessionEvent], None]


def app_start_event() -> SessionEvent:
    return SessionEvent(APP_START)


def work_start_event(duration_minutes: int) -> SessionEvent:
    """A work interval of *duration_minutes* has started."""
    return SessionEvent(WORK_START, {"duration": f"{duration_minutes}min"})


def work_end_event(completed: bool) -> SessionEvent:
    """A work interval ended; *completed* is false when it was cancelled."""
    return SessionEvent(WORK_END, {"completed": completed})


def break_start_event(kind: str, duration_minutes: int) -> SessionEvent:
    """A break started; *kind* is ``"short"`` or ``"long"``."""
    return SessionEvent(BREAK_START, {"type": kind, "duration": f"{duration_minutes}min"})


def break_end_event(skipped: bool) -> SessionEvent:
    """A break ended, either on time or skipped."""
    return SessionEvent(BREAK_END, {"skipped": skipped})


def stopped_event() -> SessionEvent:
    """The session was stopped and returned to idle."""
    return SessionEvent(STOPPED)


def paused_event(phase: str) -> SessionEvent:
    return SessionEvent(PAUSED, {"phase": phase})


def resumed_event(phase: str) -> SessionEvent:
    return SessionEvent(RESUMED, {"phase": phase})


class LoggingEventSink:
    """Write session events to the ``pomodorko.events`` logger."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("pomodorko.events")

    def __call__(self, event: SessionEvent) -> None:
        self._logger.info("%s %s %s", event.timestamp, event.name, event.describe())
