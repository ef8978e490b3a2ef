"""Session controller — wall-clock timing around the interval state machine.

The controller is the only owner of a running :class:`PhaseTimer`.  It turns
ticks into ``TimerFired`` (or, after an overrun, ``StartStop``) events, keeps
the pause accounting, and tells collaborators what happened.

Deadlines use ``time.time()`` rather than ``time.monotonic()``: the monotonic
clock stops while the machine is suspended, and a suspended machine is
exactly the overrun case that must be detected.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

from pomodorko.core import events
from pomodorko.core.config import Settings
from pomodorko.core.events import EventSink, SessionEvent
from pomodorko.core.machine import (
    REST_PHASES,
    Event,
    IntervalStateMachine,
    InvalidTransitionError,
    Phase,
    Transition,
    add_pomodoro_routes,
)
from pomodorko.core.status import StatusSnapshot, format_time_left
from pomodorko.core.timer import PhaseTimer, Post

ICON_IDLE = "idle"
ICON_WORK = "work"
ICON_BREAK = "break"

CUE_WORK_COMPLETE = "work_complete"
CUE_SET_COMPLETE = "set_complete"
CUE_BREAK_COMPLETE = "break_complete"


class Notifier(Protocol):
    """Icon and sound collaborator."""

    def set_icon(self, name: str) -> None: ...

    def play_cue(self, name: str) -> None: ...


class LoggingNotifier:
    """Notifier that only records icon and cue changes in the log."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("pomodorko.notifier")

    def set_icon(self, name: str) -> None:
        self._logger.debug("icon=%s", name)

    def play_cue(self, name: str) -> None:
        self._logger.info("cue=%s", name)


TimerFactory = Callable[[Callable[[], None]], PhaseTimer]
StatusSink = Callable[[StatusSnapshot], None]


class SessionController:
    """Drives a Pomodoro session from user actions and timer ticks.

    *post* marshals timer ticks onto the control loop; without one, ticks
    call :meth:`tick` directly on the timer thread, which is only suitable
    for single-threaded use and tests.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        notifier: Optional[Notifier] = None,
        event_sink: Optional[EventSink] = None,
        status_sink: Optional[StatusSink] = None,
        on_error: Optional[Callable[[InvalidTransitionError], None]] = None,
        post: Optional[Post] = None,
        timer_factory: Optional[TimerFactory] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings: Settings = settings if settings is not None else Settings()
        self._notifier: Notifier = notifier or LoggingNotifier()
        self._event_sink = event_sink
        self._status_sink = status_sink
        self._post = post
        self._timer_factory: TimerFactory = timer_factory or self._default_timer
        self._logger = logger or logging.getLogger("pomodorko.controller")

        self._consecutive_work_intervals: int = 0
        self._finish_time: Optional[float] = None
        self._remaining_when_paused: float = 0.0
        self._is_paused: bool = False
        self._timer: Optional[PhaseTimer] = None
        self._time_left_display: str = ""

        self._machine = IntervalStateMachine(
            Phase.IDLE,
            on_error=on_error,
            logger=logging.getLogger("pomodorko.machine"),
        )
        self._setup_state_machine()

        self._emit(events.app_start_event())
        self._publish()

    # -- observable state ----------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self._machine.phase

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def consecutive_work_intervals(self) -> int:
        return self._consecutive_work_intervals

    @property
    def finish_time(self) -> Optional[float]:
        return self._finish_time

    @property
    def remaining_when_paused(self) -> float:
        return self._remaining_when_paused

    @property
    def is_paused(self) -> bool:
        return self._is_paused

    @property
    def is_running(self) -> bool:
        """Whether a phase timer exists, paused or not."""
        return self._timer is not None

    @property
    def time_left_display(self) -> str:
        return self._time_left_display

    def time_left(self) -> Optional[float]:
        """Seconds until the deadline (negative once overdue), or ``None`` when idle."""
        if self._is_paused:
            return self._remaining_when_paused
        if self._finish_time is None:
            return None
        return self._finish_time - time.time()

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(
            phase=self.phase.value,
            completed_intervals=self._consecutive_work_intervals,
            total_intervals=self._settings.intervals_per_set,
            time_left_display=self._time_left_display,
            is_paused=self._is_paused,
            is_running=self.is_running,
            work_minutes=self._settings.work_minutes,
            short_break_minutes=self._settings.short_rest_minutes,
            long_break_minutes=self._settings.long_rest_minutes,
        )

    # -- public actions ------------------------------------------------------

    def start_stop(self) -> Optional[Transition]:
        return self._fire(Event.START_STOP)

    def skip_rest(self) -> Optional[Transition]:
        return self._fire(Event.SKIP_REST)

    def pause(self) -> bool:
        """Freeze the running timer.  Returns whether anything changed."""
        if self._timer is None or self._is_paused or self._finish_time is None:
            return False
        self._is_paused = True
        self._remaining_when_paused = max(0.0, self._finish_time - time.time())
        self._timer.suspend()
        self._emit(events.paused_event(self.phase.value))
        self._publish()
        return True

    def resume(self) -> bool:
        """Continue a paused timer from its frozen remaining time."""
        if self._timer is None or not self._is_paused:
            return False
        self._is_paused = False
        self._finish_time = time.time() + self._remaining_when_paused
        self._timer.resume()
        self._emit(events.resumed_event(self.phase.value))
        self._publish()
        return True

    def toggle_pause(self) -> bool:
        if self._is_paused:
            return self.resume()
        return self.pause()

    def reset_session(self) -> Optional[Transition]:
        """Return to Idle from any active phase, or start from Idle."""
        return self._fire(Event.START_STOP)

    def skip_to_next_phase_and_pause(self) -> Optional[Transition]:
        """Advance to the next phase and leave it paused.

        From a long rest with ``stop_after_break`` the next phase is Idle,
        which cannot be paused, so the session simply stops.
        """
        phase = self.phase
        if phase == Phase.WORK:
            return self._fire(Event.TIMER_FIRED, pause_on_arrival=True)
        if phase in REST_PHASES:
            if self._settings.stop_after_break and phase == Phase.LONG_REST:
                return self._fire(Event.START_STOP)
            return self._fire(Event.SKIP_REST, pause_on_arrival=True)
        return None

    def update_setting(self, name: str, value: object) -> Settings:
        """Change external setting *name*; raises :class:`SettingError` if invalid."""
        self._settings = self._settings.with_setting(name, value)
        self._logger.info("Setting %s changed to %s", name, value)
        self._publish()
        return self._settings

    def tick(self) -> None:
        """Handle one timer tick: refresh the display, then advance if due."""
        if self._finish_time is None or self._is_paused:
            return
        self._publish()
        time_left = self._finish_time - time.time()
        if time_left > 0:
            return
        if time_left < self._settings.overrun_limit_seconds:
            self._logger.warning(
                "Deadline missed by %.0fs (limit %.0fs); abandoning %s",
                -time_left,
                -self._settings.overrun_limit_seconds,
                self.phase.value,
            )
            self._fire(Event.START_STOP)
        else:
            self._fire(Event.TIMER_FIRED)

    # -- state machine setup -------------------------------------------------

    def _setup_state_machine(self) -> None:
        machine = self._machine
        add_pomodoro_routes(
            machine,
            completed_intervals=lambda: self._consecutive_work_intervals,
            intervals_per_set=lambda: self._settings.intervals_per_set,
            stop_after_break=lambda: self._settings.stop_after_break,
        )

        machine.add_handler(self._on_work_start, target=Phase.WORK)
        machine.add_handler(self._on_work_finish, source=Phase.WORK, target=Phase.SHORT_REST, order=0)
        machine.add_handler(self._on_work_finish, source=Phase.WORK, target=Phase.LONG_REST, order=0)
        machine.add_handler(self._on_work_cancelled, source=Phase.WORK, target=Phase.IDLE, order=0)
        machine.add_handler(self._on_short_rest_start, target=Phase.SHORT_REST)
        machine.add_handler(self._on_long_rest_start, target=Phase.LONG_REST)
        machine.add_handler(self._on_rest_finish, source=Phase.SHORT_REST, target=Phase.WORK, order=0)
        machine.add_handler(self._on_rest_finish, source=Phase.LONG_REST, target=Phase.WORK, order=0)
        machine.add_handler(self._on_idle_start, target=Phase.IDLE)

    def _fire(self, event: Event, *, pause_on_arrival: bool = False) -> Optional[Transition]:
        transition = self._machine.fire(event, pause_on_arrival=pause_on_arrival)
        self._publish()
        return transition

    # -- transition handlers -------------------------------------------------

    def _on_work_start(self, transition: Transition) -> None:
        self._notifier.set_icon(ICON_WORK)
        self._start_timer(self._settings.work_minutes * 60)
        self._emit(events.work_start_event(self._settings.work_minutes))
        if transition.pause_on_arrival:
            self.pause()

    def _on_work_finish(self, transition: Transition) -> None:
        self._consecutive_work_intervals += 1
        self._emit(events.work_end_event(completed=True))

    def _on_work_cancelled(self, transition: Transition) -> None:
        self._emit(events.work_end_event(completed=False))
        self._emit(events.stopped_event())

    def _on_short_rest_start(self, transition: Transition) -> None:
        self._notifier.play_cue(CUE_WORK_COMPLETE)
        self._notifier.set_icon(ICON_BREAK)
        self._start_timer(self._settings.short_rest_minutes * 60)
        self._emit(events.break_start_event("short", self._settings.short_rest_minutes))
        if transition.pause_on_arrival:
            self.pause()

    def _on_long_rest_start(self, transition: Transition) -> None:
        self._notifier.play_cue(CUE_SET_COMPLETE)
        self._notifier.set_icon(ICON_BREAK)
        self._consecutive_work_intervals = 0
        self._start_timer(self._settings.long_rest_minutes * 60)
        self._emit(events.break_start_event("long", self._settings.long_rest_minutes))
        if transition.pause_on_arrival:
            self.pause()

    def _on_rest_finish(self, transition: Transition) -> None:
        self._notifier.play_cue(CUE_BREAK_COMPLETE)
        self._emit(events.break_end_event(skipped=transition.event == Event.SKIP_REST))

    def _on_idle_start(self, transition: Transition) -> None:
        self._stop_timer()
        self._notifier.set_icon(ICON_IDLE)
        self._consecutive_work_intervals = 0
        self._publish()

    # -- timer management ----------------------------------------------------

    def _default_timer(self, callback: Callable[[], None]) -> PhaseTimer:
        return PhaseTimer(callback, post=self._post)

    def _start_timer(self, seconds: int) -> None:
        if self._timer is not None:
            self._stop_timer()
        self._finish_time = time.time() + seconds
        self._timer = self._timer_factory(self.tick)
        self._timer.start()

    def _stop_timer(self) -> None:
        if self._timer is not None:
            if self._is_paused:
                # A suspended timer cannot be cancelled.
                self._timer.resume()
                self._is_paused = False
            self._timer.cancel()
        self._timer = None
        self._finish_time = None
        self._remaining_when_paused = 0.0

    # -- collaborators -------------------------------------------------------

    def _refresh_time_left(self) -> None:
        if self._is_paused:
            self._time_left_display = format_time_left(self._remaining_when_paused)
        elif self._finish_time is not None:
            self._time_left_display = format_time_left(self._finish_time - time.time())
        else:
            self._time_left_display = ""

    def _publish(self) -> None:
        self._refresh_time_left()
        if self._status_sink is None:
            return
        try:
            self._status_sink(self.snapshot())
        except OSError as exc:
            self._logger.error("Status sink failed: %s", exc)

    def _emit(self, event: SessionEvent) -> None:
        if self._event_sink is None:
            return
        try:
            self._event_sink(event)
        except OSError as exc:
            self._logger.error("Event sink failed for %s: %s", event.name, exc)
