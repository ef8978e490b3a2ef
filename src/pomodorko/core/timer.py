"""Phase timer — a repeating one-second tick source for the active phase."""

from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, Optional


class TimerState(Enum):
    """Possible states of a phase timer."""

    PENDING = "pending"
    RUNNING = "running"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class TimerStateError(Exception):
    """Raised when a timer operation is attempted from the wrong state."""


Post = Callable[[Callable[[], None]], None]

_DEFAULT_INTERVAL = 1.0


def _call_now(callback: Callable[[], None]) -> None:
    callback()


class PhaseTimer:
    """Posts *callback* once on start and then every *interval* seconds.

    The ticking runs on a daemon thread, but the callback itself is handed to
    *post*, which is expected to marshal it onto the control loop.  Deadlines
    are not tracked here; the controller owns them.
    """

    def __init__(
        self,
        callback: Callable[[], None],
        *,
        post: Optional[Post] = None,
        interval: float = _DEFAULT_INTERVAL,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._callback = callback
        self._post: Post = post or _call_now
        self._interval = interval
        self._state: TimerState = TimerState.PENDING
        self._cancelled = threading.Event()
        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # -- public interface ----------------------------------------------------

    @property
    def state(self) -> TimerState:
        return self._state

    def start(self) -> None:
        """Begin ticking.  Valid only once, from PENDING."""
        self._require_state("start", frozenset({TimerState.PENDING}))
        self._state = TimerState.RUNNING
        self._running.set()
        self._thread = threading.Thread(target=self._run, name="pomodorko-tick", daemon=True)
        self._thread.start()

    def suspend(self) -> None:
        """Stop posting ticks until :meth:`resume` is called."""
        self._require_state("suspend", frozenset({TimerState.RUNNING}))
        self._state = TimerState.SUSPENDED
        self._running.clear()

    def resume(self) -> None:
        self._require_state("resume", frozenset({TimerState.SUSPENDED}))
        self._state = TimerState.RUNNING
        self._running.set()

    def cancel(self) -> None:
        """Stop ticking for good.

        A suspended timer must be resumed before it is cancelled.
        """
        if self._state == TimerState.CANCELLED:
            return
        if self._state == TimerState.SUSPENDED:
            raise TimerStateError("cancel() is not valid from suspended state; resume first")
        self._state = TimerState.CANCELLED
        self._cancelled.set()
        # Wake the worker if it is parked on the running gate.
        self._running.set()

    # -- private helpers -----------------------------------------------------

    def _require_state(self, method: str, valid: frozenset[TimerState]) -> None:
        if self._state not in valid:
            raise TimerStateError(f"{method}() is not valid from {self._state.value} state")

    def _run(self) -> None:
        while not self._cancelled.is_set():
            self._running.wait()
            if self._cancelled.is_set():
                break
            self._post(self._callback)
            self._cancelled.wait(self._interval)
