"""Interval state machine — phases, events, guarded routes and handlers.

Pure transition logic: no timing, no I/O.  The owner registers routes and
handlers, then drives the machine with :meth:`IntervalStateMachine.fire`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class Phase(Enum):
    """Phases of a Pomodoro session."""

    IDLE = "idle"
    WORK = "work"
    SHORT_REST = "shortRest"
    LONG_REST = "longRest"


class Event(Enum):
    """Events accepted by the state machine."""

    START_STOP = "startStop"
    TIMER_FIRED = "timerFired"
    SKIP_REST = "skipRest"


REST_PHASES = frozenset({Phase.SHORT_REST, Phase.LONG_REST})

_DEFAULT_ORDER = 100


class InvalidTransitionError(Exception):
    """Reported when an event has no legal route from the current phase."""

    def __init__(self, phase: Phase, event: Event) -> None:
        super().__init__(f"{event.value} is not valid from {phase.value} phase")
        self.phase = phase
        self.event = event


@dataclass(frozen=True)
class Route:
    """One row of the transition table."""

    source: Phase
    event: Event
    target: Phase
    guard: Optional[Callable[[], bool]] = None


@dataclass(frozen=True)
class Transition:
    """Context handed to every handler of a transition."""

    source: Phase
    target: Phase
    event: Event
    pause_on_arrival: bool = False


Handler = Callable[[Transition], None]


@dataclass(frozen=True)
class _HandlerEntry:
    source: Optional[Phase]
    target: Optional[Phase]
    order: int
    handler: Handler

    def matches(self, transition: Transition) -> bool:
        if self.source is not None and self.source != transition.source:
            return False
        return self.target is None or self.target == transition.target


class IntervalStateMachine:
    """Table-driven state machine over :class:`Phase`.

    Routes are tried in registration order; the first one whose guard passes
    wins.  Handlers registered for ``(source, target)`` (``None`` meaning any
    phase) run after the phase has changed, sorted by ``order``.
    """

    def __init__(
        self,
        initial: Phase = Phase.IDLE,
        *,
        on_error: Optional[Callable[[InvalidTransitionError], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._phase = initial
        self._routes: list[Route] = []
        self._handlers: list[_HandlerEntry] = []
        self._on_error = on_error
        self._logger = logger or logging.getLogger("pomodorko.machine")

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def routes(self) -> tuple[Route, ...]:
        return tuple(self._routes)

    def add_routes(
        self,
        event: Event,
        edges: list[tuple[Phase, Phase]],
        guard: Optional[Callable[[], bool]] = None,
    ) -> None:
        """Register ``source -> target`` edges for *event*, sharing one guard."""
        for source, target in edges:
            self._routes.append(Route(source=source, event=event, target=target, guard=guard))

    def add_handler(
        self,
        handler: Handler,
        *,
        source: Optional[Phase] = None,
        target: Optional[Phase] = None,
        order: int = _DEFAULT_ORDER,
    ) -> None:
        self._handlers.append(
            _HandlerEntry(source=source, target=target, order=order, handler=handler)
        )

    def route_for(self, event: Event) -> Optional[Route]:
        """Return the route *event* would take from the current phase, if any."""
        for route in self._routes:
            if route.source != self._phase or route.event != event:
                continue
            if route.guard is None or route.guard():
                return route
        return None

    def can_fire(self, event: Event) -> bool:
        return self.route_for(event) is not None

    def fire(self, event: Event, *, pause_on_arrival: bool = False) -> Optional[Transition]:
        """Apply *event*; return the transition taken, or ``None`` if illegal."""
        route = self.route_for(event)
        if route is None:
            error = InvalidTransitionError(self._phase, event)
            self._logger.warning("State machine error: %s", error)
            if self._on_error is not None:
                self._on_error(error)
            return None

        transition = Transition(
            source=route.source,
            target=route.target,
            event=event,
            pause_on_arrival=pause_on_arrival,
        )
        self._phase = route.target
        self._logger.debug(
            "Transition %s -> %s on %s",
            transition.source.value,
            transition.target.value,
            event.value,
        )
        entries = [entry for entry in self._handlers if entry.matches(transition)]
        for entry in sorted(entries, key=lambda entry: entry.order):
            entry.handler(transition)
        return transition


def add_pomodoro_routes(
    machine: IntervalStateMachine,
    *,
    completed_intervals: Callable[[], int],
    intervals_per_set: Callable[[], int],
    stop_after_break: Callable[[], bool],
) -> None:
    """Install the Pomodoro transition table on *machine*.

    The work guards read the completed-interval count before the work-finish
    handler increments it, hence the comparison against ``intervals - 1``.
    """
    machine.add_routes(
        Event.START_STOP,
        [
            (Phase.IDLE, Phase.WORK),
            (Phase.WORK, Phase.IDLE),
            (Phase.SHORT_REST, Phase.IDLE),
            (Phase.LONG_REST, Phase.IDLE),
        ],
    )
    machine.add_routes(
        Event.TIMER_FIRED,
        [(Phase.WORK, Phase.SHORT_REST)],
        guard=lambda: completed_intervals() < intervals_per_set() - 1,
    )
    machine.add_routes(
        Event.TIMER_FIRED,
        [(Phase.WORK, Phase.LONG_REST)],
        guard=lambda: completed_intervals() >= intervals_per_set() - 1,
    )
    machine.add_routes(
        Event.TIMER_FIRED,
        [(Phase.SHORT_REST, Phase.IDLE), (Phase.LONG_REST, Phase.IDLE)],
        guard=stop_after_break,
    )
    machine.add_routes(
        Event.TIMER_FIRED,
        [(Phase.SHORT_REST, Phase.WORK), (Phase.LONG_REST, Phase.WORK)],
        guard=lambda: not stop_after_break(),
    )
    machine.add_routes(
        Event.SKIP_REST,
        [(Phase.SHORT_REST, Phase.WORK), (Phase.LONG_REST, Phase.WORK)],
    )
