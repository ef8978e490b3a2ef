"""Daemon runtime — one control loop that owns all session state.

Timer ticks and inbound commands are produced on background threads and
submitted to :class:`ControlLoop`; only the thread running the loop touches
the :class:`SessionController`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Callable, Optional

from pomodorko.core.commands import Command, CommandError, CommandSpool, apply_command
from pomodorko.core.config import SettingError, Settings
from pomodorko.core.controller import Notifier, SessionController
from pomodorko.core.events import EventSink, LoggingEventSink
from pomodorko.core.status import StatusFile

_POLL_TIMEOUT = 0.25
_COMMAND_POLL_INTERVAL = 0.5


class ControlLoop:
    """Single-consumer queue of callables."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._queue: Queue[Callable[[], None]] = Queue()
        self._stopping = threading.Event()
        self._logger = logger or logging.getLogger("pomodorko.runtime")

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def submit(self, message: Callable[[], None]) -> None:
        """Queue *message* to run on the loop thread.  Safe from any thread."""
        self._queue.put(message)

    def stop(self) -> None:
        self._stopping.set()
        self._queue.put(lambda: None)

    def run_pending(self) -> int:
        """Run everything queued so far without blocking; return the count."""
        handled = 0
        while True:
            try:
                message = self._queue.get_nowait()
            except Empty:
                return handled
            self._dispatch(message)
            handled += 1

    def run(self) -> None:
        """Process messages until :meth:`stop` is called."""
        while not self._stopping.is_set():
            try:
                message = self._queue.get(timeout=_POLL_TIMEOUT)
            except Empty:
                continue
            self._dispatch(message)

    def _dispatch(self, message: Callable[[], None]) -> None:
        try:
            message()
        except (CommandError, SettingError) as exc:
            self._logger.warning("Rejected: %s", exc)


class CommandPoller:
    """Background thread that forwards spooled commands to the control loop."""

    def __init__(
        self,
        spool: CommandSpool,
        handle: Callable[[Command], None],
        loop: ControlLoop,
        *,
        interval: float = _COMMAND_POLL_INTERVAL,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._spool = spool
        self._handle = handle
        self._loop = loop
        self._interval = interval
        self._logger = logger or logging.getLogger("pomodorko.runtime")
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="pomodorko-commands", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._interval * 4)

    def poll_once(self) -> int:
        """Forward every new command; return how many were queued."""
        try:
            commands = self._spool.receive()
        except OSError as exc:
            self._logger.error("Cannot read command spool: %s", exc)
            return 0
        for command in commands:
            self._logger.info("Received command: %s", " ".join(command.argv()))
            self._loop.submit(lambda command=command: self._handle(command))
        return len(commands)

    def _run(self) -> None:
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self._interval)


@dataclass
class Daemon:
    """Wires the controller to its control loop, spool and status file."""

    controller: SessionController
    loop: ControlLoop
    spool: CommandSpool
    status_file: StatusFile
    poller: Optional[CommandPoller] = None

    def handle_command(self, command: Command) -> None:
        """Apply *command* to the live session.

        Settings changes are not written back here; ``pomodorko set`` persists
        them, and the live settings may carry one-off ``run`` overrides.
        """
        apply_command(self.controller, command)

    def run(self) -> None:
        self.spool.reset()
        self.poller = CommandPoller(self.spool, self.handle_command, self.loop)
        self.poller.start()
        try:
            self.loop.run()
        finally:
            self.poller.stop()
            self.status_file.clear()


def build_daemon(
    settings: Settings,
    *,
    status_file: StatusFile,
    spool: CommandSpool,
    notifier: Optional[Notifier] = None,
    event_sink: Optional[EventSink] = None,
) -> Daemon:
    loop = ControlLoop()
    controller = SessionController(
        settings,
        notifier=notifier,
        event_sink=event_sink or LoggingEventSink(),
        status_sink=status_file.write,
        post=loop.submit,
    )
    return Daemon(
        controller=controller,
        loop=loop,
        spool=spool,
        status_file=status_file,
    )
