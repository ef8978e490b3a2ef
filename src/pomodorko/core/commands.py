"""External commands — parsing, the command spool, and application.

CLI invocations append commands to ``<cache_dir>/commands.jsonl``; the
running daemon reads new lines and applies them on its control loop.
"""

from __future__ import annotations

import fcntl
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from pomodorko.core.config import SETTINGS, SettingError, default_cache_dir, validate_setting
from pomodorko.core.controller import SessionController

_SPOOL_FILE = "commands.jsonl"

START = "start"
STOP = "stop"
TOGGLE = "toggle"
PAUSE = "pause"
RESET = "reset"
SET = "set"

CONTROL_COMMANDS = (START, STOP, TOGGLE, PAUSE, RESET)
COMMANDS = CONTROL_COMMANDS + (SET,)

SET_USAGE = "Usage: set <work|short|long|intervals> <value>"


class CommandError(ValueError):
    """Raised when an external command is malformed or out of range."""


@dataclass(frozen=True)
class Command:
    name: str
    setting: Optional[str] = None
    value: Optional[int] = None

    def argv(self) -> list[str]:
        if self.name == SET:
            return [SET, str(self.setting), str(self.value)]
        return [self.name]


def parse_command(argv: Sequence[str]) -> Command:
    """Validate *argv* (e.g. ``["set", "work", "25"]``) into a :class:`Command`."""
    if not argv:
        raise CommandError("Empty command")
    name = str(argv[0]).strip().lower()
    if name not in COMMANDS:
        raise CommandError(f"Unknown command: {argv[0]}")

    if name != SET:
        if len(argv) != 1:
            raise CommandError(f"{name} takes no arguments")
        return Command(name)

    if len(argv) != 3:
        raise CommandError(SET_USAGE)
    setting = str(argv[1]).strip().lower()
    if setting not in SETTINGS:
        raise CommandError(f"Unknown setting: {argv[1]}. {SET_USAGE}")
    try:
        value = validate_setting(setting, argv[2])
    except SettingError as exc:
        raise CommandError(f"Error: {exc}") from None
    return Command(SET, setting=setting, value=value)


def apply_command(controller: SessionController, command: Command) -> None:
    """Apply *command* to *controller*; must run on the control loop."""
    if command.name == START:
        if not controller.is_running:
            controller.start_stop()
    elif command.name == STOP:
        if controller.is_running:
            controller.skip_to_next_phase_and_pause()
    elif command.name == TOGGLE:
        controller.start_stop()
    elif command.name == PAUSE:
        controller.toggle_pause()
    elif command.name == RESET:
        controller.reset_session()
    elif command.name == SET:
        controller.update_setting(str(command.setting), command.value)
    else:
        raise CommandError(f"Unknown command: {command.name}")


class CommandSpool:
    """Append-only JSON-lines channel from CLI invocations to the daemon."""

    def __init__(
        self,
        cache_dir: Path | None = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._cache_dir: Path = cache_dir if cache_dir is not None else default_cache_dir()
        self._logger = logger or logging.getLogger("pomodorko.commands")
        self._offset: int = 0

    @property
    def path(self) -> Path:
        return self._cache_dir / _SPOOL_FILE

    def send(self, command: Command) -> None:
        """Append *command* for the daemon to pick up."""
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        line = json.dumps({"argv": command.argv(), "sentAt": time.time()})
        with open(self.path, "a") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            f.write(line + "\n")

    def reset(self) -> None:
        """Discard commands sent before the daemon started."""
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
        self._offset = 0

    def receive(self) -> list[Command]:
        """Return commands appended since the last call.

        The file is truncated once every complete line has been read.
        Malformed lines are logged and skipped.
        """
        if not self.path.exists():
            self._offset = 0
            return []
        with open(self.path, "r+b") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            f.seek(0, 2)
            size = f.tell()
            if size < self._offset:
                self._offset = 0
            f.seek(self._offset)
            chunk = f.read(size - self._offset)

            # Leave a partially written trailing line for the next call.
            complete, sep, partial = chunk.rpartition(b"\n")
            if not sep:
                return []
            if partial:
                self._offset += len(complete) + 1
            else:
                f.truncate(0)
                self._offset = 0

        commands: list[Command] = []
        for raw in complete.decode("utf-8", errors="replace").splitlines():
            if not raw.strip():
                continue
            try:
                payload = json.loads(raw)
                argv = payload["argv"]
                if not isinstance(argv, list):
                    raise CommandError("argv must be a list")
                commands.append(parse_command([str(arg) for arg in argv]))
            except (json.JSONDecodeError, KeyError, TypeError, CommandError) as exc:
                self._logger.warning("Rejected command %r: %s", raw, exc)
        return commands
