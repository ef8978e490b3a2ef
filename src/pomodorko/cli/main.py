"""CLI entry point for pomodorko.

Uses Click to expose the ``pomodorko`` command group.  ``run`` hosts the
timer in the foreground; the other subcommands talk to it through the
command spool and the status file.
"""

from __future__ import annotations

import logging
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional, TypeVar

import click

import pomodorko
from pomodorko.core.commands import (
    CONTROL_COMMANDS,
    CommandError,
    CommandSpool,
    parse_command,
)
from pomodorko.core.config import SETTINGS, SettingError, SettingsStore, describe_setting
from pomodorko.core.runtime import build_daemon
from pomodorko.core.status import StatusFile, render_report

T = TypeVar("T")

_COMMAND_HELP = {
    "start": "Start the timer (if not already running).",
    "stop": "Skip to the next phase and pause it.",
    "toggle": "Start or stop the timer (for single-button bindings).",
    "pause": "Pause or resume the current timer.",
    "reset": "Reset the entire session back to idle.",
}


def _run(action: Callable[[], T]) -> T:
    """Execute *action*, converting rejected input to a CLI error.

    On ``CommandError`` or ``SettingError`` the message is printed to stderr
    and the process exits with code 1.
    """
    try:
        return action()
    except (CommandError, SettingError) as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def setup_logging(level: int = logging.INFO, log_file: Optional[Path] = None) -> logging.Logger:
    """Configure logging for the daemon."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        filename=str(log_file) if log_file is not None else None,
    )
    return logging.getLogger("pomodorko")


@click.group()
@click.version_option(version=pomodorko.__version__, prog_name="pomodorko")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding settings.json.",
)
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding status.json and the command spool.",
)
@click.pass_context
def cli(ctx: click.Context, config_dir: Optional[Path], cache_dir: Optional[Path]) -> None:
    """pomodorko: a Pomodoro interval timer you can drive from the shell."""
    ctx.obj = {"config_dir": config_dir, "cache_dir": cache_dir}


@cli.command()
@click.option("--work", type=click.IntRange(1, 60), default=None, help="Work interval in minutes.")
@click.option("--short", type=click.IntRange(1, 60), default=None, help="Short break in minutes.")
@click.option("--long", type=click.IntRange(1, 60), default=None, help="Long break in minutes.")
@click.option("--intervals", type=click.IntRange(1, 10), default=None, help="Work intervals per set.")
@click.option(
    "--stop-after-break/--continue-after-break",
    default=None,
    help="Return to idle when a break ends instead of starting work.",
)
@click.option(
    "--overrun-limit",
    type=click.FloatRange(max=0, max_open=True),
    default=None,
    help="Seconds past a deadline (negative) after which the session is abandoned.",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default="info",
    show_default=True,
)
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.pass_obj
def run(
    obj: dict,
    work: Optional[int],
    short: Optional[int],
    long: Optional[int],
    intervals: Optional[int],
    stop_after_break: Optional[bool],
    overrun_limit: Optional[float],
    log_level: str,
    log_file: Optional[Path],
) -> None:
    """Run the timer in the foreground until interrupted."""
    logger = setup_logging(getattr(logging, log_level.upper()), log_file)

    store = SettingsStore(obj["config_dir"])
    settings = store.load()
    overrides = {
        "work_minutes": work,
        "short_rest_minutes": short,
        "long_rest_minutes": long,
        "intervals_per_set": intervals,
        "stop_after_break": stop_after_break,
        "overrun_limit_seconds": overrun_limit,
    }
    settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})

    daemon = build_daemon(
        settings,
        status_file=StatusFile(obj["cache_dir"]),
        spool=CommandSpool(obj["cache_dir"]),
    )

    def signal_handler(signum: int, frame) -> None:
        logger.info("%s received, stopping", signal.Signals(signum).name)
        daemon.loop.stop()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info(
        "Pomodorko started: work=%smin short=%smin long=%smin intervals=%s",
        settings.work_minutes,
        settings.short_rest_minutes,
        settings.long_rest_minutes,
        settings.intervals_per_set,
    )
    daemon.run()


def _make_control_command(name: str) -> click.Command:
    @click.pass_obj
    def send(obj: dict) -> None:
        command = _run(lambda: parse_command([name]))
        CommandSpool(obj["cache_dir"]).send(command)
        click.echo(f"Sent '{name}' command to Pomodorko")

    return click.Command(name, callback=send, help=_COMMAND_HELP[name])


for _name in CONTROL_COMMANDS:
    cli.add_command(_make_control_command(_name))


@cli.command(name="set")
@click.argument("setting", type=click.Choice(list(SETTINGS), case_sensitive=False))
@click.argument("value")
@click.pass_obj
def set_(obj: dict, setting: str, value: str) -> None:
    """Change SETTING (work, short, long, intervals) to VALUE."""
    command = _run(lambda: parse_command(["set", setting, value]))
    CommandSpool(obj["cache_dir"]).send(command)
    store = SettingsStore(obj["config_dir"])
    store.save(_run(lambda: store.load().with_setting(command.setting, command.value)))
    click.echo(describe_setting(command.setting, command.value))


@cli.command()
@click.pass_obj
def status(obj: dict) -> None:
    """Show the progress of the running session."""
    snapshot = StatusFile(obj["cache_dir"]).load()
    click.echo(render_report(snapshot))
    sys.exit(0 if snapshot is not None else 1)
