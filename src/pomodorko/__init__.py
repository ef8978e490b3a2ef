"""pomodorko: a Pomodoro interval timer with a command-line remote."""

__version__ = "0.1.0"
