"""Settings: interval lengths, bounds, and JSON persistence."""

from __future__ import annotations

import fcntl
import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Optional

_SETTINGS_FILE = "settings.json"

_MIN_MINUTES = 1
_MAX_MINUTES = 60
_MIN_INTERVALS = 1
_MAX_INTERVALS = 10

# External setting name -> (Settings field, human label, minimum, maximum, unit)
SETTINGS: dict[str, tuple[str, str, int, int, str]] = {
    "work": ("work_minutes", "work interval", _MIN_MINUTES, _MAX_MINUTES, " minutes"),
    "short": ("short_rest_minutes", "short break", _MIN_MINUTES, _MAX_MINUTES, " minutes"),
    "long": ("long_rest_minutes", "long break", _MIN_MINUTES, _MAX_MINUTES, " minutes"),
    "intervals": ("intervals_per_set", "intervals per set", _MIN_INTERVALS, _MAX_INTERVALS, ""),
}


class SettingError(ValueError):
    """Raised when a setting name or value is rejected."""


def default_config_dir() -> Path:
    override = os.getenv("POMODORKO_CONFIG_DIR", "").strip()
    if override:
        return Path(override)
    return Path.home() / ".config" / "pomodorko"


def default_cache_dir() -> Path:
    override = os.getenv("POMODORKO_CACHE_DIR", "").strip()
    if override:
        return Path(override)
    return Path.home() / ".cache" / "pomodorko"


def validate_setting(name: str, value: object) -> int:
    """Return *value* as an int if it is acceptable for setting *name*."""
    if name not in SETTINGS:
        raise SettingError(
            f"Unknown setting: {name} (expected one of {', '.join(SETTINGS)})"
        )
    _field, label, minimum, maximum, _unit = SETTINGS[name]
    if isinstance(value, bool):
        raise SettingError(f"{label} must be a whole number, got {value!r}")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise SettingError(f"{label} must be a whole number, got {value!r}") from None
    if not isinstance(value, int):
        raise SettingError(f"{label} must be a whole number, got {value!r}")
    if not (minimum <= value <= maximum):
        raise SettingError(f"{label} must be between {minimum} and {maximum}")
    return value


def describe_setting(name: str, value: int) -> str:
    """Return the confirmation line for a setting change, e.g. ``Set work interval to 25 minutes``."""
    _field, label, _minimum, _maximum, unit = SETTINGS[name]
    return f"Set {label} to {value}{unit}"


@dataclass(frozen=True)
class Settings:
    """Interval lengths and behaviour switches supplied to the controller."""

    work_minutes: int = 25
    short_rest_minutes: int = 5
    long_rest_minutes: int = 15
    intervals_per_set: int = 4
    stop_after_break: bool = False
    overrun_limit_seconds: float = -60.0

    def __post_init__(self) -> None:
        for name, (field_name, _label, _minimum, _maximum, _unit) in SETTINGS.items():
            validate_setting(name, getattr(self, field_name))
        if self.overrun_limit_seconds >= 0:
            raise SettingError(
                f"overrun limit must be negative, got {self.overrun_limit_seconds}"
            )

    def with_setting(self, name: str, value: object) -> "Settings":
        """Return a copy with external setting *name* changed to *value*."""
        checked = validate_setting(name, value)
        return replace(self, **{SETTINGS[name][0]: checked})

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


class SettingsStore:
    """Load and save :class:`Settings` as ``<config_dir>/settings.json``."""

    def __init__(
        self,
        config_dir: Path | None = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config_dir: Path = config_dir if config_dir is not None else default_config_dir()
        self._logger = logger or logging.getLogger("pomodorko.config")

    @property
    def path(self) -> Path:
        return self._config_dir / _SETTINGS_FILE

    def load(self) -> Settings:
        """Return the stored settings, or defaults if missing or unreadable."""
        if not self.path.exists():
            return Settings()
        try:
            with open(self.path) as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                data = json.load(f)
            return Settings.from_dict(data)
        except (OSError, AttributeError, TypeError, ValueError) as exc:
            self._logger.warning("Ignoring unreadable settings file %s: %s", self.path, exc)
            return Settings()

    def save(self, settings: Settings) -> None:
        """Write *settings*; failures are logged, never raised."""
        try:
            self._config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                json.dump(settings.to_dict(), f, indent=2)
        except OSError as exc:
            self._logger.error("Cannot write settings file %s: %s", self.path, exc)
