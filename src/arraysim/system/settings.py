"""Simulator settings.

Settings live in a single INI section, by default in ~/.arraysim/settings.ini:

[simulator]
host = 0.0.0.0
port = 8080
max_devices = 1024
ack_timeout = 5.0
max_handshake_attempts = 3
tick_interval = 0.01
time_step = 1000000
time_scale = 1.0
auto_play = true
mod_enable = false
log_level = INFO

Missing keys fall back to the defaults below; unknown keys are an error.
Values are converted according to the dataclass field types.

See Also
--------
arraysim.cli : `arraysim settings show|init`
"""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional, get_type_hints

from loguru import logger
from mashumaro import DataClassDictMixin

from arraysim.util import (
    ARRAYSIM_DIR,
    DEFAULT_ACK_TIMEOUT,
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_MAX_DEVICES,
    DEFAULT_MAX_HANDSHAKE_ATTEMPTS,
    DEFAULT_PORT,
    DEFAULT_TICK_INTERVAL,
    DEFAULT_TIME_STEP,
)

SETTINGS_SECTION = "simulator"
LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


@dataclass
class SimulatorSettings(DataClassDictMixin):
    """Runtime settings for `arraysim server`.

    Attributes
    ----------
    host, port : str, int
        Listener address.
    max_devices : int
        Largest geometry a client may configure.
    ack_timeout : float
        Seconds a session waits for the simulation owner to apply a signal.
    max_handshake_attempts : int
        Failed handshakes tolerated before the connection is dropped.
    tick_interval : float
        Seconds the owner parks on the signal channel between ticks.
    time_step, time_scale, auto_play : int, float, bool
        Emulated clock: ns per manual step, wall-clock multiplier, free-run.
    mod_enable : bool
        Passed to the emulator when transducer visuals are recomputed.
    log_level : str
        loguru level name.
    """

    host: str = DEFAULT_HOST_ADDR
    port: int = DEFAULT_PORT
    max_devices: int = DEFAULT_MAX_DEVICES
    ack_timeout: float = DEFAULT_ACK_TIMEOUT
    max_handshake_attempts: int = DEFAULT_MAX_HANDSHAKE_ATTEMPTS
    tick_interval: float = DEFAULT_TICK_INTERVAL
    time_step: int = DEFAULT_TIME_STEP
    time_scale: float = 1.0
    auto_play: bool = True
    mod_enable: bool = False
    log_level: str = DEFAULT_LOGLEVEL

    def __post_init__(self):
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")
        if self.max_devices < 1:
            raise ValueError("max_devices must be at least 1")
        if self.ack_timeout <= 0:
            raise ValueError("ack_timeout must be positive")
        if self.max_handshake_attempts < 1:
            raise ValueError("max_handshake_attempts must be at least 1")
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")


def settings_default_path() -> Path:
    return ARRAYSIM_DIR / "settings.ini"


def _parse_section(config: ConfigParser, section: str) -> dict:
    hints = get_type_hints(SimulatorSettings)
    known = {f.name for f in fields(SimulatorSettings)}
    unknown = set(config[section]) - known
    if unknown:
        raise ValueError(
            f"Unknown settings in [{section}]: {', '.join(sorted(unknown))}"
        )

    values = {}
    for key in config[section]:
        typ = hints[key]
        if typ is bool:
            values[key] = config.getboolean(section, key)
        elif typ is int:
            values[key] = config.getint(section, key)
        elif typ is float:
            values[key] = config.getfloat(section, key)
        else:
            values[key] = config.get(section, key)
    return values


def load_settings(path: Optional[Path] = None, **overrides) -> SimulatorSettings:
    """Load settings from `path` (default ~/.arraysim/settings.ini).

    A missing file means defaults. Keyword overrides (e.g. from CLI flags)
    win over file values; None overrides are ignored.
    """
    path = Path(path) if path is not None else settings_default_path()
    values = {}
    if path.exists():
        config = ConfigParser()
        config.read(path)
        if config.has_section(SETTINGS_SECTION):
            values = _parse_section(config, SETTINGS_SECTION)
            logger.debug("Loaded {} settings from {}", len(values), path)
        else:
            logger.warning("No [{}] section in {}", SETTINGS_SECTION, path)
    else:
        logger.debug("No settings file at {}, using defaults", path)

    values.update({k: v for k, v in overrides.items() if v is not None})
    return SimulatorSettings.from_dict(values)


def settings_to_config(settings: SimulatorSettings) -> ConfigParser:
    config = ConfigParser()
    config[SETTINGS_SECTION] = {
        key: str(value).lower() if isinstance(value, bool) else str(value)
        for key, value in settings.to_dict().items()
    }
    return config


def create_default_settings_file(
    path: Optional[Path] = None, overwrite: bool = False
) -> Path:
    """Write a settings file holding every default value."""
    path = Path(path) if path is not None else settings_default_path()
    if path.exists() and not overwrite:
        raise FileExistsError(f"Settings file already exists: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug("Creating default settings file at {}", path)
    with path.open("w") as f:
        settings_to_config(SimulatorSettings()).write(f)
    return path
