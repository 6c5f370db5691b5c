# -*- coding: utf-8 -*-
"""
Log sinks for the simulator server and for clients.

Both sides log through loguru. Starting a log replaces every existing sink
with a file sink and/or a colourised stderr sink; only one log is active per
process. `get_log_filename` reports where the active file sink writes.

Examples
--------
```python
from arraysim.util import shutdown_log, start_client_log
start_client_log(log_path="probe.log", log_level="DEBUG")
...
shutdown_log()
```
"""

import pathlib
import sys
import traceback
from typing import Optional

from loguru import logger

from .defaults import ARRAYSIM_DIR, DEFAULT_LOGLEVEL, SINGLE_LINE_ERR_LOG

_log_path: Optional[pathlib.Path] = None  # file sink of the active log


def format_error_response():
    err_str = traceback.format_exc()
    if SINGLE_LINE_ERR_LOG:
        return "\t".join(line.strip() for line in err_str.splitlines())
    else:
        return err_str


def _start_log(
    role: str,
    default_path: pathlib.Path,
    log_to_file: bool,
    log_to_stdout: bool,
    log_path,
    clear_prev: bool,
    log_level: str,
) -> Optional[pathlib.Path]:
    global _log_path
    path = pathlib.Path(log_path).absolute() if log_path else default_path

    logger.remove()
    _log_path = None
    if log_to_file:
        if clear_prev:
            clear_log(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, level=log_level, enqueue=True, colorize=False)
        _log_path = path
    if log_to_stdout:
        logger.add(sys.stderr, level=log_level, enqueue=True, colorize=True)

    if _log_path is not None:
        logger.info("{} log started at {}", role, _log_path)
    else:
        logger.info("{} log started.", role)
    return _log_path


def start_client_log(
    log_to_file=True,
    log_to_stdout=False,
    log_path=None,
    clear_prev=True,
    log_level=DEFAULT_LOGLEVEL,
) -> Optional[pathlib.Path]:
    """Start the log of a client process (e.g. `arraysim probe`).

    Returns the log file path, or None when not logging to file.
    """
    return _start_log(
        "Client",
        log_default_path_client(),
        log_to_file,
        log_to_stdout,
        log_path,
        clear_prev,
        log_level,
    )


def start_server_log(
    log_to_file=True,
    log_to_stdout=False,
    log_path=None,
    clear_prev=True,
    log_level=DEFAULT_LOGLEVEL,
) -> Optional[pathlib.Path]:
    """Start the log of the simulator server, see `start_client_log`."""
    return _start_log(
        "Server",
        log_default_path_server(),
        log_to_file,
        log_to_stdout,
        log_path,
        clear_prev,
        log_level,
    )


def shutdown_log():
    """Flush and remove every sink."""
    global _log_path
    logger.info("Closing down log.")
    logger.remove()
    _log_path = None


def log_default_path_client() -> pathlib.Path:
    return ARRAYSIM_DIR / "client.log"


def log_default_path_server() -> pathlib.Path:
    return ARRAYSIM_DIR / "server.log"


def clear_log(log_path):
    """Delete the log file at `log_path`, if it exists."""
    try:
        pathlib.Path(log_path).unlink(missing_ok=True)
    except PermissionError:
        logger.error("Could not clear log file {}. Permission denied. Continuing.", log_path)


def get_log_filename() -> str:
    """Path of the active log file, or "" if nothing logs to file."""
    return str(_log_path) if _log_path is not None else ""
