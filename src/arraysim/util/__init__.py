# -*- coding: utf-8 -*-
"""
Utility functions and constants for arraysim.

- Default ports, timeouts and protocol limits
- Logging configuration and management

Examples
--------
Starting a server log that also prints to the console:
```python
from arraysim.util import start_server_log
start_server_log(log_to_stdout=True, log_level="DEBUG")
```

See Also
--------
arraysim.util.logging : Logging configuration
arraysim.util.defaults : Default values
"""

from .defaults import (
    ARRAYSIM_DIR,
    DEFAULT_ACK_TIMEOUT,
    DEFAULT_CLIENT_HOST_ADDR,
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_MAX_DEVICES,
    DEFAULT_MAX_HANDSHAKE_ATTEMPTS,
    DEFAULT_PORT,
    DEFAULT_TICK_INTERVAL,
    DEFAULT_TIME_STEP,
    DEFAULT_TIMEOUT,
    SINGLE_LINE_ERR_LOG,
    TEST_LOGLEVEL,
)
from .logging import (
    clear_log,
    format_error_response,
    get_log_filename,
    log_default_path_client,
    log_default_path_server,
    shutdown_log,
    start_client_log,
    start_server_log,
)

__all__ = [
    "ARRAYSIM_DIR",
    "DEFAULT_ACK_TIMEOUT",
    "DEFAULT_CLIENT_HOST_ADDR",
    "DEFAULT_HOST_ADDR",
    "DEFAULT_LOGLEVEL",
    "DEFAULT_MAX_DEVICES",
    "DEFAULT_MAX_HANDSHAKE_ATTEMPTS",
    "DEFAULT_PORT",
    "DEFAULT_TICK_INTERVAL",
    "DEFAULT_TIME_STEP",
    "DEFAULT_TIMEOUT",
    "SINGLE_LINE_ERR_LOG",
    "TEST_LOGLEVEL",
    "clear_log",
    "format_error_response",
    "get_log_filename",
    "log_default_path_client",
    "log_default_path_server",
    "shutdown_log",
    "start_client_log",
    "start_server_log",
]
