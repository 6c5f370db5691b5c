# -*- coding: utf-8 -*-

import pathlib

DEFAULT_HOST_ADDR = "0.0.0.0"
DEFAULT_CLIENT_HOST_ADDR = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_TIMEOUT = 5  # seconds
DEFAULT_LOGLEVEL = "INFO"
TEST_LOGLEVEL = "TRACE"
SINGLE_LINE_ERR_LOG = False  # reformat tracebacks into a single line for err comms

ARRAYSIM_DIR = pathlib.Path.home() / ".arraysim"

DEFAULT_MAX_DEVICES = 1024
DEFAULT_ACK_TIMEOUT = 5.0  # seconds, owner must apply a signal within this
DEFAULT_MAX_HANDSHAKE_ATTEMPTS = 3
DEFAULT_TICK_INTERVAL = 0.01  # seconds
DEFAULT_TIME_STEP = 1_000_000  # ns
