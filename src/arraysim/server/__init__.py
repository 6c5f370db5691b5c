# -*- coding: utf-8 -*-
"""
Network side of the device-link protocol.

A simulator server accepts TCP connections, runs each through a
ConnectionSession (handshake, then geometry/send/read/close requests) and
hands state changes to the simulation owner as signals. Clients talk to it
with the blocking functions in `arraysim.server.client`.

Examples
--------
Running a server in the foreground (blocks until Ctrl-C):
```python
from arraysim.server import start_server
from arraysim.system import load_settings
start_server(load_settings(), log_to_stdout=True)
```

Talking to it:
```python
from arraysim.server import client
conn = client.open_connection("127.0.0.1", 8080)
client.handshake(conn)
```

See Also
--------
arraysim.server.codec : Frame layouts
arraysim.server.session : Connection state machine
arraysim.server.server : TCP transport and startup
arraysim.server.client : Blocking client
"""

from __future__ import annotations

from .bg_killer import (
    cleanup_stale_servers,
    kill_arraysim_servers,
    list_running_servers,
)
from .client import ClientConnection
from .server import LinkServer, StreamConnection, start_server
from .session import ConnectionSession, ConnectionState

__all__ = [
    "ClientConnection",
    "ConnectionSession",
    "ConnectionState",
    "LinkServer",
    "StreamConnection",
    "cleanup_stale_servers",
    "kill_arraysim_servers",
    "list_running_servers",
    "start_server",
]
