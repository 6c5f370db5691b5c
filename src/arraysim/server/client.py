# -*- coding: utf-8 -*-
"""
Blocking client for the device-link protocol.

One request, one response: each call writes a request frame and reads the
matching response before returning. An error frame from the server raises
CommsError; a dropped connection raises TransportError.

Examples
--------
```python
from arraysim.server import client
from arraysim.types import Geometry

conn = client.open_connection("127.0.0.1", 8080)
client.handshake(conn)
client.configure_geometry(conn, Geometry.identity(2))
client.send(conn, [bytes(conn.tx_record_size)] * 2)
statuses = client.read(conn)
client.close(conn)
client.close_connection(conn)
```
"""

# ============================================================================

from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import Sequence

from loguru import logger

from arraysim.device.mock import RX_RECORD_SIZE, TX_RECORD_SIZE
from arraysim.types import (
    MAGIC,
    PROTOCOL_VERSION,
    CloseRequest,
    CommsError,
    ConfigureGeometryRequest,
    ErrorResponse,
    Geometry,
    HandshakeRequest,
    ReadRequest,
    ReadResponse,
    Request,
    Response,
    SendRequest,
    TransportError,
    UpdateGeometryRequest,
)
from arraysim.util import DEFAULT_CLIENT_HOST_ADDR, DEFAULT_PORT, DEFAULT_TIMEOUT

from .codec import encode_request, read_response

# ============================================================================


@dataclass
class ClientConnection:
    """Client-side connection information."""

    sock: socket.socket
    host: str
    port: int
    tx_record_size: int = TX_RECORD_SIZE
    rx_record_size: int = RX_RECORD_SIZE


def open_connection(
    host: str = DEFAULT_CLIENT_HOST_ADDR,
    port: int = DEFAULT_PORT,
    timeout: float = DEFAULT_TIMEOUT,
    tx_record_size: int = TX_RECORD_SIZE,
    rx_record_size: int = RX_RECORD_SIZE,
) -> ClientConnection:
    """Connect to a simulator. Does not handshake.

    Raises
    ------
    CommsError
        If the connection cannot be established within `timeout`.
    """
    logger.info("Connecting to {}:{}", host, port)
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        logger.error("Connection to {}:{} failed: {}", host, port, e)
        raise CommsError(f"Connection not established: {e}") from e
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    return ClientConnection(sock, host, port, tx_record_size, rx_record_size)


def close_connection(client_connection: ClientConnection) -> None:
    """Close the socket (without sending a Close request)."""
    logger.info("Closing connection.")
    try:
        client_connection.sock.close()
    except OSError as e:
        logger.debug("Error closing socket: {}", e)


# ============================================================================


def _recv_exact(client_connection: ClientConnection, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        try:
            chunk = client_connection.sock.recv(n - len(buf))
        except OSError as e:
            raise TransportError(str(e)) from e
        if not chunk:
            raise TransportError(
                f"Connection closed after {len(buf)} of {n} bytes"
            )
        buf += chunk
    return bytes(buf)


def _send_request(
    client_connection: ClientConnection,
    request: Request,
    expect_statuses: bool = False,
) -> Response:
    """Send a request and read its response.

    Raises
    ------
    CommsError
        If the server returns an error frame.
    """
    logger.debug("*REQUEST* (client->): {}", request)
    frame = encode_request(request, client_connection.tx_record_size)
    try:
        client_connection.sock.sendall(frame)
    except OSError as e:
        raise TransportError(str(e)) from e
    resp = read_response(
        lambda n: _recv_exact(client_connection, n),
        client_connection.rx_record_size if expect_statuses else None,
    )
    if isinstance(resp, ErrorResponse):
        name = request.__class__.__name__
        logger.error("Error during {}: '{}'", name, resp.value)
        raise CommsError(f"Error returned from {name}: {resp.value}")
    return resp


# ============================================================================


def handshake(
    client_connection: ClientConnection,
    version: int = PROTOCOL_VERSION,
    magic: bytes = MAGIC,
) -> None:
    _send_request(client_connection, HandshakeRequest(version=version, magic=magic))


def configure_geometry(client_connection: ClientConnection, geometry: Geometry) -> None:
    _send_request(client_connection, ConfigureGeometryRequest(geometry=geometry))


def update_geometry(client_connection: ClientConnection, geometry: Geometry) -> None:
    _send_request(client_connection, UpdateGeometryRequest(geometry=geometry))


def send(client_connection: ClientConnection, commands: Sequence[bytes]) -> None:
    """Send one TxCommand record per configured device."""
    _send_request(client_connection, SendRequest(commands=tuple(commands)))


def read(client_connection: ClientConnection) -> tuple[bytes, ...]:
    """Latest RxStatus record per device."""
    resp = _send_request(client_connection, ReadRequest(), expect_statuses=True)
    assert isinstance(resp, ReadResponse)
    return resp.statuses


def close(client_connection: ClientConnection) -> None:
    """Ask the server to tear down the simulation, then hang up."""
    _send_request(client_connection, CloseRequest())
