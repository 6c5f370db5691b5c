# -*- coding: utf-8 -*-
"""
Per-connection state machine.

A ConnectionSession reads request frames from one connection, answers each
with exactly one response frame and forwards state-changing requests to the
simulation owner as signals.

States
------
UNAUTHENTICATED --Handshake(ok)--> READY --Close--> CLOSED

- A handshake with the wrong version or magic gets an error frame and the
  session stays UNAUTHENTICATED, up to `max_handshake_attempts` tries.
- Any other request before the handshake, a second handshake, an unknown
  message type or a malformed body gets an error frame and the connection is
  closed.
- A transport failure ends the session without a response.

ConfigureGeometry, UpdateGeometry, Send and Close are acknowledged only once
the owner has applied them, so a Read issued after an acknowledged Send on
the same connection sees its statuses.
"""

from __future__ import annotations

import asyncio
from enum import Enum, auto
from typing import Optional

from loguru import logger

from arraysim.sim import AckSnapshot, LinkContext
from arraysim.types import (
    MAGIC,
    PROTOCOL_VERSION,
    Close,
    CloseRequest,
    ConfigureGeometry,
    ConfigureGeometryRequest,
    ConnectionProtocol,
    HandshakeRequest,
    LinkError,
    ProtocolError,
    ReadRequest,
    Request,
    Send,
    SendRequest,
    Signal,
    SimulationUnavailable,
    TransportError,
    UpdateGeometry,
    UpdateGeometryRequest,
)
from arraysim.util import format_error_response

from .codec import encode_error, encode_ok, encode_read_response, read_request


class ConnectionState(Enum):
    UNAUTHENTICATED = auto()
    READY = auto()
    CLOSED = auto()


class ConnectionSession:
    """Drives one connection through the handshake and request loop.

    Parameters
    ----------
    connection : ConnectionProtocol
        Byte stream to serve.
    context : LinkContext
        Shared channel, ack store and limits.
    peer : str
        Label for log messages.
    """

    def __init__(
        self, connection: ConnectionProtocol, context: LinkContext, peer: str = "?"
    ):
        self.connection = connection
        self.context = context
        self.peer = peer
        self.state = ConnectionState.UNAUTHENTICATED
        self.handshake_attempts = 0
        self.device_count = 0  # as of the last Read
        # last Read reply, reused while the store has not published anything new
        self._read_cache: Optional[tuple[AckSnapshot, bytes]] = None

    # ========================================================================

    async def run(self) -> None:
        logger.info("Session opened: {}", self.peer)
        try:
            while self.state is not ConnectionState.CLOSED:
                try:
                    request = await read_request(
                        self.connection.read_exact,
                        self.context.tx_record_size,
                        self.context.max_devices,
                    )
                    logger.debug("*REQUEST* ({}->): {}", self.peer, request)
                    response = await self.handle(request)
                except TransportError:
                    raise
                except LinkError as err:
                    # ProtocolError or SimulationUnavailable
                    logger.warning("Closing {}: {}", self.peer, err)
                    await self._send_error(str(err))
                    break
                except Exception:
                    logger.exception("Uncaught error in session {}.", self.peer)
                    await self._send_error(format_error_response())
                    break
                await self.connection.write(response)
        except TransportError as err:
            logger.debug("Transport closed for {}: {}", self.peer, err)
        finally:
            self.state = ConnectionState.CLOSED
            await self.connection.close()
            logger.info("Session closed: {}", self.peer)

    async def handle(self, request: Request) -> bytes:
        """Process one request and return the encoded response frame."""
        if isinstance(request, HandshakeRequest):
            return self._handle_handshake(request)

        if self.state is not ConnectionState.READY:
            raise ProtocolError(
                f"Handshake required before {request.__class__.__name__}"
            )

        match request:
            case ConfigureGeometryRequest(geometry=geometry):
                await self._dispatch(ConfigureGeometry(geometry=geometry))
                return encode_ok()
            case UpdateGeometryRequest(geometry=geometry):
                await self._dispatch(UpdateGeometry(geometry=geometry))
                return encode_ok()
            case SendRequest(commands=commands):
                await self._dispatch(Send(commands=commands))
                return encode_ok()
            case ReadRequest():
                return self._handle_read()
            case CloseRequest():
                await self._dispatch(Close())
                self.state = ConnectionState.CLOSED
                return encode_ok()
        raise ProtocolError(f"Unsupported request: {request!r}")

    # ========================================================================

    def _handle_handshake(self, request: HandshakeRequest) -> bytes:
        if self.state is ConnectionState.READY:
            raise ProtocolError("Handshake already completed")

        self.handshake_attempts += 1
        if request.version != PROTOCOL_VERSION:
            reason = (
                f"Unsupported protocol version {request.version} "
                f"(server speaks {PROTOCOL_VERSION})"
            )
        elif request.magic != MAGIC:
            reason = "Bad handshake magic"
        else:
            self.state = ConnectionState.READY
            logger.info("Handshake ok: {}", self.peer)
            return encode_ok()

        if self.handshake_attempts >= self.context.max_handshake_attempts:
            raise ProtocolError(
                f"{reason}; giving up after {self.handshake_attempts} attempts"
            )
        logger.warning(
            "Handshake attempt {} failed for {}: {}",
            self.handshake_attempts,
            self.peer,
            reason,
        )
        return encode_error(reason)

    def _handle_read(self) -> bytes:
        snapshot = self.context.ack_store.snapshot()
        if self._read_cache is not None and self._read_cache[0] is snapshot:
            return self._read_cache[1]
        frame = encode_read_response(snapshot.statuses, self.context.rx_record_size)
        self._read_cache = (snapshot, frame)
        self.device_count = snapshot.num_devices
        return frame

    async def _dispatch(self, signal: Signal) -> None:
        """Hand a signal to the owner and wait until it has been applied."""
        self.context.channel.send(signal)
        try:
            await asyncio.wait_for(
                asyncio.wrap_future(signal.done), self.context.ack_timeout
            )
        except asyncio.TimeoutError:
            raise SimulationUnavailable(
                f"Simulator did not apply {signal!r} within "
                f"{self.context.ack_timeout}s"
            ) from None

    async def _send_error(self, message: str) -> None:
        try:
            await self.connection.write(encode_error(message))
        except TransportError:
            logger.debug("Could not deliver error frame to {}", self.peer)
