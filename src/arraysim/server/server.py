# -*- coding: utf-8 -*-
"""
TCP transport for the device-link protocol.

The listener runs its own asyncio event loop on a dedicated thread and spawns
one ConnectionSession task per accepted connection. The simulation owner runs
on the calling thread (see `start_server`), parked on the signal channel.

Shutdown order: the owner stops first and closes the signal channel, so any
session still waiting on it fails loudly. Then the listener stops accepting
and cancels connection tasks without draining.
"""

# ============================================================================

import asyncio
import threading
from datetime import datetime
from typing import Optional

from loguru import logger
from setproctitle import setproctitle

# ============================================================================
import arraysim.util
from arraysim.device import get_emulator_types
from arraysim.server.bg_killer import (
    kill_arraysim_servers,
    register_server,
    unregister_server,
)
from arraysim.sim import LinkContext, SimulationState, Simulator
from arraysim.system import SimulatorSettings
from arraysim.types import TransportError

from .session import ConnectionSession

# ============================================================================


class StreamConnection:
    """ConnectionProtocol over an asyncio stream pair."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self._closed = False

    @property
    def peer(self) -> str:
        peername = self.writer.get_extra_info("peername")
        if not peername:
            return "?"
        return f"{peername[0]}:{peername[1]}"

    async def read_exact(self, n: int) -> bytes:
        if n == 0:
            return b""
        try:
            return await self.reader.readexactly(n)
        except asyncio.IncompleteReadError as e:
            raise TransportError(
                f"Connection closed after {len(e.partial)} of {n} bytes"
            ) from e
        except ConnectionError as e:
            raise TransportError(str(e)) from e

    async def write(self, data: bytes) -> None:
        try:
            self.writer.write(data)
            await self.writer.drain()
        except ConnectionError as e:
            raise TransportError(str(e)) from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except ConnectionError as e:
            logger.trace("Ignoring error while closing {}: {}", self.peer, e)


# ============================================================================


class LinkServer:
    """Accepts TCP connections and serves each with a ConnectionSession.

    Parameters
    ----------
    context : LinkContext
        Shared with the simulation owner.
    host : str
        Interface to bind.
    port : int
        Port to bind, 0 for an ephemeral port (see `port` once started).
    """

    def __init__(
        self,
        context: LinkContext,
        host: str = arraysim.util.DEFAULT_HOST_ADDR,
        port: int = arraysim.util.DEFAULT_PORT,
    ):
        self.context = context
        self.host = host
        self._requested_port = port
        self._server: Optional[asyncio.AbstractServer] = None
        self._sessions: set[asyncio.Task] = set()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._started = threading.Event()
        self._start_error: Optional[BaseException] = None

    @property
    def port(self) -> int:
        if self._server is not None and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._requested_port

    @property
    def num_sessions(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------------
    # asyncio side

    async def serve(self) -> None:
        """Bind the listener. Raises OSError if the address is unavailable."""
        self._server = await asyncio.start_server(
            self._handle_client, self.host, self._requested_port
        )
        logger.info("Listening on {}:{}", self.host, self.port)

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        connection = StreamConnection(reader, writer)
        session = ConnectionSession(connection, self.context, peer=connection.peer)
        task = asyncio.current_task()
        self._sessions.add(task)
        try:
            await session.run()
        finally:
            self._sessions.discard(task)

    async def shutdown(self) -> None:
        if self._server is not None:
            self._server.close()
        if self._sessions:
            logger.info("Cancelling {} open session(s)", self.num_sessions)
        for task in list(self._sessions):
            task.cancel()
        if self._sessions:
            await asyncio.gather(*self._sessions, return_exceptions=True)
        if self._server is not None:
            await self._server.wait_closed()
        logger.info("Listener on {}:{} stopped", self.host, self.port)

    # ------------------------------------------------------------------------
    # thread side

    def start(self, timeout: float = arraysim.util.DEFAULT_TIMEOUT) -> None:
        """Run the listener on a background thread; returns once bound.

        Any startup failure, such as a bind error, is re-raised here.
        """
        self._thread = threading.Thread(
            target=self._run_loop, name="arraysim-server", daemon=True
        )
        self._thread.start()
        if not self._started.wait(timeout):
            raise TimeoutError("Server thread did not start")
        if self._start_error is not None:
            self._thread.join()
            raise self._start_error

    def _run_loop(self) -> None:
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        try:
            try:
                self._loop.run_until_complete(self.serve())
            except OSError as e:
                logger.error("Could not bind {}:{}: {}", self.host, self._requested_port, e)
                self._start_error = e
                return
            except Exception as e:
                logger.exception("Listener failed to start")
                self._start_error = e
                return
            finally:
                self._started.set()
            self._loop.run_forever()
            self._loop.run_until_complete(self.shutdown())
        finally:
            self._loop.close()

    def stop(self, timeout: float = arraysim.util.DEFAULT_TIMEOUT) -> None:
        if self._loop is None or self._thread is None:
            return
        if self._thread.is_alive():
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout)


# ============================================================================


def start_server(
    settings: Optional[SimulatorSettings] = None,
    emulator_name: str = "mock",
    log_to_file: bool = True,
    log_to_stdout: bool = False,
    log_path: str = "",
    clear_prev_log: bool = True,
    stop_event: Optional[threading.Event] = None,
) -> None:
    """Run the listener and the simulation owner until interrupted.

    The owner runs on the calling thread. Blocks until `stop_event` is set or
    KeyboardInterrupt.
    """
    settings = settings if settings is not None else SimulatorSettings()
    kill_arraysim_servers()  # one server per machine

    timestamp = datetime.now().strftime("%Y-%m-%d_%H:%M:%S")
    setproctitle(f"arraysim-server_{timestamp}")

    arraysim.util.start_server_log(
        log_to_file=log_to_file,
        log_to_stdout=log_to_stdout,
        log_path=log_path,
        clear_prev=clear_prev_log,
        log_level=settings.log_level,
    )

    emulator_types = get_emulator_types()
    if emulator_name not in emulator_types:
        logger.error("Emulator {} not found.", emulator_name)
        raise ValueError(f"Emulator {emulator_name} not found.")
    emulator = emulator_types[emulator_name]()
    logger.info("Using emulator {}", emulator.__class__.__name__)

    context = LinkContext.for_emulator(
        emulator,
        max_devices=settings.max_devices,
        ack_timeout=settings.ack_timeout,
        max_handshake_attempts=settings.max_handshake_attempts,
    )
    state = SimulationState(
        mod_enable=settings.mod_enable,
        auto_play=settings.auto_play,
        time_scale=settings.time_scale,
        time_step=settings.time_step,
    )
    simulator = Simulator(
        context, emulator, state=state, tick_interval=settings.tick_interval
    )

    server = LinkServer(context, settings.host, settings.port)
    server.start()  # bind failure is fatal

    pid_file = register_server(settings.host, server.port)
    stop_event = stop_event if stop_event is not None else threading.Event()
    try:
        simulator.run(stop_event)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        server.stop()
        unregister_server(pid_file)
        arraysim.util.shutdown_log()
