"""Ordered hand-off of signals from connection handlers to the simulation owner."""

from __future__ import annotations

import queue
import threading
from typing import Optional

from loguru import logger

from arraysim.types import Signal, SimulationUnavailable


class SignalChannel:
    """Multi-producer, single-consumer FIFO of signals.

    `send` never blocks. Once the consumer has closed the channel, every send
    raises SimulationUnavailable and every signal still queued is failed with
    the same error, so that waiting sessions hear about it.
    """

    def __init__(self):
        self._queue: queue.SimpleQueue[Signal] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, signal: Signal) -> None:
        # lock keeps close() from slipping in between the check and the put
        with self._lock:
            if self._closed:
                raise SimulationUnavailable()
            self._queue.put_nowait(signal)
        logger.trace("Signal queued: {}", signal)

    def recv(self, timeout: Optional[float] = None) -> Optional[Signal]:
        """Wait up to `timeout` seconds for the next signal (None on timeout)."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[Signal]:
        """All currently queued signals, in order, without blocking."""
        signals = []
        while True:
            try:
                signals.append(self._queue.get_nowait())
            except queue.Empty:
                return signals

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        pending = self.drain()
        if pending:
            logger.warning("Signal channel closed with {} pending signals", len(pending))
        for signal in pending:
            signal.fail(SimulationUnavailable())

    def qsize(self) -> int:
        return self._queue.qsize()
