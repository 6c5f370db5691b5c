"""Single-slot relay of the most recent Send payload.

The simulation owner polls it on every tick for "the last commands issued",
at its own cadence rather than the network's. The slot holds one payload; a
newer payload overwrites an unconsumed one and the producer never blocks.
"""

from __future__ import annotations

import threading
from typing import Optional, Sequence

from loguru import logger


class OutboundRelay:
    def __init__(self, tx_record_size: int):
        self.tx_record_size = tx_record_size
        self._lock = threading.Lock()
        self._slot: Optional[tuple[bytes, ...]] = None
        self._last: Optional[tuple[bytes, ...]] = None
        self.overwritten = 0

    def put(self, commands: Sequence[bytes]) -> None:
        commands = tuple(commands)
        with self._lock:
            if self._slot is not None:
                self.overwritten += 1
                logger.trace("Relay overwrote an unconsumed payload")
            self._slot = commands
            self._last = commands

    def take(self) -> Optional[tuple[bytes, ...]]:
        """Consume the buffered payload, or None if nothing new was sent."""
        with self._lock:
            commands, self._slot = self._slot, None
            return commands

    def latest(self, num_devices: int) -> tuple[bytes, ...]:
        """Most recent payload for the current geometry, without consuming it.

        If nothing has been sent since the geometry was configured, a neutral
        all-zero command per device is returned instead.
        """
        with self._lock:
            last = self._last
        if last is None or len(last) != num_devices:
            return (bytes(self.tx_record_size),) * num_devices
        return last

    def reset(self) -> None:
        with self._lock:
            self._slot = None
            self._last = None
