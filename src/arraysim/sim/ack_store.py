"""Latest per-device status snapshot shared between the simulation owner and
connection handlers.

The owner is the only writer. It publishes a whole new immutable snapshot
instead of mutating in place, so readers never hold a lock while they
serialize or write the snapshot to a socket.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Sequence

from loguru import logger


@dataclass(frozen=True)
class AckSnapshot:
    version: int
    statuses: tuple[bytes, ...]

    @property
    def num_devices(self) -> int:
        return len(self.statuses)

    def __repr__(self):
        return f"AckSnapshot(version={self.version}, num_devices={self.num_devices})"


class AckStore:
    def __init__(self, rx_record_size: int):
        self.rx_record_size = rx_record_size
        self._lock = threading.Lock()
        self._snapshot = AckSnapshot(version=0, statuses=())

    def snapshot(self) -> AckSnapshot:
        with self._lock:
            return self._snapshot

    def publish(self, statuses: Sequence[bytes]) -> AckSnapshot:
        statuses = tuple(bytes(s) for s in statuses)
        for idx, status in enumerate(statuses):
            if len(status) != self.rx_record_size:
                raise ValueError(
                    f"Status {idx} is {len(status)} bytes, "
                    f"expected {self.rx_record_size}"
                )
        with self._lock:
            self._snapshot = AckSnapshot(
                version=self._snapshot.version + 1, statuses=statuses
            )
            snap = self._snapshot
        logger.trace("Published {}", snap)
        return snap

    def reset(self, num_devices: int) -> AckSnapshot:
        """Invalidate contents, resizing to `num_devices` zero-filled records."""
        return self.publish((bytes(self.rx_record_size),) * num_devices)
