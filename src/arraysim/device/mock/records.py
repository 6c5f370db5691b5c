"""Record layouts understood by the mock emulator.

TxCommand (626 bytes)
    u8  msg_id
    u8  tag
    u16 reserved (LE)
    249 x (u8 phase, u8 intensity)
    zero padding

RxStatus (2 bytes)
    u8 data
    u8 ack
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

import numpy as np

NUM_TRANS_X = 18
NUM_TRANS_Y = 14
TRANS_PITCH = 10.16  # mm
MISSING_TRANSDUCERS = ((1, 1), (2, 1), (16, 1))
NUM_TRANSDUCERS = NUM_TRANS_X * NUM_TRANS_Y - len(MISSING_TRANSDUCERS)  # 249

TX_RECORD_SIZE = 626
RX_RECORD_SIZE = 2

TAG_NOP = 0x00
TAG_DRIVES = 0x01
TAG_FIRM_INFO = 0x02
TAG_CLEAR = 0x03

FIRMWARE_VERSION = 0x0A

_TX_HEADER = struct.Struct("<BBH")
_RX = struct.Struct("<BB")
_DRIVES_OFFSET = _TX_HEADER.size
_DRIVES_SIZE = NUM_TRANSDUCERS * 2


def _zero_drive() -> np.ndarray:
    return np.zeros(NUM_TRANSDUCERS, dtype=np.uint8)


@dataclass
class TxCommand:
    msg_id: int = 0
    tag: int = TAG_NOP
    phases: np.ndarray = field(default_factory=_zero_drive)
    intensities: np.ndarray = field(default_factory=_zero_drive)

    def to_bytes(self) -> bytes:
        drives = np.empty((NUM_TRANSDUCERS, 2), dtype=np.uint8)
        drives[:, 0] = self.phases
        drives[:, 1] = self.intensities
        body = _TX_HEADER.pack(self.msg_id, self.tag, 0) + drives.tobytes()
        return body + bytes(TX_RECORD_SIZE - len(body))

    @classmethod
    def from_bytes(cls, data: bytes) -> TxCommand:
        if len(data) != TX_RECORD_SIZE:
            raise ValueError(
                f"TxCommand must be {TX_RECORD_SIZE} bytes, got {len(data)}"
            )
        msg_id, tag, _ = _TX_HEADER.unpack_from(data, 0)
        drives = np.frombuffer(
            data, dtype=np.uint8, count=_DRIVES_SIZE, offset=_DRIVES_OFFSET
        ).reshape(NUM_TRANSDUCERS, 2)
        return cls(
            msg_id=msg_id,
            tag=tag,
            phases=drives[:, 0].copy(),
            intensities=drives[:, 1].copy(),
        )


@dataclass(frozen=True)
class RxStatus:
    data: int = 0
    ack: int = 0

    def to_bytes(self) -> bytes:
        return _RX.pack(self.data, self.ack)

    @classmethod
    def from_bytes(cls, data: bytes) -> RxStatus:
        if len(data) != RX_RECORD_SIZE:
            raise ValueError(f"RxStatus must be {RX_RECORD_SIZE} bytes, got {len(data)}")
        return cls(*_RX.unpack(data))
