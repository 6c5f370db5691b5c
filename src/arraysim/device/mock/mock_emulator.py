from __future__ import annotations

import math

import numpy as np
from loguru import logger

from arraysim.device.emulator import DeviceEmulator
from arraysim.types import Geometry

from .records import (
    FIRMWARE_VERSION,
    MISSING_TRANSDUCERS,
    NUM_TRANS_X,
    NUM_TRANS_Y,
    NUM_TRANSDUCERS,
    RX_RECORD_SIZE,
    TAG_CLEAR,
    TAG_DRIVES,
    TAG_FIRM_INFO,
    TAG_NOP,
    TRANS_PITCH,
    TX_RECORD_SIZE,
    RxStatus,
    TxCommand,
)


def _local_grid() -> np.ndarray:
    """Transducer positions in the device frame, (NUM_TRANSDUCERS, 3)."""
    points = [
        (ix * TRANS_PITCH, iy * TRANS_PITCH, 0.0)
        for iy in range(NUM_TRANS_Y)
        for ix in range(NUM_TRANS_X)
        if (ix, iy) not in MISSING_TRANSDUCERS
    ]
    return np.asarray(points, dtype=np.float32)


_LOCAL_GRID = _local_grid()


def rotate(points: np.ndarray, rotation: tuple[float, float, float, float]) -> np.ndarray:
    """Rotate (n, 3) points by the unit quaternion (w, i, j, k)."""
    w = rotation[0]
    q = np.asarray(rotation[1:], dtype=np.float64)
    t = 2.0 * np.cross(q, points)
    return points + w * t + np.cross(q, t)


class MockDeviceEmulator(DeviceEmulator):  # Protocol compliance checked at startup
    """Emulates an array of 249-transducer devices.

    TxCommand tags:
    - NOP: status data 0
    - DRIVES: latch per-transducer phase/intensity
    - FIRM_INFO: status data is the firmware version
    - CLEAR: zero all drives
    Any other tag is echoed back in the status data byte. The status ack byte
    always echoes msg_id.

    There is no modulation buffer, so `mod_enable` has no effect.
    """

    tx_record_size = TX_RECORD_SIZE
    rx_record_size = RX_RECORD_SIZE

    def __init__(self):
        self._system_time = 0
        self._geometry = Geometry()
        self._drives = np.zeros((0, NUM_TRANSDUCERS, 2), dtype=np.uint8)
        self._rx: list[RxStatus] = []
        self._positions = np.zeros((0, 3), dtype=np.float32)
        self._rotations = np.zeros((0, 4), dtype=np.float32)
        self._states = np.zeros((0, 4), dtype=np.float32)

    # ------------------------------------------------------------------------

    def configure(self, geometry: Geometry) -> None:
        n = geometry.num_devices
        logger.info("Configuring mock emulator with {} devices", n)
        self._geometry = geometry
        self._drives = np.zeros((n, NUM_TRANSDUCERS, 2), dtype=np.uint8)
        self._rx = [RxStatus() for _ in range(n)]
        self._states = np.zeros((n * NUM_TRANSDUCERS, 4), dtype=np.float32)
        self._states[:, 2] = 1.0  # enable
        self._states[:, 3] = 1.0  # alpha
        self._place(geometry)

    def reconfigure_pose(self, geometry: Geometry) -> None:
        if geometry.num_devices != self._geometry.num_devices:
            raise ValueError(
                f"Pose update has {geometry.num_devices} devices, "
                f"configured geometry has {self._geometry.num_devices}"
            )
        self._geometry = geometry
        self._place(geometry)

    def _place(self, geometry: Geometry) -> None:
        positions = []
        rotations = []
        for dev in geometry:
            pts = rotate(_LOCAL_GRID.astype(np.float64), dev.rotation)
            positions.append(pts + np.asarray(dev.position, dtype=np.float64))
            rotations.append(np.tile(np.asarray(dev.rotation), (NUM_TRANSDUCERS, 1)))
        if positions:
            self._positions = np.concatenate(positions).astype(np.float32)
            self._rotations = np.concatenate(rotations).astype(np.float32)
        else:
            self._positions = np.zeros((0, 3), dtype=np.float32)
            self._rotations = np.zeros((0, 4), dtype=np.float32)

    def apply(self, commands: tuple[bytes, ...]) -> tuple[bytes, ...]:
        if len(commands) != len(self._rx):
            raise ValueError(
                f"Got {len(commands)} commands for {len(self._rx)} devices"
            )
        for idx, raw in enumerate(commands):
            cmd = TxCommand.from_bytes(raw)
            if cmd.tag == TAG_NOP:
                data = 0
            elif cmd.tag == TAG_DRIVES:
                self._drives[idx, :, 0] = cmd.phases
                self._drives[idx, :, 1] = cmd.intensities
                data = 0
            elif cmd.tag == TAG_FIRM_INFO:
                data = FIRMWARE_VERSION
            elif cmd.tag == TAG_CLEAR:
                self._drives[idx] = 0
                data = 0
            else:
                data = cmd.tag
            self._rx[idx] = RxStatus(data=data, ack=cmd.msg_id)
        return self.statuses()

    def tick(self, system_time: int) -> bool:
        self._system_time = system_time
        return False

    def reset(self) -> None:
        logger.info("Resetting mock emulator")
        self._geometry = Geometry()
        self._drives = np.zeros((0, NUM_TRANSDUCERS, 2), dtype=np.uint8)
        self._rx = []
        self._positions = np.zeros((0, 3), dtype=np.float32)
        self._rotations = np.zeros((0, 4), dtype=np.float32)
        self._states = np.zeros((0, 4), dtype=np.float32)

    def statuses(self) -> tuple[bytes, ...]:
        return tuple(rx.to_bytes() for rx in self._rx)

    # ------------------------------------------------------------------------

    def update_transducers(self, mod_enable: bool) -> None:
        drives = self._drives.reshape(-1, 2).astype(np.float32)
        self._states[:, 0] = np.sin(0.5 * math.pi * drives[:, 1] / 255.0)
        self._states[:, 1] = 2.0 * math.pi * drives[:, 0] / 256.0

    def transducer_positions(self) -> np.ndarray:
        return self._positions

    def transducer_rotations(self) -> np.ndarray:
        return self._rotations

    def transducer_states(self) -> np.ndarray:
        return self._states

    @property
    def system_time(self) -> int:
        return self._system_time
