"""Device emulator base class.

A device emulator stands in for the firmware of every device in the
configured geometry. The device-link core hands it opaque TxCommand records
and publishes the RxStatus records it returns; the presenter reads the
per-transducer visual state it computes.

Emulators are never touched by connection handlers. Only the simulation
owner thread calls into them.

Required Methods
----------------
- configure(geometry): allocate per-device state for a new geometry
- reconfigure_pose(geometry): move devices, same count
- apply(commands): one TxCommand per device in, one RxStatus per device out
- tick(system_time): advance firmware time, report whether statuses changed
- reset(): drop all devices
- statuses(): current RxStatus per device
- update_transducers(mod_enable): recompute amplitude/phase
- transducer_positions(), transducer_states(): visual buffers

See Also
--------
arraysim.types.protocols.DeviceEmulatorProtocol : Protocol definition
arraysim.device.mock : Mock emulator
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from arraysim.types import Geometry


class DeviceEmulator:
    """Base class for device emulators.

    Attributes
    ----------
    tx_record_size : int
        Byte size of one TxCommand record
    rx_record_size : int
        Byte size of one RxStatus record
    """

    tx_record_size: int = 0
    rx_record_size: int = 0

    @property
    def num_devices(self) -> int:
        return len(self.statuses())

    def initialized(self) -> bool:
        return self.num_devices > 0

    def configure(self, geometry: Geometry) -> None:
        raise NotImplementedError()

    def reconfigure_pose(self, geometry: Geometry) -> None:
        raise NotImplementedError()

    def apply(self, commands: tuple[bytes, ...]) -> tuple[bytes, ...]:
        raise NotImplementedError()

    def tick(self, system_time: int) -> bool:
        raise NotImplementedError()

    def reset(self) -> None:
        raise NotImplementedError()

    def statuses(self) -> tuple[bytes, ...]:
        raise NotImplementedError()

    def update_transducers(self, mod_enable: bool) -> None:
        raise NotImplementedError()

    def transducer_positions(self) -> np.ndarray:
        raise NotImplementedError()

    def transducer_states(self) -> np.ndarray:
        raise NotImplementedError()

