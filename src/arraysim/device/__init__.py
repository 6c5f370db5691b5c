"""
Device emulators.

The simulation owner drives exactly one emulator, chosen by name in the
settings (see `get_emulator_types`).
"""

from .emulator import DeviceEmulator
from .mock import MockDeviceEmulator


def get_emulator_types() -> dict[str, type[DeviceEmulator]]:
    return {
        "mock": MockDeviceEmulator,
    }


__all__ = ["DeviceEmulator", "MockDeviceEmulator", "get_emulator_types"]
