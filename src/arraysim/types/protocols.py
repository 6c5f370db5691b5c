"""Collaborator protocols.

The device-link core talks to three collaborators it does not own:

1. Connection
   - A byte stream a session reads frames from and writes responses to.
     Sessions only ever see this capability, so the same state machine can be
     driven by asyncio streams, an in-memory pipe in tests, or any other
     transport.

2. Device Emulator
   - Interprets TxCommand records and produces RxStatus records plus the
     per-transducer visual state. Records are opaque to the protocol, which
     only knows their byte sizes.

3. Presenter
   - The single-threaded presentation layer. It is handed the dirty-flag
     tracker once per frame and must claim every flag that is set.

All three use @runtime_checkable so that objects can be validated with
isinstance() when the simulator is assembled.

See Also
--------
arraysim.server.session : Drives a Connection
arraysim.device : Device emulator implementations
arraysim.sim.presentation : Headless presenter
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable, Protocol, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from arraysim.sim.update_flag import DirtyFlagTracker

    from .geometry import Geometry


@runtime_checkable
class ConnectionProtocol(Protocol):
    """Byte-stream capability a session is driven by."""

    read_exact: Callable[[int], Awaitable[bytes]]
    """Read exactly n bytes.

    Raises TransportError if the peer closed or reset before n bytes arrived.
    """

    write: Callable[[bytes], Awaitable[None]]
    """Write all of the given bytes (and flush)."""

    close: Callable[[], Awaitable[None]]
    """Close the underlying transport. Must be safe to call twice."""


@runtime_checkable
class DeviceEmulatorProtocol(Protocol):
    """Methods required of a device emulator."""

    tx_record_size: int
    """Byte size of one TxCommand record."""

    rx_record_size: int
    """Byte size of one RxStatus record."""

    configure: Callable[[Geometry], None]
    """Replace the whole geometry, reallocating per-device state."""

    reconfigure_pose: Callable[[Geometry], None]
    """Move devices without reallocating. Device count must match."""

    apply: Callable[[tuple[bytes, ...]], tuple[bytes, ...]]
    """Process one TxCommand per device and return one RxStatus per device."""

    tick: Callable[[int], bool]
    """Advance emulated firmware to the given system time (ns).

    Returns:
    - True if device statuses changed and should be republished
    """

    reset: Callable[[], None]
    """Drop all devices."""

    statuses: Callable[[], tuple[bytes, ...]]
    """Current RxStatus per device."""

    update_transducers: Callable[[bool], None]
    """Recompute per-transducer amplitude/phase from the latest drives."""

    transducer_positions: Callable[[], np.ndarray]
    """(n_transducers, 3) positions for the current geometry."""

    transducer_states: Callable[[], np.ndarray]
    """(n_transducers, 4) rows of (amp, phase, enable, alpha)."""


@runtime_checkable
class PresenterProtocol(Protocol):
    """Methods required of the presentation layer."""

    present: Callable[["DirtyFlagTracker"], None]
    """Recompute derived state for every set flag, claiming each one."""
