"""
Simulation owner and the primitives it shares with the network side.

1. Signal channel (signal_channel.py)
    - FIFO of signals from connection sessions to the owner.

2. Ack store (ack_store.py)
    - Versioned immutable snapshot of the latest per-device statuses.

3. Relay (relay.py)
    - Single slot holding the most recent Send payload.

4. Dirty flags (update_flag.py)
    - What the presenter must recompute in the next frame.

5. Owner (simulator.py, presentation.py, state.py)
    - Applies signals, drives the emulator and runs presentation frames.

Examples
--------
```python
import threading
from arraysim.device import MockDeviceEmulator
from arraysim.sim import LinkContext, Simulator

emulator = MockDeviceEmulator()
context = LinkContext.for_emulator(emulator)
sim = Simulator(context, emulator)
stop = threading.Event()
sim.run(stop)  # until stop.set()
```
"""

from .ack_store import AckSnapshot, AckStore
from .context import LinkContext
from .presentation import HeadlessPresenter
from .relay import OutboundRelay
from .signal_channel import SignalChannel
from .simulator import Simulator
from .state import CameraState, SimulationState, SliceState
from .update_flag import DirtyFlagTracker, UpdateFlag

__all__ = [
    "AckSnapshot",
    "AckStore",
    "CameraState",
    "DirtyFlagTracker",
    "HeadlessPresenter",
    "LinkContext",
    "OutboundRelay",
    "SignalChannel",
    "SimulationState",
    "Simulator",
    "SliceState",
    "UpdateFlag",
]
