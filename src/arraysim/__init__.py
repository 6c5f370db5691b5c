"""
arraysim: a simulated ultrasound transducer array behind a TCP device link.

Clients handshake, configure a geometry of devices, then stream one command
record per device and read back one status record per device. A simulation
owner applies every change on a single thread, drives a device emulator and
recomputes the visual state of every transducer.

Subpackages
-----------
- arraysim.types : geometry, messages, signals, protocols and errors
- arraysim.server : wire codec, connection sessions, TCP server and client
- arraysim.sim : simulation owner and its synchronization primitives
- arraysim.device : device emulators
- arraysim.system : settings
- arraysim.util : defaults and logging
- arraysim.cli : command line
"""

from ._version import __version__

__all__ = ["__version__"]
