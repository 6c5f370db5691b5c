"""
Geometry, wire messages, signals, collaborator protocols and errors.

The arraysim.types package is the vocabulary shared by the network side and
the simulation side:

1. Geometry (geometry.py)
    - Immutable device poses configured by a client.

2. Messages (messages.py)
    - Decoded request frames and response frames, message type and status
      bytes, protocol version and handshake magic.

3. Signals (signals.py)
    - Commands handed from a connection session to the simulation owner.

4. Protocols (protocols.py)
    - Connection, device emulator and presenter capabilities.

Error taxonomy
--------------
- TransportError: peer went away or a frame was truncated. The session ends
  silently.
- ProtocolError: the client broke the protocol. Answered with an error frame,
  then the connection is closed.
- SimulationUnavailable: the simulation owner has shut down (window closed)
  or did not apply a signal in time. Answered with an error frame, then the
  connection is closed.
- CommsError: raised client-side when the server answers with an error frame.

See Also
--------
arraysim.server : Wire codec, sessions and transport
arraysim.sim : Simulation owner and synchronization primitives
"""

from __future__ import annotations

from .geometry import (
    IDENTITY_ROTATION,
    ORIGIN,
    ROTATION_NORM_TOLERANCE,
    DeviceDescriptor,
    Geometry,
    Quaternion,
    Vector3,
)
from .messages import (
    MAGIC,
    PROTOCOL_VERSION,
    CloseRequest,
    ConfigureGeometryRequest,
    ErrorResponse,
    HandshakeRequest,
    Message,
    MessageType,
    OkResponse,
    ReadRequest,
    ReadResponse,
    Request,
    Response,
    SendRequest,
    Status,
    UpdateGeometryRequest,
)
from .protocols import ConnectionProtocol, DeviceEmulatorProtocol, PresenterProtocol
from .signals import Close, ConfigureGeometry, Send, Signal, UpdateGeometry


# Exceptions
class LinkError(Exception):
    """Base exception for device-link errors."""

    pass


class TransportError(LinkError):
    """Raised when the underlying connection fails or a frame is truncated."""

    pass


class ProtocolError(LinkError):
    """Raised when a client violates the device-link protocol."""

    pass


class SimulationUnavailable(LinkError):
    """Raised when the simulation owner is gone or not responding."""

    def __init__(self, message="Simulator is closed"):
        super().__init__(message)


class CommsError(LinkError):
    """Raised client-side when the server returns an error frame."""

    pass


class UnclaimedFlagsError(AssertionError):
    """Raised when dirty flags survive a presentation pass."""

    def __init__(self, message, remaining=None):
        super().__init__(message)
        self.remaining = remaining


__all__ = [
    "IDENTITY_ROTATION",
    "ORIGIN",
    "ROTATION_NORM_TOLERANCE",
    "DeviceDescriptor",
    "Geometry",
    "Quaternion",
    "Vector3",
    "MAGIC",
    "PROTOCOL_VERSION",
    "Message",
    "MessageType",
    "Status",
    "Request",
    "Response",
    "HandshakeRequest",
    "ConfigureGeometryRequest",
    "UpdateGeometryRequest",
    "SendRequest",
    "ReadRequest",
    "CloseRequest",
    "OkResponse",
    "ReadResponse",
    "ErrorResponse",
    "ConnectionProtocol",
    "DeviceEmulatorProtocol",
    "PresenterProtocol",
    "Signal",
    "ConfigureGeometry",
    "UpdateGeometry",
    "Send",
    "Close",
    "LinkError",
    "TransportError",
    "ProtocolError",
    "SimulationUnavailable",
    "CommsError",
    "UnclaimedFlagsError",
]
