"""Message types and constants for the device-link protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from .geometry import Geometry

PROTOCOL_VERSION = 1
MAGIC = b"ARRAYSIMLNK"  # 11 bytes


class MessageType(IntEnum):
    """First byte of every request frame."""

    HANDSHAKE = 0x00
    CONFIGURE_GEOMETRY = 0x01
    UPDATE_GEOMETRY = 0x02
    SEND = 0x03
    READ = 0x04
    CLOSE = 0x05


class Status(IntEnum):
    """First byte of every response frame."""

    OK = 0x00
    ERROR = 0xFF


@dataclass
class Message:
    """Base class for all decoded frames."""

    def __repr__(self):
        msg = self.__class__.__name__ + "("
        for i, (name, val) in enumerate(self.__dict__.items()):
            if i != 0:
                msg += ", "
            if isinstance(val, (bytes, bytearray)):
                msg += f"{name}=<{len(val)} bytes>"
            elif isinstance(val, tuple) and val and isinstance(val[0], bytes):
                msg += f"{name}=<{len(val)} records>"
            else:
                msg += f"{name}={val!r}"
        return msg + ")"


@dataclass(repr=False)
class Request(Message):
    """A request from a client. Subclasses define `message_type`."""

    message_type = None  # class attribute, set per subclass


@dataclass(repr=False)
class HandshakeRequest(Request):
    message_type = MessageType.HANDSHAKE
    version: int = PROTOCOL_VERSION
    magic: bytes = MAGIC


@dataclass(repr=False)
class ConfigureGeometryRequest(Request):
    message_type = MessageType.CONFIGURE_GEOMETRY
    geometry: Geometry = field(default_factory=Geometry)


@dataclass(repr=False)
class UpdateGeometryRequest(Request):
    message_type = MessageType.UPDATE_GEOMETRY
    geometry: Geometry = field(default_factory=Geometry)


@dataclass(repr=False)
class SendRequest(Request):
    message_type = MessageType.SEND
    commands: tuple[bytes, ...] = ()


@dataclass(repr=False)
class ReadRequest(Request):
    message_type = MessageType.READ


@dataclass(repr=False)
class CloseRequest(Request):
    message_type = MessageType.CLOSE


@dataclass(repr=False)
class Response(Message):
    """A response to a client's request."""

    status = None


@dataclass(repr=False)
class OkResponse(Response):
    status = Status.OK


@dataclass(repr=False)
class ReadResponse(OkResponse):
    statuses: tuple[bytes, ...] = ()


@dataclass(repr=False)
class ErrorResponse(Response):
    status = Status.ERROR
    value: str = ""
