# -*- coding: utf-8 -*-
"""
Wire codec for the device-link protocol.

Request frames
--------------
Every request starts with a one-byte message type (see MessageType).

- Handshake (0x00): u16 version, 11-byte magic.
- ConfigureGeometry (0x01) / UpdateGeometry (0x02): u32 device count, then per
  device 3 x f32 position (x, y, z) and 4 x f32 rotation (w, i, j, k).
- Send (0x03): u32 device count, then count x tx_record_size raw bytes.
- Read (0x04), Close (0x05): no body.

Response frames
---------------
- OK: 0x00. A Read response appends u32 device count and
  count x rx_record_size raw bytes.
- Error: 0xFF, u32 byte length, UTF-8 message.

All integers and floats are little-endian. Records are split and joined as
opaque byte strings; their layout belongs to the device emulator.
"""

from __future__ import annotations

import struct
from typing import Awaitable, Callable, Sequence

from arraysim.types import (
    MAGIC,
    ROTATION_NORM_TOLERANCE,
    CloseRequest,
    ConfigureGeometryRequest,
    DeviceDescriptor,
    ErrorResponse,
    Geometry,
    HandshakeRequest,
    MessageType,
    OkResponse,
    ProtocolError,
    ReadRequest,
    ReadResponse,
    Request,
    Response,
    SendRequest,
    Status,
    TransportError,
    UpdateGeometryRequest,
)

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_POSE = struct.Struct("<3f4f")

POSE_SIZE = _POSE.size  # 28
HANDSHAKE_BODY_SIZE = _U16.size + len(MAGIC)


# ============================================================================
# geometry
# ============================================================================


def encode_geometry(geometry: Geometry) -> bytes:
    """Device count followed by one packed pose per device."""
    parts = [_U32.pack(geometry.num_devices)]
    for dev in geometry:
        parts.append(_POSE.pack(*dev.position, *dev.rotation))
    return b"".join(parts)


def _decode_poses(body: bytes, num_devices: int) -> Geometry:
    devices = []
    for i in range(num_devices):
        x, y, z, w, qi, qj, qk = _POSE.unpack_from(body, i * POSE_SIZE)
        devices.append(DeviceDescriptor((x, y, z), (w, qi, qj, qk)))
    return Geometry(tuple(devices))


def decode_geometry(data: bytes, max_devices: int | None = None) -> Geometry:
    """Decode a complete geometry body (count + poses).

    Raises
    ------
    ProtocolError
        If the body length does not match the count, or the geometry is
        malformed (see validate_geometry).
    """
    if len(data) < _U32.size:
        raise ProtocolError("Geometry body too short for device count")
    (num_devices,) = _U32.unpack_from(data, 0)
    _check_device_count(num_devices, max_devices)
    body = data[_U32.size :]
    if len(body) != num_devices * POSE_SIZE:
        raise ProtocolError(
            f"Geometry body is {len(body)} bytes, expected "
            f"{num_devices * POSE_SIZE} for {num_devices} devices"
        )
    geometry = _decode_poses(body, num_devices)
    validate_geometry(geometry)
    return geometry


def validate_geometry(geometry: Geometry) -> None:
    """Reject non-finite poses and rotations that are not unit quaternions."""
    for idx, dev in enumerate(geometry):
        if not dev.is_finite():
            raise ProtocolError(f"Device {idx} has a non-finite pose")
        if abs(dev.rotation_norm() - 1.0) > ROTATION_NORM_TOLERANCE:
            raise ProtocolError(
                f"Device {idx} rotation is not a unit quaternion "
                f"(norm={dev.rotation_norm():.6f})"
            )


def _check_device_count(num_devices: int, max_devices: int | None) -> None:
    if num_devices == 0:
        raise ProtocolError("Geometry must contain at least one device")
    if max_devices is not None and num_devices > max_devices:
        raise ProtocolError(
            f"Device count {num_devices} exceeds the limit of {max_devices}"
        )


# ============================================================================
# records
# ============================================================================


def split_records(data: bytes, record_size: int) -> tuple[bytes, ...]:
    if record_size <= 0:
        raise ValueError("record_size must be positive")
    if len(data) % record_size:
        raise ProtocolError(
            f"{len(data)} bytes is not a whole number of {record_size}-byte records"
        )
    return tuple(
        bytes(data[i : i + record_size]) for i in range(0, len(data), record_size)
    )


def join_records(records: Sequence[bytes], record_size: int) -> bytes:
    for idx, rec in enumerate(records):
        if len(rec) != record_size:
            raise ValueError(
                f"Record {idx} is {len(rec)} bytes, expected {record_size}"
            )
    return b"".join(records)


# ============================================================================
# requests
# ============================================================================


def encode_request(request: Request, tx_record_size: int | None = None) -> bytes:
    """Serialize a request frame (client side)."""
    head = _U8.pack(request.message_type)
    match request:
        case HandshakeRequest(version=version, magic=magic):
            return head + _U16.pack(version) + bytes(magic)
        case ConfigureGeometryRequest(geometry=geometry) | UpdateGeometryRequest(
            geometry=geometry
        ):
            return head + encode_geometry(geometry)
        case SendRequest(commands=commands):
            if tx_record_size is None:
                raise ValueError("tx_record_size is required to encode a Send")
            return (
                head
                + _U32.pack(len(commands))
                + join_records(commands, tx_record_size)
            )
        case ReadRequest() | CloseRequest():
            return head
    raise TypeError(f"Cannot encode {request!r}")


async def read_request(
    read_exact: Callable[[int], Awaitable[bytes]],
    tx_record_size: int,
    max_devices: int | None = None,
) -> Request:
    """Read exactly one request frame from a stream.

    Raises
    ------
    TransportError
        Propagated from read_exact on a short read.
    ProtocolError
        Unknown message type or malformed body.
    """
    (type_byte,) = _U8.unpack(await read_exact(_U8.size))
    try:
        msg_type = MessageType(type_byte)
    except ValueError:
        raise ProtocolError(f"Unknown message type: 0x{type_byte:02X}") from None

    match msg_type:
        case MessageType.HANDSHAKE:
            body = await read_exact(HANDSHAKE_BODY_SIZE)
            (version,) = _U16.unpack_from(body, 0)
            return HandshakeRequest(version=version, magic=bytes(body[_U16.size :]))
        case MessageType.CONFIGURE_GEOMETRY:
            return ConfigureGeometryRequest(
                geometry=await _read_geometry(read_exact, max_devices)
            )
        case MessageType.UPDATE_GEOMETRY:
            return UpdateGeometryRequest(
                geometry=await _read_geometry(read_exact, max_devices)
            )
        case MessageType.SEND:
            (num_devices,) = _U32.unpack(await read_exact(_U32.size))
            if max_devices is not None and num_devices > max_devices:
                raise ProtocolError(
                    f"Device count {num_devices} exceeds the limit of {max_devices}"
                )
            payload = await read_exact(num_devices * tx_record_size)
            return SendRequest(commands=split_records(payload, tx_record_size))
        case MessageType.READ:
            return ReadRequest()
        case MessageType.CLOSE:
            return CloseRequest()


async def _read_geometry(
    read_exact: Callable[[int], Awaitable[bytes]], max_devices: int | None
) -> Geometry:
    (num_devices,) = _U32.unpack(await read_exact(_U32.size))
    _check_device_count(num_devices, max_devices)
    body = await read_exact(num_devices * POSE_SIZE)
    geometry = _decode_poses(body, num_devices)
    validate_geometry(geometry)
    return geometry


# ============================================================================
# responses
# ============================================================================


def encode_ok() -> bytes:
    return _U8.pack(Status.OK)


def encode_read_response(statuses: Sequence[bytes], rx_record_size: int) -> bytes:
    return (
        _U8.pack(Status.OK)
        + _U32.pack(len(statuses))
        + join_records(statuses, rx_record_size)
    )


def encode_error(message: str) -> bytes:
    msg_bytes = message.encode("utf-8")
    return _U8.pack(Status.ERROR) + _U32.pack(len(msg_bytes)) + msg_bytes


def encode_response(response: Response, rx_record_size: int | None = None) -> bytes:
    match response:
        case ReadResponse(statuses=statuses):
            if rx_record_size is None:
                raise ValueError("rx_record_size is required to encode a Read reply")
            return encode_read_response(statuses, rx_record_size)
        case OkResponse():
            return encode_ok()
        case ErrorResponse(value=value):
            return encode_error(value)
    raise TypeError(f"Cannot encode {response!r}")


def read_response(
    read_exact: Callable[[int], bytes],
    rx_record_size: int | None = None,
) -> Response:
    """Read one response frame (client side, blocking).

    Pass `rx_record_size` when the request was a Read, so that the status
    records following the OK byte are consumed too.
    """
    (status_byte,) = _U8.unpack(read_exact(_U8.size))
    if status_byte == Status.ERROR:
        (length,) = _U32.unpack(read_exact(_U32.size))
        return ErrorResponse(value=read_exact(length).decode("utf-8", "replace"))
    if status_byte != Status.OK:
        raise TransportError(f"Unknown response status: 0x{status_byte:02X}")
    if rx_record_size is None:
        return OkResponse()
    (num_devices,) = _U32.unpack(read_exact(_U32.size))
    payload = read_exact(num_devices * rx_record_size) if num_devices else b""
    return ReadResponse(statuses=split_records(payload, rx_record_size))

