"""Device geometry types.

A geometry is the ordered set of simulated devices, each placed by a position
and a unit quaternion rotation. Geometries are immutable; re-configuring the
simulator replaces the whole object.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator, Sequence

Vector3 = tuple[float, float, float]
Quaternion = tuple[float, float, float, float]  # (w, i, j, k)

IDENTITY_ROTATION: Quaternion = (1.0, 0.0, 0.0, 0.0)
ORIGIN: Vector3 = (0.0, 0.0, 0.0)

ROTATION_NORM_TOLERANCE = 1e-3


@dataclass(frozen=True)
class DeviceDescriptor:
    """Pose of a single device.

    Attributes
    ----------
    position : tuple[float, float, float]
        Device origin, (x, y, z).
    rotation : tuple[float, float, float, float]
        Unit quaternion, (w, i, j, k).
    """

    position: Vector3 = ORIGIN
    rotation: Quaternion = IDENTITY_ROTATION

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (*self.position, *self.rotation))

    def rotation_norm(self) -> float:
        return math.sqrt(sum(v * v for v in self.rotation))


@dataclass(frozen=True)
class Geometry:
    """Ordered, immutable collection of devices."""

    devices: tuple[DeviceDescriptor, ...] = field(default_factory=tuple)

    @classmethod
    def from_poses(
        cls, poses: Sequence[tuple[Vector3, Quaternion]]
    ) -> Geometry:
        return cls(tuple(DeviceDescriptor(tuple(p), tuple(r)) for p, r in poses))

    @classmethod
    def identity(cls, num_devices: int, spacing: float = 0.0) -> Geometry:
        """`num_devices` unrotated devices placed along x, `spacing` apart."""
        return cls(
            tuple(
                DeviceDescriptor((i * spacing, 0.0, 0.0), IDENTITY_ROTATION)
                for i in range(num_devices)
            )
        )

    @property
    def num_devices(self) -> int:
        return len(self.devices)

    def __len__(self) -> int:
        return len(self.devices)

    def __iter__(self) -> Iterator[DeviceDescriptor]:
        return iter(self.devices)

    def __getitem__(self, idx: int) -> DeviceDescriptor:
        return self.devices[idx]

    def __repr__(self):
        return f"Geometry(num_devices={self.num_devices})"
