"""Presentation-side simulation state (camera, slice, clock)."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from mashumaro import DataClassDictMixin

from arraysim.util import DEFAULT_TIME_STEP


@dataclass
class CameraState(DataClassDictMixin):
    pos: tuple[float, float, float] = (86.6252, -533.2867, 150.0)
    rot: tuple[float, float, float] = (90.0, 0.0, 0.0)  # euler XYZ, degrees
    fov: float = 45.0
    near_clip: float = 0.1
    far_clip: float = 1000.0


@dataclass
class SliceState(DataClassDictMixin):
    pos: tuple[float, float, float] = (86.6252, 66.7133, 150.0)
    rot: tuple[float, float, float] = (90.0, 0.0, 0.0)
    size: tuple[float, float] = (300.0, 300.0)
    color_map: str = "inferno"
    pressure_max: float = 5000.0


@dataclass
class SimulationState(DataClassDictMixin):
    """Clock and view settings owned by the simulation thread.

    `real_time` is the emulated system time in ns. With `auto_play` it follows
    wall-clock time scaled by `time_scale`; otherwise it only moves on `step`.
    """

    camera: CameraState = field(default_factory=CameraState)
    slice: SliceState = field(default_factory=SliceState)
    mod_enable: bool = False
    auto_play: bool = True
    real_time: int = 0
    time_scale: float = 1.0
    time_step: int = DEFAULT_TIME_STEP

    def system_time(self) -> int:
        return self.real_time

    def advance(self, wall_ns: int) -> None:
        if self.auto_play:
            self.real_time += int(wall_ns * self.time_scale)

    def step(self) -> None:
        self.real_time += self.time_step


def wall_clock_ns() -> int:
    return time.monotonic_ns()
