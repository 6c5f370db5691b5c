"""Signals carried from connection handlers to the simulation owner.

A signal is created by a connection session, consumed exactly once by the
simulation owner and then dropped. The `done` future is resolved by the owner
once the signal has been applied, or fails with the error that stopped it.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field

from .geometry import Geometry


@dataclass(kw_only=True, repr=False)
class Signal:
    done: Future = field(default_factory=Future, compare=False)

    def __repr__(self):
        return self.__class__.__name__ + "()"

    def resolve(self) -> None:
        if not self.done.done():
            self.done.set_result(None)

    def fail(self, exc: BaseException) -> None:
        if not self.done.done():
            self.done.set_exception(exc)


@dataclass(kw_only=True, repr=False)
class ConfigureGeometry(Signal):
    geometry: Geometry

    def __repr__(self):
        return f"ConfigureGeometry(num_devices={self.geometry.num_devices})"


@dataclass(kw_only=True, repr=False)
class UpdateGeometry(Signal):
    geometry: Geometry

    def __repr__(self):
        return f"UpdateGeometry(num_devices={self.geometry.num_devices})"


@dataclass(kw_only=True, repr=False)
class Send(Signal):
    commands: tuple[bytes, ...]

    def __repr__(self):
        return f"Send(<{len(self.commands)} records>)"


@dataclass(kw_only=True, repr=False)
class Close(Signal):
    pass
