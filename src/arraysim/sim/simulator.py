"""Simulation owner.

The Simulator is the only code that touches the device emulator, the dirty
flag tracker and the presenter. It parks on the signal channel, applies
every signal in arrival order and runs one presentation frame after each,
so every flag set by a signal is claimed before the next one is looked at.

Writes to the ack store and relay happen here and nowhere else.
"""

from __future__ import annotations

import threading
from typing import Optional

import numpy as np
from loguru import logger

from arraysim.types import (
    Close,
    ConfigureGeometry,
    DeviceEmulatorProtocol,
    Geometry,
    PresenterProtocol,
    ProtocolError,
    Send,
    Signal,
    UpdateGeometry,
)
from arraysim.util import DEFAULT_TICK_INTERVAL

from .context import LinkContext
from .presentation import HeadlessPresenter
from .state import SimulationState, wall_clock_ns
from .update_flag import DirtyFlagTracker, UpdateFlag


class Simulator:
    """Owns the emulator, tracker, presenter and simulation state.

    Parameters
    ----------
    context : LinkContext
        Channel, ack store and relay shared with the network side.
    emulator : DeviceEmulatorProtocol
        Device emulator. Only ever called from the owner thread.
    state : SimulationState, optional
        Clock and view state. Defaults to a fresh SimulationState.
    presenter : PresenterProtocol, optional
        Defaults to a HeadlessPresenter over `emulator` and `state`.
    tick_interval : float
        Longest time `run` parks on the channel before ticking again (s).
    """

    def __init__(
        self,
        context: LinkContext,
        emulator: DeviceEmulatorProtocol,
        state: Optional[SimulationState] = None,
        presenter: Optional[PresenterProtocol] = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
    ):
        if not isinstance(emulator, DeviceEmulatorProtocol):
            raise TypeError(
                f"{emulator.__class__.__name__} does not implement DeviceEmulatorProtocol"
            )
        if (
            emulator.tx_record_size != context.tx_record_size
            or emulator.rx_record_size != context.rx_record_size
        ):
            raise ValueError("Emulator record sizes do not match the link context")

        self.context = context
        self.emulator = emulator
        self.state = state if state is not None else SimulationState()
        self.presenter = (
            presenter
            if presenter is not None
            else HeadlessPresenter(emulator, self.state)
        )
        if not isinstance(self.presenter, PresenterProtocol):
            raise TypeError(
                f"{self.presenter.__class__.__name__} does not implement PresenterProtocol"
            )

        self.tracker = DirtyFlagTracker()
        self._geometry: Optional[Geometry] = None
        self._commands: tuple[bytes, ...] = ()
        self.commands_latched = 0
        self._frame_flags = UpdateFlag.NONE
        self._last_wall: Optional[int] = None
        self.tick_interval = tick_interval
        self.signals_applied = 0

    # ========================================================================
    # Accessors
    # ========================================================================

    @property
    def geometry(self) -> Optional[Geometry]:
        return self._geometry

    @property
    def commands(self) -> tuple[bytes, ...]:
        """Command records picked up by the last tick, one per device.

        All-zero records until a Send arrives for the current geometry.
        """
        return self._commands

    @property
    def frame_flags(self) -> UpdateFlag:
        """Flags drained by the most recent presentation frame."""
        return self._frame_flags

    def transducer_states(self) -> np.ndarray:
        return self.emulator.transducer_states()

    def mark_dirty(self, flag: UpdateFlag) -> None:
        """Flag a UI-originated change (camera, slice) for the next frame."""
        self.tracker.set(flag)

    # ========================================================================
    # Processing
    # ========================================================================

    def tick(self) -> bool:
        now = wall_clock_ns()
        if self._last_wall is not None:
            self.state.advance(now - self._last_wall)
        self._last_wall = now

        changed = self.emulator.tick(self.state.system_time())
        if self._geometry is None:
            return changed

        self._poll_relay()
        if changed:
            self.context.ack_store.publish(self.emulator.statuses())
            self.tracker.set(UpdateFlag.UPDATE_TRANS_STATE)
        return changed

    def _poll_relay(self) -> None:
        if self.context.relay.take() is not None:
            self.commands_latched += 1
            logger.trace("Latched command frame {}", self.commands_latched)
        self._commands = self.context.relay.latest(self._geometry.num_devices)

    def present(self) -> None:
        self._frame_flags = self.tracker.flags
        self.presenter.present(self.tracker)
        self.tracker.assert_drained()

    def process_pass(self, timeout: Optional[float] = DEFAULT_TICK_INTERVAL) -> int:
        """Tick, then apply every available signal with a frame after each.

        Returns the number of signals applied.
        """
        self.tick()
        if not self.tracker.is_empty():
            self.present()

        first = self.context.channel.recv(timeout)
        if first is None:
            return 0
        signals = [first] + self.context.channel.drain()
        for signal in signals:
            self.apply(signal)
            self.present()

        if not self.tracker.is_empty():
            self.present()
        return len(signals)

    def apply(self, signal: Signal) -> None:
        """Apply one signal and resolve its completion future.

        A rejected signal leaves emulator, store, relay and tracker untouched
        and fails the future with the reason.
        """
        logger.debug("Applying {}", signal)
        try:
            self._apply(signal)
        except ProtocolError as err:
            logger.warning("Rejected {}: {}", signal, err)
            signal.fail(err)
            return
        except Exception as err:
            logger.exception("Error applying {}", signal)
            signal.fail(err)
            return
        self.signals_applied += 1
        signal.resolve()

    def _apply(self, signal: Signal) -> None:
        ctx = self.context
        match signal:
            case ConfigureGeometry(geometry=geometry):
                self.emulator.configure(geometry)
                self._geometry = geometry
                ctx.ack_store.reset(geometry.num_devices)
                self._commands = ()
                ctx.relay.reset()
                self.tracker.set(UpdateFlag.all())

            case UpdateGeometry(geometry=geometry):
                current = self._require_geometry("UpdateGeometry")
                if geometry.num_devices != current.num_devices:
                    raise ProtocolError(
                        f"UpdateGeometry has {geometry.num_devices} devices, "
                        f"configured geometry has {current.num_devices}"
                    )
                self.emulator.reconfigure_pose(geometry)
                self._geometry = geometry
                self.tracker.set(UpdateFlag.UPDATE_TRANS_POS)

            case Send(commands=commands):
                current = self._require_geometry("Send")
                if len(commands) != current.num_devices:
                    raise ProtocolError(
                        f"Send has {len(commands)} records, "
                        f"configured geometry has {current.num_devices} devices"
                    )
                statuses = self.emulator.apply(commands)
                ctx.ack_store.publish(statuses)
                ctx.relay.put(commands)
                self.tracker.set(UpdateFlag.UPDATE_TRANS_STATE)

            case Close():
                self.emulator.reset()
                self._geometry = None
                self._commands = ()
                ctx.ack_store.reset(0)
                ctx.relay.reset()
                self.tracker.set(UpdateFlag.UPDATE_CONFIG)

            case _:
                raise TypeError(f"Unknown signal: {signal!r}")

    def _require_geometry(self, what: str) -> Geometry:
        if self._geometry is None:
            raise ProtocolError(f"{what} before ConfigureGeometry")
        return self._geometry

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def run(self, stop_event: threading.Event) -> None:
        """Process passes until `stop_event` is set, then close the channel."""
        logger.info("Simulation owner started")
        try:
            while not stop_event.is_set():
                self.process_pass(self.tick_interval)
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        self.context.channel.close()
        logger.info(
            "Simulation owner stopped after {} signals", self.signals_applied
        )
