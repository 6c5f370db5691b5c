import threading

import numpy as np
import pytest

from arraysim.device import MockDeviceEmulator
from arraysim.device.mock import (
    NUM_TRANSDUCERS,
    TAG_DRIVES,
    TAG_FIRM_INFO,
    TX_RECORD_SIZE,
    RxStatus,
    TxCommand,
)
from arraysim.sim import (
    HeadlessPresenter,
    LinkContext,
    SimulationState,
    Simulator,
    UpdateFlag,
)
from arraysim.types import (
    Close,
    ConfigureGeometry,
    Geometry,
    ProtocolError,
    Send,
    SimulationUnavailable,
    UnclaimedFlagsError,
    UpdateGeometry,
)


@pytest.fixture
def sim():
    emulator = MockDeviceEmulator()
    context = LinkContext.for_emulator(emulator)
    return Simulator(context, emulator, state=SimulationState(auto_play=False))


def submit(sim: Simulator, *signals):
    """Queue signals and run one processing pass."""
    for signal in signals:
        sim.context.channel.send(signal)
    applied = sim.process_pass(timeout=0.1)
    assert applied == len(signals)
    assert sim.tracker.is_empty()
    return signals


def configure(sim: Simulator, n: int = 2, spacing: float = 200.0):
    (sig,) = submit(sim, ConfigureGeometry(geometry=Geometry.identity(n, spacing)))
    sig.done.result(timeout=0)


def test_configure_then_read_gives_zeroed_statuses(sim):
    configure(sim, 3)
    snap = sim.context.ack_store.snapshot()
    assert snap.statuses == (b"\x00\x00",) * 3
    assert sim.geometry.num_devices == 3
    assert sim.frame_flags == UpdateFlag.all()


def test_configure_runs_every_presenter_handler(sim):
    configure(sim)
    updates = sim.presenter.updates
    for key in ("camera", "trans_pos", "trans_state", "color", "slice", "config", "color_map"):
        assert updates[key] == 1
    assert sim.presenter.num_transducers == 2 * NUM_TRANSDUCERS
    assert sim.presenter.positions.shape == (2 * NUM_TRANSDUCERS, 3)


def test_send_publishes_statuses_and_relays(sim):
    configure(sim)
    cmds = (
        TxCommand(msg_id=5, tag=TAG_FIRM_INFO).to_bytes(),
        TxCommand(msg_id=6).to_bytes(),
    )
    (sig,) = submit(sim, Send(commands=cmds))
    sig.done.result(timeout=0)
    assert sim.context.ack_store.snapshot().statuses == (b"\x0a\x05", b"\x00\x06")
    assert sim.context.relay.latest(2) == cmds
    assert sim.frame_flags == UpdateFlag.UPDATE_TRANS_STATE


def test_send_updates_visual_state(sim):
    configure(sim)
    drive = TxCommand(msg_id=1, tag=TAG_DRIVES)
    drive.intensities[:] = 255
    submit(sim, Send(commands=(drive.to_bytes(), TxCommand().to_bytes())))
    states = sim.transducer_states()
    np.testing.assert_allclose(states[:NUM_TRANSDUCERS, 0], 1.0, atol=1e-6)
    np.testing.assert_allclose(sim.presenter.states[:NUM_TRANSDUCERS, 0], 1.0, atol=1e-6)


def test_two_sends_relay_holds_second(sim):
    configure(sim)
    first = (b"\x01" * 626, b"\x01" * 626)
    second = (b"\x02" * 626, b"\x02" * 626)
    submit(sim, Send(commands=first), Send(commands=second))
    assert sim.context.relay.take() == second
    assert sim.context.relay.overwritten == 1


def test_update_geometry_moves_devices(sim):
    configure(sim)
    (sig,) = submit(sim, UpdateGeometry(geometry=Geometry.identity(2, spacing=20.0)))
    sig.done.result(timeout=0)
    assert sim.frame_flags == UpdateFlag.UPDATE_TRANS_POS
    np.testing.assert_allclose(
        sim.presenter.positions[NUM_TRANSDUCERS], (20.0, 0.0, 0.0), atol=1e-4
    )


def test_update_geometry_count_mismatch_rejected(sim):
    configure(sim, 2)
    before = sim.geometry
    version = sim.context.ack_store.snapshot().version
    positions = sim.presenter.positions.copy()

    (sig,) = submit(sim, UpdateGeometry(geometry=Geometry.identity(3)))
    with pytest.raises(ProtocolError, match="3 devices"):
        sig.done.result(timeout=0)
    assert sim.geometry is before
    assert sim.context.ack_store.snapshot().version == version
    np.testing.assert_array_equal(sim.presenter.positions, positions)


def test_send_before_configure_rejected(sim):
    (sig,) = submit(sim, Send(commands=(bytes(626),)))
    with pytest.raises(ProtocolError, match="before ConfigureGeometry"):
        sig.done.result(timeout=0)
    assert sim.context.ack_store.snapshot().version == 0
    assert sim.context.relay.take() is None


def test_send_count_mismatch_rejected(sim):
    configure(sim, 2)
    version = sim.context.ack_store.snapshot().version
    (sig,) = submit(sim, Send(commands=(bytes(626),)))
    with pytest.raises(ProtocolError):
        sig.done.result(timeout=0)
    assert sim.context.ack_store.snapshot().version == version


def test_close_tears_down(sim):
    configure(sim)
    submit(sim, Send(commands=(bytes(626),) * 2))
    (sig,) = submit(sim, Close())
    sig.done.result(timeout=0)
    assert sim.geometry is None
    assert sim.context.ack_store.snapshot().statuses == ()
    assert sim.context.relay.take() is None
    assert sim.frame_flags == UpdateFlag.UPDATE_CONFIG
    assert sim.presenter.num_transducers == 0


def test_idle_pass(sim):
    assert sim.process_pass(timeout=0.01) == 0
    assert sim.tracker.is_empty()


def test_ui_flags_drained(sim):
    sim.mark_dirty(UpdateFlag.UPDATE_CAMERA | UpdateFlag.UPDATE_SLICE_SIZE)
    sim.process_pass(timeout=0.01)
    assert sim.tracker.is_empty()
    assert sim.presenter.camera == (sim.state.camera.pos, sim.state.camera.rot)
    assert sim.presenter.slice == (sim.state.slice.pos, sim.state.slice.size)


def test_unclaimed_flag_is_a_bug():
    class LazyPresenter:
        def present(self, tracker):
            tracker.claim(UpdateFlag.UPDATE_CAMERA)

    emulator = MockDeviceEmulator()
    sim = Simulator(LinkContext.for_emulator(emulator), emulator, presenter=LazyPresenter())
    sim.mark_dirty(UpdateFlag.UPDATE_CONFIG)
    with pytest.raises(UnclaimedFlagsError):
        sim.process_pass(timeout=0.01)


def test_clock():
    state = SimulationState(auto_play=False, time_step=500)
    state.advance(10_000)
    assert state.system_time() == 0
    state.step()
    assert state.system_time() == 500
    state.auto_play = True
    state.time_scale = 2.0
    state.advance(1_000)
    assert state.system_time() == 2_500


def test_tick_feeds_emulator_time():
    emulator = MockDeviceEmulator()
    state = SimulationState(auto_play=False, real_time=42)
    sim = Simulator(LinkContext.for_emulator(emulator), emulator, state=state)
    assert sim.tick() is False
    assert emulator.system_time == 42


def test_run_closes_channel(sim):
    stop = threading.Event()
    thread = threading.Thread(target=sim.run, args=(stop,))
    thread.start()
    sig = ConfigureGeometry(geometry=Geometry.identity(1))
    sim.context.channel.send(sig)
    sig.done.result(timeout=5)
    stop.set()
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert sim.context.channel.closed
    with pytest.raises(SimulationUnavailable):
        sim.context.channel.send(Close())


def test_rejects_mismatched_context():
    emulator = MockDeviceEmulator()
    context = LinkContext(tx_record_size=8, rx_record_size=2)
    with pytest.raises(ValueError):
        Simulator(context, emulator)


def test_headless_presenter_is_default(sim):
    assert isinstance(sim.presenter, HeadlessPresenter)


def test_close_clears_presenter_buffers(sim):
    configure(sim)
    drive = TxCommand(msg_id=1, tag=TAG_DRIVES)
    drive.intensities[:] = 255
    submit(sim, Send(commands=(drive.to_bytes(), TxCommand().to_bytes())))
    assert sim.presenter.colors.shape == (2 * NUM_TRANSDUCERS, 4)

    submit(sim, Close())
    assert sim.presenter.positions.shape == (0, 3)
    assert sim.presenter.states.shape == (0, 4)
    assert sim.presenter.colors.shape == (0, 4)


def test_tick_picks_up_relayed_commands(sim):
    configure(sim, 2)
    assert sim.commands == ()

    # nothing sent yet: neutral records sized to the geometry
    sim.tick()
    assert sim.commands == (bytes(TX_RECORD_SIZE),) * 2
    assert sim.commands_latched == 0

    cmds = (TxCommand(msg_id=3).to_bytes(), TxCommand(msg_id=4).to_bytes())
    submit(sim, Send(commands=cmds))
    sim.tick()
    assert sim.commands == cmds
    assert sim.commands_latched == 1
    assert sim.context.relay.take() is None

    # payload stays current until replaced
    sim.tick()
    assert sim.commands == cmds
    assert sim.commands_latched == 1

    submit(sim, Close())
    assert sim.commands == ()
    sim.tick()
    assert sim.commands == ()


class TickingEmulator(MockDeviceEmulator):
    """Firmware whose statuses change on every tick."""

    def tick(self, system_time: int) -> bool:
        super().tick(system_time)
        self._rx = [RxStatus(data=0x55, ack=i) for i in range(len(self._rx))]
        return True


def test_tick_change_publishes_statuses():
    emulator = TickingEmulator()
    sim = Simulator(
        LinkContext.for_emulator(emulator),
        emulator,
        state=SimulationState(auto_play=False),
    )
    # no geometry yet, nothing to publish
    sim.tick()
    assert sim.context.ack_store.snapshot().version == 0

    configure(sim, 2)
    version = sim.context.ack_store.snapshot().version
    assert sim.process_pass(timeout=0.01) == 0
    snap = sim.context.ack_store.snapshot()
    assert snap.version > version
    assert snap.statuses == (b"\x55\x00", b"\x55\x01")
    assert sim.frame_flags == UpdateFlag.UPDATE_TRANS_STATE
    assert sim.tracker.is_empty()
