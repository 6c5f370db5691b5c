import pytest

from arraysim.sim import DirtyFlagTracker, UpdateFlag
from arraysim.types import UnclaimedFlagsError


def test_bit_values():
    assert UpdateFlag.UPDATE_SLICE_COLOR_MAP == 1
    assert UpdateFlag.UPDATE_SLICE_POS == 2
    assert UpdateFlag.UPDATE_SLICE_SIZE == 4
    assert UpdateFlag.UPDATE_CAMERA == 8
    assert UpdateFlag.UPDATE_TRANS_STATE == 16
    assert UpdateFlag.UPDATE_TRANS_ALPHA == 32
    assert UpdateFlag.UPDATE_TRANS_POS == 64
    assert UpdateFlag.UPDATE_CONFIG == 128
    assert UpdateFlag.all() == 0xFF


def test_set_and_contains():
    tracker = DirtyFlagTracker()
    assert tracker.is_empty()
    tracker.set(UpdateFlag.UPDATE_CAMERA | UpdateFlag.UPDATE_CONFIG)
    assert tracker.contains(UpdateFlag.UPDATE_CAMERA)
    assert tracker.contains(UpdateFlag.UPDATE_CAMERA | UpdateFlag.UPDATE_CONFIG)
    assert not tracker.contains(UpdateFlag.UPDATE_TRANS_POS)


def test_claim_clears_and_reports():
    tracker = DirtyFlagTracker()
    tracker.set(UpdateFlag.UPDATE_SLICE_POS)
    assert tracker.claim(UpdateFlag.UPDATE_SLICE_POS, UpdateFlag.UPDATE_SLICE_SIZE)
    assert tracker.is_empty()
    assert not tracker.claim(UpdateFlag.UPDATE_SLICE_POS)


def test_claim_leaves_other_bits():
    tracker = DirtyFlagTracker()
    tracker.set(UpdateFlag.all())
    tracker.claim(UpdateFlag.UPDATE_CAMERA)
    assert tracker.flags == UpdateFlag.all() & ~UpdateFlag.UPDATE_CAMERA


def test_assert_drained():
    tracker = DirtyFlagTracker()
    tracker.assert_drained()
    tracker.set(UpdateFlag.UPDATE_TRANS_ALPHA)
    with pytest.raises(UnclaimedFlagsError) as excinfo:
        tracker.assert_drained()
    assert isinstance(excinfo.value, AssertionError)
    assert excinfo.value.remaining == UpdateFlag.UPDATE_TRANS_ALPHA
