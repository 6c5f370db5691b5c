"""Headless presenter.

Performs the flag-driven recomputation a renderer would do at the start of a
frame, keeping CPU-side copies of the buffers it would upload, but draws
nothing. Each set flag is handled by exactly one handler, which claims it.
"""

from __future__ import annotations

from collections import Counter

import numpy as np
from loguru import logger

from .state import SimulationState
from .update_flag import DirtyFlagTracker, UpdateFlag


class HeadlessPresenter:
    def __init__(self, emulator, state: SimulationState):
        self.emulator = emulator
        self.state = state
        self.positions = np.zeros((0, 3), dtype=np.float32)
        self.states = np.zeros((0, 4), dtype=np.float32)
        self.colors = np.zeros((0, 4), dtype=np.float32)
        self.camera = None
        self.slice = None
        self.color_map = None
        self.num_transducers = 0
        self.updates: Counter[str] = Counter()
        self.frames = 0

    def present(self, tracker: DirtyFlagTracker) -> None:
        self.frames += 1

        if tracker.claim(UpdateFlag.UPDATE_CAMERA):
            self.update_camera()

        if tracker.claim(UpdateFlag.UPDATE_TRANS_POS):
            self.update_trans_pos()

        if tracker.contains(UpdateFlag.UPDATE_TRANS_STATE) or tracker.contains(
            UpdateFlag.UPDATE_TRANS_ALPHA
        ):
            if tracker.claim(UpdateFlag.UPDATE_TRANS_STATE):
                self.emulator.update_transducers(self.state.mod_enable)
                self.update_trans_state()
            self.update_color()
            tracker.claim(UpdateFlag.UPDATE_TRANS_ALPHA)

        if tracker.claim(UpdateFlag.UPDATE_SLICE_POS, UpdateFlag.UPDATE_SLICE_SIZE):
            self.update_slice()

        if tracker.claim(UpdateFlag.UPDATE_CONFIG):
            self.update_config()

        if tracker.claim(UpdateFlag.UPDATE_SLICE_COLOR_MAP):
            self.update_color_map()

        tracker.assert_drained()

    # ------------------------------------------------------------------------

    def update_camera(self) -> None:
        self.camera = (self.state.camera.pos, self.state.camera.rot)
        self.updates["camera"] += 1

    def update_trans_pos(self) -> None:
        self.positions = np.array(self.emulator.transducer_positions(), copy=True)
        self.updates["trans_pos"] += 1

    def update_trans_state(self) -> None:
        self.states = np.array(self.emulator.transducer_states(), copy=True)
        self.updates["trans_state"] += 1

    def update_color(self) -> None:
        # greyscale by amplitude, alpha from the enable/alpha columns
        states = self.states
        colors = np.empty((len(states), 4), dtype=np.float32)
        colors[:, 0:3] = states[:, 0:1]
        colors[:, 3] = states[:, 2] * states[:, 3]
        self.colors = colors
        self.updates["color"] += 1

    def update_slice(self) -> None:
        self.slice = (self.state.slice.pos, self.state.slice.size)
        self.updates["slice"] += 1

    def update_config(self) -> None:
        self.num_transducers = len(self.emulator.transducer_positions())
        if self.num_transducers == 0:
            # torn down
            self.positions = np.zeros((0, 3), dtype=np.float32)
            self.states = np.zeros((0, 4), dtype=np.float32)
            self.colors = np.zeros((0, 4), dtype=np.float32)
        logger.debug("Presenter reconfigured for {} transducers", self.num_transducers)
        self.updates["config"] += 1

    def update_color_map(self) -> None:
        self.color_map = self.state.slice.color_map
        self.updates["color_map"] += 1
