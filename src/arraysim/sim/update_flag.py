"""Dirty flags telling the presenter what must be recomputed.

Flags are set by the simulation owner while applying signals (and by the UI
for camera/slice edits) and claimed by the presenter once per frame. Every
flag set during a pass must be claimed by exactly one handler before the next
signal is processed; anything left over is a coordination bug.
"""

from __future__ import annotations

from enum import IntFlag

from loguru import logger

from arraysim.types import UnclaimedFlagsError


class UpdateFlag(IntFlag):
    NONE = 0
    UPDATE_SLICE_COLOR_MAP = 1 << 0
    UPDATE_SLICE_POS = 1 << 1
    UPDATE_SLICE_SIZE = 1 << 2
    UPDATE_CAMERA = 1 << 3
    UPDATE_TRANS_STATE = 1 << 4
    UPDATE_TRANS_ALPHA = 1 << 5
    UPDATE_TRANS_POS = 1 << 6
    UPDATE_CONFIG = 1 << 7

    @classmethod
    def all(cls) -> UpdateFlag:
        flag = cls.NONE
        for member in cls:
            flag |= member
        return flag


class DirtyFlagTracker:
    """Accumulates UpdateFlag bits between presentation frames.

    Owned by the simulation thread; not safe to share across threads.
    """

    def __init__(self):
        self._flags = UpdateFlag.NONE

    @property
    def flags(self) -> UpdateFlag:
        return self._flags

    def set(self, flag: UpdateFlag) -> None:
        self._flags |= flag

    def contains(self, flag: UpdateFlag) -> bool:
        return (self._flags & flag) == flag

    def claim(self, *flags: UpdateFlag) -> bool:
        """Clear the given bits. Returns True if any of them were set."""
        mask = UpdateFlag.NONE
        for flag in flags:
            mask |= flag
        was_set = bool(self._flags & mask)
        self._flags &= ~mask
        return was_set

    def is_empty(self) -> bool:
        return self._flags == UpdateFlag.NONE

    def assert_drained(self) -> None:
        if not self.is_empty():
            remaining = self._flags
            logger.error("Unclaimed dirty flags after drain: {!r}", remaining)
            raise UnclaimedFlagsError(
                f"Dirty flags left unclaimed: {remaining!r}", remaining=remaining
            )

    def __repr__(self):
        return f"DirtyFlagTracker({self._flags!r})"
