"""
Lane Change Detection
=====================
Flags a lane change when both tracked lines jump away from their recent
average at the same time, and keeps the event on screen for a fixed number
of frames.

States:
- inactive: every frame checks for a new lane change
- active(direction, frames_shown): latched until the display period ends
"""

import logging
from collections import deque
from typing import Mapping, NamedTuple, Optional

import numpy as np

from lane_config import LaneConfig, get_default_config
from line_detection import LaneLineTracker
from pipeline import PolarLine, Side


LOG = logging.getLogger(__name__)


class LaneChangeState(NamedTuple):
    """Snapshot of the detector after a frame."""
    active: bool = False
    direction: Optional[Side] = None
    frames_shown: int = 0


class LaneChangeDetector:
    """
    Detect lane changes from the smoothed lines of a LaneLineTracker.

    A lane change fires when, for both sides, the current rho differs from
    the mean rho of the tracker history by more than the threshold. The
    direction comes from the bottom x of the left segment compared with its
    own rolling average. On firing, the tracker and x history are cleared so
    tracking restarts in the new lane.

    Args:
        tracker: Tracker whose history is read (and cleared on a lane change)
        config: Thresholds, window length and display duration
    """

    def __init__(self, tracker: LaneLineTracker, config: Optional[LaneConfig] = None):
        self.tracker = tracker
        self.config = config or get_default_config()

        self.x_history = deque(maxlen=self.config.history_window)
        self.lane_changes = 0

        self._direction = None
        self._frames_shown = 0

    @property
    def active(self) -> bool:
        return self._direction is not None

    @property
    def state(self) -> LaneChangeState:
        return LaneChangeState(self.active, self._direction, self._frames_shown)

    def update(self, lines: Mapping[Side, Optional[PolarLine]], left_x1: Optional[int] = None) -> LaneChangeState:
        """
        Advance one frame.

        Args:
            lines: This frame's smoothed line per side (None = no line)
            left_x1: Bottom x of the left segment, or None without a left line

        Returns:
            LaneChangeState after this frame
        """
        if self.active:
            self._frames_shown += 1
            if self._frames_shown >= self.config.lane_change_display_frames:
                LOG.debug("lane change label expired after %d frames", self._frames_shown)
                self._direction = None
                self._frames_shown = 0
        elif self._should_fire(lines):
            self._fire(left_x1)
            return self.state

        if left_x1 is not None:
            self.x_history.append(left_x1)
        return self.state

    def _rho_diff(self, side: Side, line: PolarLine) -> float:
        history = self.tracker.history(side)
        avg_rho = float(np.mean([h.rho for h in history])) if history else 0.0
        return abs(line.rho - avg_rho)

    def _should_fire(self, lines) -> bool:
        threshold = self.config.lane_change_rho_threshold
        for side in Side:
            line = lines.get(side)
            if line is None or not self.tracker.history(side):
                return False
            if self._rho_diff(side, line) <= threshold:
                return False
        return True

    def _fire(self, left_x1):
        if left_x1 is not None and self.x_history and left_x1 < np.mean(self.x_history):
            direction = Side.LEFT
        else:
            direction = Side.RIGHT

        self._direction = direction
        self._frames_shown = 0
        self.lane_changes += 1

        self.tracker.reset()
        self.x_history.clear()
        LOG.info("lane change detected: %s", direction.name)

    def reset(self):
        """Back to inactive with empty x history (tracker left alone)."""
        self.x_history.clear()
        self._direction = None
        self._frames_shown = 0
