"""
Line Tracking, Segment Geometry, and Drawing
============================================
This module handles everything after Hough line detection:
1. Temporal tracking of one smoothed line per side
2. Polar line -> cartesian segment conversion
3. Cropping segments to the road band
4. Drawing and compositing the lane overlay
"""

import logging
from collections import deque
from typing import Dict, Iterable, Mapping, NamedTuple, Optional

import cv2
import numpy as np

from lane_config import LaneConfig, get_default_config
from pipeline import PolarLine, Side


LOG = logging.getLogger(__name__)


class Segment(NamedTuple):
    """Cartesian segment; (x1, y1) is the lower (bottom) endpoint."""
    x1: int
    y1: int
    x2: int
    y2: int


# ============================================================
#              LANE LINE TRACKING
# ============================================================

class LaneLineTracker:
    """
    Reduce noisy Hough candidates to one stable line per side.

    Each side keeps a sliding window of accepted lines. Every frame:
    - no candidates: reuse the last accepted line (history unchanged unless
      reappend_fallback is set)
    - otherwise: drop candidates far from the last accepted line (when at
      least one close one exists), average the rest, and append the result

    A side that has never seen a candidate yields None.
    """

    def __init__(self, config: Optional[LaneConfig] = None):
        self.config = config or get_default_config()
        self._history = {side: deque(maxlen=self.config.history_window) for side in Side}

    def history(self, side: Side):
        """Accepted lines for `side`, oldest first (read-only view)."""
        return tuple(self._history[side])

    def last(self, side: Side) -> Optional[PolarLine]:
        history = self._history[side]
        return history[-1] if history else None

    def update(self, side: Side, candidates: Iterable[PolarLine]) -> Optional[PolarLine]:
        """
        Feed this frame's candidates for one side and return its smoothed line.

        Returns:
            PolarLine, or None when there is neither a candidate nor history
        """
        candidates = list(candidates)
        history = self._history[side]
        last = history[-1] if history else None

        if not candidates:
            if last is not None:
                LOG.debug("%s: no candidates, holding %s", side.name, last)
            if last is not None and self.config.reappend_fallback:
                history.append(last)
            return last

        if last is not None:
            close = [
                c for c in candidates
                if abs(c.rho - last.rho) < self.config.rho_close_threshold
                and abs(c.theta - last.theta) < self.config.theta_close_threshold
            ]
            if close:
                candidates = close

        smoothed = PolarLine(
            float(np.mean([c.rho for c in candidates])),
            float(np.mean([c.theta for c in candidates])),
        )
        history.append(smoothed)
        return smoothed

    def update_all(self, candidates: Mapping[Side, Iterable[PolarLine]]) -> Dict[Side, Optional[PolarLine]]:
        """Update every side; the result always has one entry per Side."""
        return {side: self.update(side, candidates.get(side, ())) for side in Side}

    def reset(self):
        """Clear all history (forces tracking to rebuild from fresh detections)."""
        for history in self._history.values():
            history.clear()


# ============================================================
#              SEGMENT GEOMETRY
# ============================================================

def polar_to_segment(line: PolarLine, extension=4000) -> Segment:
    """
    Turn a polar line into a long cartesian segment.

    Starts at the foot of the perpendicular from the origin and extends
    `extension` pixels in both directions, which is longer than any frame
    diagonal we handle, so cropping always has both ends to work with.
    """
    a = np.cos(line.theta)
    b = np.sin(line.theta)
    x0 = a * line.rho
    y0 = b * line.rho

    xa, ya = int(round(x0 - extension * b)), int(round(y0 + extension * a))
    xb, yb = int(round(x0 + extension * b)), int(round(y0 - extension * a))

    if ya >= yb:
        return Segment(xa, ya, xb, yb)
    return Segment(xb, yb, xa, ya)


def _x_at(segment: Segment, y):
    x1, y1, x2, y2 = segment
    return int(round(x1 + (y - y1) * (x2 - x1) / (y2 - y1)))


def crop_segment(segment: Segment, horizon_y=1150, frame_bottom_y=2200) -> Segment:
    """
    Clamp a segment to the band between the horizon and the frame bottom.

    The upper end is pulled down to horizon_y and the lower end up to
    frame_bottom_y, sliding x along the segment. Segments already inside
    the band, and horizontal ones, come back unchanged.
    """
    x1, y1, x2, y2 = segment
    if y1 == y2:
        return segment

    if y2 < horizon_y:
        x2, y2 = _x_at(segment, horizon_y), horizon_y
    if y1 > frame_bottom_y:
        x1, y1 = _x_at(segment, frame_bottom_y), frame_bottom_y

    return Segment(x1, y1, x2, y2)


def lane_segments(lines: Mapping[Side, Optional[PolarLine]],
                  config: Optional[LaneConfig] = None) -> Dict[Side, Optional[Segment]]:
    """Cropped segment per side; None where the side has no line."""
    config = config or get_default_config()
    segments = {}
    for side in Side:
        line = lines.get(side)
        if line is None:
            segments[side] = None
            continue
        segment = polar_to_segment(line, config.segment_extension)
        segments[side] = crop_segment(segment, config.horizon_y, config.frame_bottom_y)
    return segments


# ============================================================
#              DRAWING & VISUALIZATION
# ============================================================

def draw_lines(image, segments: Iterable[Segment], color=(0, 0, 255), thickness=10):
    """
    Draw segments on image (modified in place).

    Returns:
        image: Same image, for chaining
    """
    for x1, y1, x2, y2 in segments:
        cv2.line(image, (x1, y1), (x2, y2), color, thickness)
    return image


def render_lanes(frame, segments: Mapping[Side, Optional[Segment]],
                 config: Optional[LaneConfig] = None):
    """
    Composite the lane overlay onto a copy of the frame.

    - Both sides present: fill the lane area, then draw both lines
    - One side present: draw that line only
    - Neither: overlay stays black

    Blend is frame_weight * frame + overlay_weight * overlay (not normalized,
    so marked pixels brighten), saturated to the uint8 range.

    Returns:
        result: New BGR frame; the input frame is not modified
    """
    config = config or get_default_config()
    overlay = np.zeros_like(frame)

    left = segments.get(Side.LEFT)
    right = segments.get(Side.RIGHT)

    if left is not None and right is not None:
        pts = np.array([
            [left.x1, left.y1],
            [left.x2, left.y2],
            [right.x2, right.y2],
            [right.x1, right.y1],
        ], dtype=np.int32)
        cv2.fillPoly(overlay, [pts], config.fill_color)

    present = [s for s in (left, right) if s is not None]
    draw_lines(overlay, present, config.line_color, config.line_thickness)

    return cv2.addWeighted(frame, config.frame_weight, overlay, config.overlay_weight, 0)


def draw_lane_change_label(frame, direction: Side, config: Optional[LaneConfig] = None):
    """Write the lane change direction in the middle of the frame (in place)."""
    config = config or get_default_config()
    h, w = frame.shape[:2]

    text = f"LANE CHANGE: {direction.name}"
    font = cv2.FONT_HERSHEY_SIMPLEX

    (text_width, text_height), _ = cv2.getTextSize(
        text, font, config.label_font_scale, config.label_thickness)
    text_x = (w - text_width) // 2
    text_y = (h + text_height) // 2

    cv2.putText(frame, text, (text_x, text_y), font,
                config.label_font_scale, config.label_color, config.label_thickness)
    return frame
