"""
Lane Tracker Configuration
==========================
Single source of truth for every tunable value of the lane tracker.

The defaults are tuned for one camera mounting: a forward-facing dash camera
recording 2160-line footage, where the road horizon sits around y=1150.
Other footage should override the pixel values (horizon_y, frame_bottom_y)
and usually the ROI ratios.

Sections:
1. Region of interest and crop band
2. Preprocessing (contrast, blur, Canny)
3. Hough line extraction
4. Tracking and lane change thresholds
5. Rendering
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional, Tuple

import numpy as np


Color = Tuple[int, int, int]


@dataclass(frozen=True)
class LaneConfig:
    """Named parameters for the whole pipeline.

    Notes:
    - ROI vertices are (x_ratio, y_ratio) pairs in [0, 1], relative to frame size.
    - horizon_y and frame_bottom_y are absolute pixel rows.
    - Angles are in radians, measured from the x-axis (OpenCV Hough convention).
    - Colors are BGR.
    """

    # ROI trapezoid: bottom-left, top-left, top-right, bottom-right
    roi_polygon: Tuple[Tuple[float, float], ...] = (
        (0.00, 1.00),
        (0.42, 0.53),
        (0.58, 0.53),
        (1.00, 1.00),
    )

    # Vertical crop band for rendered segments
    horizon_y: int = 1150
    frame_bottom_y: int = 2200
    segment_extension: int = 4000

    # Preprocessing
    contrast_alpha: float = 1.5
    contrast_beta: float = 10.0
    blur_kernel: int = 5
    canny_low: int = 50
    canny_high: int = 100

    # Hough accumulator
    hough_rho: float = 1.0
    hough_theta: float = np.pi / 180
    hough_threshold: int = 100
    left_angle_max: float = 7 * np.pi / 18
    right_angle_min: float = 11 * np.pi / 18

    # Tracking
    rho_close_threshold: float = 50.0
    theta_close_threshold: float = 0.1
    history_window: int = 60
    reappend_fallback: bool = False

    # Lane change
    lane_change_rho_threshold: float = 170.0
    lane_change_display_frames: int = 60

    # Rendering
    line_color: Color = (0, 0, 255)
    line_thickness: int = 10
    fill_color: Color = (0, 255, 0)
    frame_weight: float = 0.8
    overlay_weight: float = 0.4
    label_color: Color = (0, 0, 255)
    label_font_scale: float = 3.0
    label_thickness: int = 6

    def roi_vertices(self, width: int, height: int) -> np.ndarray:
        """
        Resolve the ROI ratios to pixel vertices for a given frame size.

        Returns:
            np.int32 array shaped (1, N, 2), ready for cv2.fillPoly
        """
        pts = [(int(width * x), int(height * y)) for x, y in self.roi_polygon]
        return np.array([pts], dtype=np.int32)


def get_default_config() -> LaneConfig:
    """Return the default configuration."""
    return LaneConfig()


def validate_config(config: LaneConfig) -> LaneConfig:
    """
    Check value ranges that would otherwise fail deep inside OpenCV.

    Raises:
        ValueError: on the first invalid value found
    """
    if len(config.roi_polygon) < 3:
        raise ValueError("roi_polygon needs at least 3 vertices")
    for x, y in config.roi_polygon:
        if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
            raise ValueError(f"roi_polygon vertex out of [0, 1]: {(x, y)}")
    if config.horizon_y >= config.frame_bottom_y:
        raise ValueError("horizon_y must be above (smaller than) frame_bottom_y")
    if config.blur_kernel <= 0 or config.blur_kernel % 2 == 0:
        raise ValueError("blur_kernel must be a positive odd number")
    if not 0.0 <= config.left_angle_max < config.right_angle_min <= np.pi:
        raise ValueError("angle ranges must satisfy 0 <= left_angle_max < right_angle_min <= pi")
    if not isinstance(config.history_window, int) or isinstance(config.history_window, bool):
        raise ValueError("history_window must be an integer")
    if config.history_window <= 0:
        raise ValueError("history_window must be positive")
    if config.segment_extension <= 0:
        raise ValueError("segment_extension must be positive")
    if config.line_thickness <= 0:
        raise ValueError("line_thickness must be positive")
    if config.lane_change_display_frames <= 0:
        raise ValueError("lane_change_display_frames must be positive")
    if config.hough_threshold <= 0:
        raise ValueError("hough_threshold must be positive")
    return config


def resolve_config(overrides: Optional[Dict[str, Any]] = None,
                   base: Optional[LaneConfig] = None) -> LaneConfig:
    """
    Return defaults (or `base`) with optional overrides applied and validated.

    Unknown keys and None values are ignored, so CLI tools can pass their parsed
    arguments straight through.

    Example:
        config = resolve_config({"horizon_y": 400, "frame_bottom_y": 720})
    """
    config = base if base is not None else get_default_config()
    if overrides:
        known = {f.name for f in fields(LaneConfig)}
        changes = {k: v for k, v in overrides.items() if k in known and v is not None}
        config = replace(config, **changes)
    return validate_config(config)
