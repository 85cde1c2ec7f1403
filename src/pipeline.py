"""
Lane Tracking Pipeline - Pre-processing and Line Candidates
============================================================
This module contains the first part of the pipeline:
1. Grayscale + Contrast
2. Edge Detection (Canny)
3. ROI Masking
4. Line Candidates (Hough Transform, polar form)

Everything after Hough is in line_detection.py
"""

import enum
import logging
from typing import Dict, List, NamedTuple, Optional

import cv2
import numpy as np

from lane_config import LaneConfig, get_default_config


LOG = logging.getLogger(__name__)


class Side(enum.Enum):
    """Which lane boundary a line belongs to."""
    LEFT = "left"
    RIGHT = "right"


class PolarLine(NamedTuple):
    """Line x*cos(theta) + y*sin(theta) = rho, origin at the top-left corner."""
    rho: float
    theta: float


# ============================================================
#                1. GRAYSCALE + CONTRAST
# ============================================================

def to_grayscale(frame):
    """Desaturate a BGR frame to a single intensity channel."""
    return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)


def adjust_contrast(gray, alpha=1.5, beta=10.0):
    """
    Linear contrast/brightness stretch: out = clip(alpha * in + beta).

    Bright lane paint saturates towards 255 while asphalt stays mid-gray,
    which widens the gradient Canny sees at the marking borders.
    """
    return cv2.convertScaleAbs(gray, alpha=alpha, beta=beta)


# ============================================================
#                2. EDGE DETECTION (CANNY)
# ============================================================

def apply_canny(gray, low_threshold=50, high_threshold=100, blur_kernel=5):
    """
    Apply Canny edge detection after a Gaussian blur.

    Args:
        gray: Single channel image (0-255)
        low_threshold: Lower threshold for hysteresis (default: 50)
        high_threshold: Upper threshold for hysteresis (default: 100)
        blur_kernel: Gaussian blur kernel size, must be odd (default: 5)

    Returns:
        edges: Binary edge map (255 = edge, 0 = no edge)
    """
    blurred = cv2.GaussianBlur(gray, (blur_kernel, blur_kernel), 0)
    return cv2.Canny(blurred, low_threshold, high_threshold)


# ============================================================
#                    3. ROI MASKING
# ============================================================

def apply_roi_mask(image, pts):
    """
    Zero every pixel outside the ROI polygon.

    Args:
        image: Single channel or BGR image
        pts: np.int32 polygon array shaped (1, N, 2)

    Returns:
        masked: New image, black outside the ROI
    """
    mask = np.zeros(image.shape[:2], dtype=np.uint8)
    cv2.fillPoly(mask, pts, 255)
    return cv2.bitwise_and(image, image, mask=mask)


def preprocess_frame(frame, config: Optional[LaneConfig] = None):
    """
    Convert a BGR frame into a binary edge map restricted to the road ROI.

    The input frame is left untouched.

    Returns:
        edges: uint8 array shaped (H, W), values 0/255
    """
    config = config or get_default_config()
    h, w = frame.shape[:2]

    gray = to_grayscale(frame)
    gray = adjust_contrast(gray, config.contrast_alpha, config.contrast_beta)
    edges = apply_canny(gray, config.canny_low, config.canny_high, config.blur_kernel)
    return apply_roi_mask(edges, config.roi_vertices(w, h))


# ============================================================
#                4. LINE CANDIDATES (HOUGH)
# ============================================================

def detect_lines_hough(edges, min_theta, max_theta,
                       rho=1.0,
                       theta=np.pi / 180,
                       threshold=100) -> List[PolarLine]:
    """
    Detect infinite lines with the standard Hough transform, restricted to
    an angle range.

    Args:
        edges: Binary edge map
        min_theta, max_theta: Allowed angle range of the line normal (radians)
        rho: Distance resolution in pixels
        theta: Angle resolution in radians (np.pi/180 = 1 degree)
        threshold: Minimum accumulator votes to report a line

    Returns:
        List of PolarLine in OpenCV's order (strongest first); empty if none
    """
    lines = cv2.HoughLines(
        edges,
        rho,
        theta,
        threshold,
        min_theta=min_theta,
        max_theta=max_theta,
    )
    if lines is None:
        return []
    return [PolarLine(float(r), float(t)) for r, t in lines[:, 0]]


def extract_line_candidates(edges, config: Optional[LaneConfig] = None) -> Dict[Side, List[PolarLine]]:
    """
    Run the Hough transform once per side.

    Left lines lean one way (normal angle in [0, left_angle_max]), right lines
    the other (normal angle in [right_angle_min, pi]). Near-horizontal lines
    fall between the two ranges and are never reported.
    """
    config = config or get_default_config()
    ranges = {
        Side.LEFT: (0.0, config.left_angle_max),
        Side.RIGHT: (config.right_angle_min, np.pi),
    }

    candidates = {}
    for side, (lo, hi) in ranges.items():
        candidates[side] = detect_lines_hough(
            edges, lo, hi,
            rho=config.hough_rho,
            theta=config.hough_theta,
            threshold=config.hough_threshold,
        )

    LOG.debug("candidates: left=%d right=%d",
              len(candidates[Side.LEFT]), len(candidates[Side.RIGHT]))
    return candidates
