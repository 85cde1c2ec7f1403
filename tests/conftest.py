import cv2
import numpy as np
import pytest

from lane_config import resolve_config


@pytest.fixture
def small_config():
    """Config scaled for 720-line test frames."""
    return resolve_config({"horizon_y": 400, "frame_bottom_y": 720})


@pytest.fixture
def lane_frame():
    """Dark road with two bright lane markings converging towards the horizon."""
    frame = np.full((720, 1280, 3), 40, dtype=np.uint8)
    cv2.line(frame, (200, 719), (560, 400), (255, 255, 255), 8)
    cv2.line(frame, (1080, 719), (720, 400), (255, 255, 255), 8)
    return frame
