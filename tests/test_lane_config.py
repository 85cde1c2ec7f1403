import numpy as np
import pytest

from lane_config import LaneConfig, get_default_config, resolve_config


def test_defaults_match_tuned_values():
    config = get_default_config()
    assert config.horizon_y == 1150
    assert config.frame_bottom_y == 2200
    assert config.segment_extension == 4000
    assert config.history_window == 60
    assert config.lane_change_display_frames == 60
    assert config.lane_change_rho_threshold == 170
    assert config.left_angle_max == pytest.approx(7 * np.pi / 18)
    assert config.right_angle_min == pytest.approx(11 * np.pi / 18)
    assert config.reappend_fallback is False


def test_overrides_skip_unknown_keys_and_none():
    config = resolve_config({"horizon_y": 300, "frame_bottom_y": None, "video": "x.mp4"})
    assert config.horizon_y == 300
    assert config.frame_bottom_y == 2200


def test_overrides_do_not_mutate_base():
    base = LaneConfig()
    resolve_config({"history_window": 10}, base=base)
    assert base.history_window == 60


@pytest.mark.parametrize("overrides", [
    {"history_window": 0},
    {"blur_kernel": 4},
    {"horizon_y": 800, "frame_bottom_y": 700},
    {"roi_polygon": ((0.0, 1.0), (1.0, 1.0))},
    {"roi_polygon": ((0.0, 1.0), (0.5, -0.1), (1.0, 1.0))},
    {"left_angle_max": 2.0, "right_angle_min": 1.0},
    {"lane_change_display_frames": 0},
    {"segment_extension": 0},
    {"segment_extension": -4000},
    {"line_thickness": 0},
    {"history_window": 2.5},
    {"history_window": True},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        resolve_config(overrides)


def test_roi_vertices_scale_with_frame():
    config = LaneConfig(roi_polygon=((0.0, 1.0), (0.5, 0.5), (1.0, 1.0)))
    pts = config.roi_vertices(200, 100)
    assert pts.shape == (1, 3, 2)
    assert pts.dtype == np.int32
    assert pts[0].tolist() == [[0, 100], [100, 50], [200, 100]]
