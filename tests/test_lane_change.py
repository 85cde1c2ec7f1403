import pytest

from lane_change import LaneChangeDetector, LaneChangeState
from line_detection import LaneLineTracker
from pipeline import PolarLine, Side


STEADY = {Side.LEFT: PolarLine(100, 0.6), Side.RIGHT: PolarLine(900, 2.4)}
JUMP = {Side.LEFT: PolarLine(400, 0.6), Side.RIGHT: PolarLine(500, 2.4)}


def _seed(tracker, lines=STEADY, frames=10):
    for _ in range(frames):
        tracker.update_all({side: [line] for side, line in lines.items()})


@pytest.fixture
def tracker():
    tracker = LaneLineTracker()
    _seed(tracker)
    return tracker


@pytest.fixture
def detector(tracker):
    return LaneChangeDetector(tracker)


def test_starts_inactive(detector):
    assert detector.state == LaneChangeState(False, None, 0)


def test_steady_lines_do_not_fire(detector):
    for _ in range(100):
        state = detector.update(STEADY, left_x1=300)
    assert not state.active
    assert detector.lane_changes == 0


def test_jump_on_both_sides_fires(detector, tracker):
    state = detector.update(JUMP, left_x1=300)

    assert state == LaneChangeState(True, Side.RIGHT, 0)
    assert detector.lane_changes == 1
    assert tracker.history(Side.LEFT) == ()
    assert tracker.history(Side.RIGHT) == ()
    assert len(detector.x_history) == 0


def test_direction_left_when_left_line_moves_left(detector):
    for _ in range(5):
        detector.update(STEADY, left_x1=500)

    state = detector.update(JUMP, left_x1=300)

    assert state.direction is Side.LEFT


def test_direction_right_when_left_line_moves_right(detector):
    for _ in range(5):
        detector.update(STEADY, left_x1=500)

    state = detector.update(JUMP, left_x1=700)

    assert state.direction is Side.RIGHT


def test_single_side_jump_does_not_fire(detector):
    lines = {Side.LEFT: PolarLine(400, 0.6), Side.RIGHT: PolarLine(900, 2.4)}
    assert not detector.update(lines, left_x1=300).active


def test_missing_side_does_not_fire(detector):
    lines = {Side.LEFT: PolarLine(400, 0.6), Side.RIGHT: None}
    assert not detector.update(lines, left_x1=300).active


def test_empty_history_does_not_fire():
    detector = LaneChangeDetector(LaneLineTracker())
    assert not detector.update(JUMP, left_x1=300).active


def test_threshold_is_strict(detector):
    lines = {Side.LEFT: PolarLine(270, 0.6), Side.RIGHT: PolarLine(730, 2.4)}
    assert not detector.update(lines, left_x1=300).active


def test_latched_while_active(detector, tracker):
    detector.update(JUMP, left_x1=300)

    for shown in range(1, 30):
        _seed(tracker, frames=3)
        state = detector.update(JUMP, left_x1=9999)
        assert state == LaneChangeState(True, Side.RIGHT, shown)

    assert detector.lane_changes == 1


def test_label_expires_after_display_frames(detector):
    detector.update(JUMP, left_x1=300)

    for _ in range(59):
        assert detector.update(STEADY, left_x1=300).active

    state = detector.update(STEADY, left_x1=300)
    assert state == LaneChangeState(False, None, 0)


def test_can_fire_again_after_expiry(detector, tracker):
    detector.update(JUMP, left_x1=300)
    for _ in range(60):
        detector.update(STEADY, left_x1=300)

    _seed(tracker)
    assert detector.update(JUMP, left_x1=300).active
    assert detector.lane_changes == 2


def test_x_history_is_a_sliding_window(detector):
    for x in range(200):
        detector.update(STEADY, left_x1=x)
    assert len(detector.x_history) == 60
    assert detector.x_history[-1] == 199


def test_reset_returns_to_inactive(detector):
    detector.update(JUMP, left_x1=300)
    detector.reset()
    assert detector.state == LaneChangeState(False, None, 0)
