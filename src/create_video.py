"""
Lane Tracking Video Runner
==========================
Runs the full pipeline frame by frame and writes the annotated video:

    preprocess -> candidates -> track -> render -> lane change label

Frames are processed strictly in order; the tracker and lane change
detector carry state from one frame to the next.
"""

import argparse
import itertools
import logging
import os
import sys
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import cv2
import numpy as np

from lane_change import LaneChangeDetector
from lane_config import LaneConfig, get_default_config, resolve_config
from line_detection import (
    LaneLineTracker,
    draw_lane_change_label,
    lane_segments,
    render_lanes,
)
from pipeline import Side, extract_line_candidates, preprocess_frame


LOG = logging.getLogger(__name__)


class LaneTrackerError(Exception):
    """Base class for fatal pipeline errors."""


class VideoIOError(LaneTrackerError):
    """Input video or output writer could not be opened."""


class FrameError(LaneTrackerError):
    """A frame is not a BGR uint8 image of the stream's size."""


@dataclass
class ProcessingSummary:
    frames: int = 0
    detections: int = 0
    lane_changes: int = 0
    output_path: Optional[str] = None


# ============================================================
#                  PER-FRAME PIPELINE
# ============================================================

class LanePipeline:
    """
    Owns all cross-frame state (tracker + lane change detector) and turns
    one input frame into one annotated output frame.
    """

    def __init__(self, config: Optional[LaneConfig] = None):
        self.config = config or get_default_config()
        self.tracker = LaneLineTracker(self.config)
        self.detector = LaneChangeDetector(self.tracker, self.config)
        self.frame_shape = None

        # Results of the most recent frame, for callers that want them
        self.lines = {}
        self.segments = {}
        self.state = self.detector.state

    def _check_frame(self, frame):
        if not isinstance(frame, np.ndarray) or frame.ndim != 3 or frame.shape[2] != 3 \
                or frame.dtype != np.uint8:
            raise FrameError(f"expected a BGR uint8 image, got {getattr(frame, 'shape', type(frame))}")
        if self.frame_shape is None:
            self.frame_shape = frame.shape
        elif frame.shape != self.frame_shape:
            raise FrameError(f"frame size changed from {self.frame_shape} to {frame.shape}")

    def process_frame(self, frame):
        """Run every stage on one frame and return the composited result."""
        self._check_frame(frame)

        edges = preprocess_frame(frame, self.config)
        candidates = extract_line_candidates(edges, self.config)

        self.lines = self.tracker.update_all(candidates)
        self.segments = lane_segments(self.lines, self.config)
        result = render_lanes(frame, self.segments, self.config)

        left = self.segments[Side.LEFT]
        self.state = self.detector.update(self.lines, left.x1 if left is not None else None)
        if self.state.active:
            draw_lane_change_label(result, self.state.direction, self.config)

        return result

    @property
    def both_lanes(self) -> bool:
        return all(self.lines.get(side) is not None for side in Side)


def run_pipeline(frames: Iterable[np.ndarray],
                 sink: Callable[[np.ndarray], None],
                 config: Optional[LaneConfig] = None,
                 max_frames: Optional[int] = None) -> ProcessingSummary:
    """
    Process frames in order, handing every result to `sink`.

    Stops at the end of `frames` or after `max_frames`. A FrameError aborts
    the run.
    """
    pipeline = LanePipeline(config)
    summary = ProcessingSummary()

    for frame in itertools.islice(frames, max_frames):
        sink(pipeline.process_frame(frame))
        summary.frames += 1
        if pipeline.both_lanes:
            summary.detections += 1

        if summary.frames % 100 == 0:
            LOG.info("Processed %d frames (%d detections)", summary.frames, summary.detections)

    summary.lane_changes = pipeline.detector.lane_changes
    return summary


# ============================================================
#                    VIDEO PROCESSING
# ============================================================

def read_frames(cap):
    """Yield frames from an opened cv2.VideoCapture until the stream ends."""
    while True:
        ret, frame = cap.read()
        if not ret:
            break
        yield frame


def open_writer(output_path, fps, width, height):
    """Open a video writer, preferring XVID and falling back to mp4v."""
    for codec in ("XVID", "mp4v"):
        out = cv2.VideoWriter(output_path, cv2.VideoWriter_fourcc(*codec), fps, (width, height))
        if out.isOpened():
            return out
        LOG.warning("%s writer failed for %s", codec, output_path)
    raise VideoIOError(f"Cannot create video writer: {output_path}")


def process_video(video_path, output_path, config: Optional[LaneConfig] = None,
                  max_frames=None, start_frame=0) -> ProcessingSummary:
    """
    Run the lane tracking pipeline on a video and save the annotated result.

    Output keeps the input resolution and frame rate.

    Args:
        video_path: Path to input video
        output_path: Path to save output video
        config: Pipeline configuration (defaults if None)
        max_frames: Limit number of frames (None = all)
        start_frame: Frame to start from (default: 0)

    Raises:
        VideoIOError: input cannot be opened or writer cannot be created
        FrameError: a decoded frame is malformed
    """
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise VideoIOError(f"Could not open video file: {video_path}")

    try:
        fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))

        LOG.info("Input: %s", video_path)
        LOG.info("Resolution: %dx%d, FPS: %.2f, frames: %d", width, height, fps, total_frames)

        if start_frame > 0:
            cap.set(cv2.CAP_PROP_POS_FRAMES, start_frame)
            LOG.info("Skipping to frame %d", start_frame)

        out = open_writer(output_path, fps, width, height)
        try:
            summary = run_pipeline(read_frames(cap), out.write, config, max_frames)
        finally:
            out.release()
    finally:
        cap.release()

    summary.output_path = output_path
    LOG.info("Frames processed: %d, detections: %d, lane changes: %d",
             summary.frames, summary.detections, summary.lane_changes)
    LOG.info("Output saved to: %s", output_path)
    return summary


# ============================================================
#                     COMMAND LINE
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Track lane lines in a dash camera video.")

    p.add_argument("--video", required=True, help="Input video path")
    p.add_argument(
        "--output",
        default="",
        help="Output video path. If empty, uses output/<input_basename>_lanes.avi",
    )
    p.add_argument("--max-frames", type=int, default=None)
    p.add_argument("--start-frame", type=int, default=0)

    # Geometry / thresholds (defaults come from LaneConfig)
    p.add_argument("--horizon-y", type=int, default=None)
    p.add_argument("--frame-bottom-y", type=int, default=None)
    p.add_argument("--history-window", type=int, default=None)
    p.add_argument("--hough-threshold", type=int, default=None)
    p.add_argument("--lane-change-threshold", dest="lane_change_rho_threshold",
                   type=float, default=None)
    p.add_argument(
        "--reappend-fallback",
        action="store_true",
        default=None,
        help="Append the held line to history on frames without candidates.",
    )

    p.add_argument("--log-level", default="INFO",
                   choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = resolve_config(vars(args))
    except ValueError as exc:
        LOG.error("Invalid configuration: %s", exc)
        return 2

    output_path = args.output
    if not output_path:
        in_base = os.path.splitext(os.path.basename(args.video))[0]
        output_path = os.path.join("output", f"{in_base}_lanes.avi")
    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    try:
        process_video(args.video, output_path, config,
                      max_frames=args.max_frames, start_frame=args.start_frame)
    except LaneTrackerError as exc:
        LOG.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
