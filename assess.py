#!/usr/bin/env python3
"""
Live joint-angle assessment.
Runs the pose pipeline on a camera or video file and records shoulder angles.
"""

import argparse
import asyncio
import logging
import time
from functools import partial
from pathlib import Path

import cv2
import numpy as np

from physio_pose.config import load_config
from physio_pose.errors import InitializationError
from physio_pose.metrics.calculator import JointAngleCalculator
from physio_pose.metrics.movement import MovementAnalyzer
from physio_pose.metrics.storage import AngleLogger
from physio_pose.pipeline.admission import create_admission_controller
from physio_pose.pipeline.orchestrator import PipelineResult, PosePipeline
from physio_pose.pipeline.sources import VideoCaptureSource
from physio_pose.pose.detector_handle import (
    DetectorHandle,
    create_pose_estimator,
    estimator_class,
)
from physio_pose.preprocessing.preprocessor import Preprocessor
from physio_pose.projection import DisplaySize
from physio_pose.visualization.overlay import draw_angles, draw_skeleton
from physio_pose.visualization.plotter import AnglePlotter


def parse_args():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Measure shoulder flexion angles from a live camera or video"
    )
    parser.add_argument(
        "--source", type=str, default="0", help="Camera index or video file path"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/default.yaml"),
        help="Configuration file path",
    )
    parser.add_argument(
        "--pose-detector",
        type=str,
        default=None,
        choices=["yolo", "mediapipe"],
        help="Pose estimation engine (default: from config)",
    )
    parser.add_argument(
        "--mode",
        type=str,
        default=None,
        choices=["interval", "stride"],
        help="Frame admission mode (default: from config)",
    )
    parser.add_argument(
        "--save_dir", type=str, default="output", help="Output directory for all files"
    )
    parser.add_argument(
        "--session", type=str, default=None, help="Session name used for output files"
    )
    parser.add_argument(
        "--no-preview", action="store_true", help="Disable live preview window"
    )
    parser.add_argument(
        "--max-frames", type=int, default=None, help="Stop after this many frames"
    )
    parser.add_argument(
        "--frame-timeout",
        type=float,
        default=None,
        help="Per-frame processing ceiling in seconds",
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO", help="Logging level (DEBUG, INFO, ...)"
    )
    return parser.parse_args()


def parse_source(source: str) -> int | str:
    """Camera indices are given as plain integers."""
    return int(source) if source.isdigit() else source


class AssessmentSink:
    """Receives published results: CSV logging, movement analysis, preview."""

    def __init__(
        self,
        logger: AngleLogger,
        analyzer: MovementAnalyzer,
        display: DisplaySize,
        preview: bool,
        on_quit=None,
    ):
        self.logger = logger
        self.analyzer = analyzer
        self.display = display
        self.preview = preview
        self.on_quit = on_quit
        self.t0 = time.monotonic()

    def __call__(self, result: PipelineResult):
        if result.timestamp_s is not None:
            timestamp_ms = result.timestamp_s * 1000
        else:
            timestamp_ms = (time.monotonic() - self.t0) * 1000

        pose_score = result.pose.score if result.pose is not None else None
        self.logger.log_angles(result.sequence, timestamp_ms, pose_score, result.joint_angles)
        if result.pose is not None:
            self.logger.log_landmarks(result.sequence, timestamp_ms, result.pose)

        self.analyzer.update(result.shoulder_angles)

        if self.preview:
            self._show(result)

    def _show(self, result: PipelineResult):
        canvas = np.zeros((self.display.height, self.display.width, 3), dtype=np.uint8)
        draw_skeleton(canvas, result.display_pose(self.display))
        draw_angles(canvas, result.shoulder_angles)
        cv2.imshow("Shoulder Assessment", canvas)
        if cv2.waitKey(1) & 0xFF == ord("q"):
            print("\nAssessment stopped by user.")
            if self.on_quit is not None:
                self.on_quit()


def build_pipeline(cfg: dict, sink) -> PosePipeline:
    """Wire the pipeline components from configuration."""
    detector_cfg = dict(cfg["detector"])
    detector_cfg["target_size"] = cfg["preprocess"]["target_size"]

    detector = DetectorHandle(
        partial(create_pose_estimator, detector_cfg["type"], detector_cfg)
    )

    return PosePipeline(
        detector=detector,
        admission=create_admission_controller(cfg["admission"]),
        preprocessor=Preprocessor(
            target_size=cfg["preprocess"]["target_size"],
            channel_order=estimator_class(detector_cfg["type"]).channel_order,
        ),
        calculator=JointAngleCalculator(
            joints=cfg["angles"]["joints"], threshold=cfg["angles"]["threshold"]
        ),
        sink=sink,
        display=DisplaySize(cfg["display"]["width"], cfg["display"]["height"]),
    )


def print_summary(analyzer: MovementAnalyzer):
    """Print the session's range of motion per side."""
    print("\n=== Range of Motion ===")
    for side, values in analyzer.summary().items():
        if values["range"] is None:
            print(f"  {side.capitalize()}: no measurement")
            continue
        print(
            f"  {side.capitalize()}: {values['min']:.1f} - {values['max']:.1f} deg "
            f"(range {values['range']:.1f} deg)"
        )


async def run_assessment(args, cfg: dict) -> int:
    """Run one assessment session. Returns a process exit code."""
    source_id = parse_source(args.source)
    session = args.session or (
        Path(source_id).stem if isinstance(source_id, str) else f"camera{source_id}"
    )
    save_dir = Path(args.save_dir)

    angle_logger = AngleLogger(session, output_dir=str(save_dir), joints=cfg["angles"]["joints"])
    analyzer = MovementAnalyzer(
        window_size=cfg["metrics"]["window_size"],
        threshold=cfg["metrics"]["movement_threshold"],
    )
    display = DisplaySize(cfg["display"]["width"], cfg["display"]["height"])
    sink = AssessmentSink(angle_logger, analyzer, display, preview=not args.no_preview)

    pipeline = build_pipeline(cfg, sink)
    sink.on_quit = pipeline.stop

    source = VideoCaptureSource(source_id)
    if not source.start():
        print(f"Error: could not open source '{args.source}'")
        angle_logger.close()
        return 1

    print(f"Loading {cfg['detector']['type']} pose estimator...")
    try:
        processed = await pipeline.run(
            source, max_frames=args.max_frames, frame_timeout=args.frame_timeout
        )
    except InitializationError as e:
        print(f"Error: {e}")
        return 1
    finally:
        source.stop()
        pipeline.detector.dispose()
        angle_logger.close()
        if not args.no_preview:
            cv2.destroyAllWindows()

    stats = pipeline.admission.stats()
    print("\nAssessment complete!")
    print(f"  Frames processed: {processed}")
    print(f"  Frames dropped at admission: {stats['dropped']}")
    print(f"  Frames overwritten before pull: {source.overwritten}")
    print(f"  Failed frames: {pipeline.stats.failed}")
    print(f"  Angles: {angle_logger.angles_file}")
    print(f"  Landmarks: {angle_logger.landmarks_file}")
    print_summary(analyzer)

    if pipeline.stats.published > 0:
        print("\nGenerating angles graph...")
        AnglePlotter().generate_offline_graph(
            str(angle_logger.angles_file), str(save_dir / f"{session}_angles_graph.png")
        )

    return 0


def main():
    """Main entry point."""
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = load_config(args.config if args.config.exists() else None)
    if args.pose_detector:
        cfg["detector"]["type"] = args.pose_detector
    if args.mode:
        cfg["admission"]["mode"] = args.mode

    return asyncio.run(run_assessment(args, cfg))


if __name__ == "__main__":
    exit(main())
