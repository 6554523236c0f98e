#!/usr/bin/env python3
"""
Metrics storage module for saving joint angles and keypoints to CSV files.
"""

import csv
from pathlib import Path

from physio_pose.pose.keypoints import KEYPOINT_NAMES, Pose, SideAngles


def _fmt(value: float | None, digits: int = 2) -> str:
    # Absent measurements are written as empty cells, never as 0
    return "" if value is None else f"{value:.{digits}f}"


class AngleLogger:
    """Handle writing of per-frame joint angles and keypoints to CSV files."""

    def __init__(self, session_name: str, output_dir: str = "output", joints=("shoulder",)):
        """
        Initialize the angle logger.

        Args:
            session_name: Name of the session (file stem of the outputs)
            output_dir: Directory to save output files
            joints: Joints whose left/right angles get a column each
        """
        self.session_name = Path(session_name).stem
        self.output_dir = Path(output_dir)
        self.joints = tuple(joints)

        # Create output directory if it doesn't exist
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.angles_file = self.output_dir / f"{self.session_name}_angles.csv"
        self.landmarks_file = self.output_dir / f"{self.session_name}_landmarks.csv"

        self._init_files()

    def _init_files(self):
        """Initialize CSV files with headers."""
        self.angles_fp = open(self.angles_file, "w", newline="")
        self.angles_writer = csv.writer(self.angles_fp)
        header = ["frame_number", "timestamp_ms", "pose_score"]
        for joint in self.joints:
            header += [f"left_{joint}", f"right_{joint}"]
        self.angles_writer.writerow(header)

        self.landmarks_fp = open(self.landmarks_file, "w", newline="")
        self.landmarks_writer = csv.writer(self.landmarks_fp)
        self.landmarks_writer.writerow(
            ["frame_number", "timestamp_ms", "landmark_index", "landmark_name", "x", "y", "score"]
        )

    def log_angles(
        self,
        frame_number: int,
        timestamp_ms: float,
        pose_score: float | None,
        joint_angles: dict[str, SideAngles],
    ):
        """
        Log joint angle measurements for a frame.

        Args:
            frame_number: Frame sequence number
            timestamp_ms: Timestamp in milliseconds
            pose_score: Overall pose score, None if no pose was found
            joint_angles: Mapping joint name -> SideAngles
        """
        row = [frame_number, f"{timestamp_ms:.2f}", _fmt(pose_score, 4)]
        for joint in self.joints:
            angles = joint_angles.get(joint, SideAngles())
            row += [_fmt(angles.left), _fmt(angles.right)]

        self.angles_writer.writerow(row)

        # Flush to ensure data is written
        self.angles_fp.flush()

    def log_landmarks(self, frame_number: int, timestamp_ms: float, pose: Pose):
        """Log all 17 keypoints of a pose."""
        for idx, kp in enumerate(pose.keypoints):
            self.landmarks_writer.writerow(
                [
                    frame_number,
                    f"{timestamp_ms:.2f}",
                    idx,
                    KEYPOINT_NAMES[idx],
                    f"{kp.x:.6f}",
                    f"{kp.y:.6f}",
                    f"{kp.score:.6f}",
                ]
            )

        self.landmarks_fp.flush()

    def close(self):
        """Close all open files."""
        self.angles_fp.close()
        self.landmarks_fp.close()
