#!/usr/bin/env python3
"""
Movement analysis over a stream of joint angles.

Classifies frame-to-frame angle changes, keeps a short moving average per side
and tracks the session's range of motion.
"""

from dataclasses import dataclass

import numpy as np

from physio_pose.pose.keypoints import SideAngles

MOVEMENT_FLEXION = "flexion"
MOVEMENT_ABDUCTION = "abduction"
MOVEMENT_UNKNOWN = "unknown"


@dataclass(frozen=True)
class ShoulderMovement:
    side: str
    angle: float
    movement_type: str
    range: float  # absolute change since the previous angle, degrees


def analyze_movement(
    current_angle: float | None,
    previous_angle: float | None,
    side: str,
    threshold: float = 10.0,
) -> ShoulderMovement | None:
    """
    Classify the change between two consecutive angles of one side.

    An increase of more than `threshold` degrees counts as flexion, a decrease
    of more than `threshold` as abduction. This is a coarse 2D heuristic.

    Returns:
        ShoulderMovement, or None when there is no current angle
    """
    if current_angle is None:
        return None

    movement_type = MOVEMENT_UNKNOWN
    change = 0.0

    if previous_angle is not None:
        change = abs(current_angle - previous_angle)
        if current_angle > previous_angle + threshold:
            movement_type = MOVEMENT_FLEXION
        elif current_angle < previous_angle - threshold:
            movement_type = MOVEMENT_ABDUCTION

    return ShoulderMovement(
        side=side, angle=current_angle, movement_type=movement_type, range=change
    )


class MovementAnalyzer:
    """Per-side movement state for one assessment session."""

    def __init__(self, window_size: int = 3, threshold: float = 10.0):
        """
        Args:
            window_size: Window size for the moving average
            threshold: Degrees of change needed to classify a movement
        """
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size}")

        self.window_size = window_size
        self.threshold = threshold
        self.previous = {"left": None, "right": None}
        self.buffers = {"left": [], "right": []}
        self.min_angle = {"left": None, "right": None}
        self.max_angle = {"left": None, "right": None}

    def update(self, angles: SideAngles) -> dict[str, ShoulderMovement | None]:
        """Feed one frame's angles. Absent sides leave the state untouched."""
        movements = {}
        for side in ("left", "right"):
            angle = angles.get(side)
            movements[side] = analyze_movement(
                angle, self.previous[side], side, self.threshold
            )
            if angle is None:
                continue

            self.previous[side] = angle
            self._update_buffer(self.buffers[side], angle)

            if self.min_angle[side] is None or angle < self.min_angle[side]:
                self.min_angle[side] = angle
            if self.max_angle[side] is None or angle > self.max_angle[side]:
                self.max_angle[side] = angle

        return movements

    def _update_buffer(self, buffer: list[float], value: float):
        buffer.append(value)

        # Keep only the last window_size values
        if len(buffer) > self.window_size:
            buffer.pop(0)

    def moving_average(self, side: str) -> float | None:
        buffer = self.buffers[side]
        if not buffer:
            return None
        return float(np.mean(buffer))

    def range_of_motion(self, side: str) -> float | None:
        """Max minus min angle seen this session, or None if never measured."""
        if self.min_angle[side] is None:
            return None
        return self.max_angle[side] - self.min_angle[side]

    def summary(self) -> dict[str, dict[str, float | None]]:
        return {
            side: {
                "min": self.min_angle[side],
                "max": self.max_angle[side],
                "range": self.range_of_motion(side),
                "moving_average": self.moving_average(side),
            }
            for side in ("left", "right")
        }
