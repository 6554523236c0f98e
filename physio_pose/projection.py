#!/usr/bin/env python3
"""
Coordinate mapping between model, source and display pixel grids.

model space:   [0, target_size) x [0, target_size), the estimator's input tensor
source space:  the captured frame's pixel grid
display space: the rendering surface

The preprocessor resizes without cropping, so the aspect ratio is not
preserved and every mapping scales each axis independently.
"""

from dataclasses import dataclass
from typing import Sequence

from physio_pose.pose.keypoints import CoordinateSpace, Pose


@dataclass(frozen=True)
class FrameGeometry:
    """Source frame size and the square model input it was resized to."""

    source_width: int
    source_height: int
    target_size: int

    @property
    def scale_x(self) -> float:
        return self.source_width / self.target_size

    @property
    def scale_y(self) -> float:
        return self.source_height / self.target_size


@dataclass(frozen=True)
class DisplaySize:
    """Rendering surface size in pixels."""

    width: int
    height: int


def display_scale(geometry: FrameGeometry, display: DisplaySize) -> tuple[float, float]:
    """Scale factors from source pixels to display pixels, per axis."""
    sx = display.width / geometry.source_width if geometry.source_width > 0 else 1.0
    sy = display.height / geometry.source_height if geometry.source_height > 0 else 1.0
    return sx, sy


def is_normalized(estimates: Sequence[Sequence[float]]) -> bool:
    """
    Decide whether a whole estimate uses normalized [0, 1] coordinates.

    The check is made once per pose: the estimate counts as normalized only if
    every keypoint has 0 <= x <= 1 and 0 <= y <= 1. A coordinate of exactly 1.0
    is treated as normalized. Deciding per keypoint would let a pixel-space
    point near the tensor origin be rescaled on its own.
    """
    if len(estimates) == 0:
        return False
    return all(0.0 <= e[1] <= 1.0 and 0.0 <= e[2] <= 1.0 for e in estimates)


def estimates_to_model_pose(
    estimates: Sequence[Sequence[float]],
    target_size: int,
    contract: str | None = None,
) -> Pose:
    """
    Convert raw (index, x, y, score) estimates into a MODEL-space pose.

    Args:
        estimates: Raw estimator output
        target_size: Side length of the square model input
        contract: "normalized", "pixels" or None to apply the heuristic
    """
    if contract == "normalized":
        normalized = True
    elif contract == "pixels":
        normalized = False
    elif contract is None:
        normalized = is_normalized(estimates)
    else:
        raise ValueError(f"Unknown coordinate contract: {contract}")

    factor = float(target_size) if normalized else 1.0
    scaled = [(idx, x * factor, y * factor, score) for idx, x, y, score in estimates]
    return Pose.from_estimates(scaled, space=CoordinateSpace.MODEL)


def _scale_pose(
    pose: Pose,
    expected: CoordinateSpace,
    target: CoordinateSpace,
    sx: float,
    sy: float,
) -> Pose:
    if pose.space != expected:
        raise ValueError(f"Expected pose in {expected.value} space, got {pose.space.value}")
    return Pose(
        keypoints=tuple(kp.moved(kp.x * sx, kp.y * sy, target) for kp in pose.keypoints),
        score=pose.score,
    )


def model_to_source(pose: Pose, geometry: FrameGeometry) -> Pose:
    """Map a MODEL-space pose onto the source frame."""
    return _scale_pose(
        pose,
        CoordinateSpace.MODEL,
        CoordinateSpace.SOURCE,
        geometry.scale_x,
        geometry.scale_y,
    )


def source_to_model(pose: Pose, geometry: FrameGeometry) -> Pose:
    """Inverse of model_to_source."""
    return _scale_pose(
        pose,
        CoordinateSpace.SOURCE,
        CoordinateSpace.MODEL,
        1.0 / geometry.scale_x,
        1.0 / geometry.scale_y,
    )


def source_to_display(pose: Pose, geometry: FrameGeometry, display: DisplaySize) -> Pose:
    """Map a SOURCE-space pose onto the display surface."""
    sx, sy = display_scale(geometry, display)
    return _scale_pose(pose, CoordinateSpace.SOURCE, CoordinateSpace.DISPLAY, sx, sy)


def display_to_source(pose: Pose, geometry: FrameGeometry, display: DisplaySize) -> Pose:
    """Inverse of source_to_display."""
    sx, sy = display_scale(geometry, display)
    return _scale_pose(
        pose, CoordinateSpace.DISPLAY, CoordinateSpace.SOURCE, 1.0 / sx, 1.0 / sy
    )


def model_to_display(pose: Pose, geometry: FrameGeometry, display: DisplaySize) -> Pose:
    """
    Map a MODEL-space pose straight onto the display.

    The two scale factors are composed first (display / target_size) so each
    coordinate is multiplied only once.
    """
    sx = display.width / geometry.target_size
    sy = display.height / geometry.target_size
    return _scale_pose(pose, CoordinateSpace.MODEL, CoordinateSpace.DISPLAY, sx, sy)
