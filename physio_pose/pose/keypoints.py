#!/usr/bin/env python3
"""
Keypoint and pose types for the 17-point COCO layout.

Every keypoint carries the coordinate space it was last mapped into, so a pose
is never ambiguous about whether it holds model, source or display pixels.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Sequence

import numpy as np

# Canonical keypoint order (COCO / MoveNet / YOLO-pose)
KEYPOINT_NAMES = (
    "nose",
    "left_eye",
    "right_eye",
    "left_ear",
    "right_ear",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
)

KEYPOINT_INDEX = {name: idx for idx, name in enumerate(KEYPOINT_NAMES)}

NUM_KEYPOINTS = len(KEYPOINT_NAMES)

# Skeleton connections used for overlays
CONNECTIONS = [
    ("left_shoulder", "right_shoulder"),
    ("left_shoulder", "left_elbow"),
    ("left_elbow", "left_wrist"),
    ("right_shoulder", "right_elbow"),
    ("right_elbow", "right_wrist"),
    ("left_shoulder", "left_hip"),
    ("right_shoulder", "right_hip"),
    ("left_hip", "right_hip"),
    ("left_hip", "left_knee"),
    ("left_knee", "left_ankle"),
    ("right_hip", "right_knee"),
    ("right_knee", "right_ankle"),
    ("left_shoulder", "left_ear"),
    ("right_shoulder", "right_ear"),
    ("left_ear", "nose"),
    ("right_ear", "nose"),
]


class CoordinateSpace(str, Enum):
    """Pixel grid a keypoint position refers to."""

    MODEL = "model"
    SOURCE = "source"
    DISPLAY = "display"


@dataclass(frozen=True)
class Keypoint:
    """A single named 2D landmark with a confidence score in [0, 1]."""

    name: str
    x: float
    y: float
    score: float
    space: CoordinateSpace = CoordinateSpace.MODEL

    def __post_init__(self):
        if self.name not in KEYPOINT_INDEX:
            raise ValueError(f"Unknown keypoint name: {self.name}")
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Keypoint score out of range [0, 1]: {self.score}")

    def moved(self, x: float, y: float, space: CoordinateSpace) -> "Keypoint":
        """Return a copy at a new position in the given space."""
        return replace(self, x=float(x), y=float(y), space=space)


@dataclass(frozen=True)
class Pose:
    """
    Immutable snapshot of all 17 keypoints for one subject in one frame.

    Keypoints are stored in canonical order and share a single coordinate space.
    `score` is the mean of all keypoint scores.
    """

    keypoints: tuple[Keypoint, ...]
    score: float

    def __post_init__(self):
        if len(self.keypoints) != NUM_KEYPOINTS:
            raise ValueError(
                f"Pose needs {NUM_KEYPOINTS} keypoints, got {len(self.keypoints)}"
            )
        for idx, kp in enumerate(self.keypoints):
            if kp.name != KEYPOINT_NAMES[idx]:
                raise ValueError(
                    f"Keypoint {idx} should be {KEYPOINT_NAMES[idx]}, got {kp.name}"
                )
        spaces = {kp.space for kp in self.keypoints}
        if len(spaces) != 1:
            raise ValueError(f"Pose mixes coordinate spaces: {sorted(spaces)}")

    @classmethod
    def from_keypoints(cls, keypoints: Iterable[Keypoint]) -> "Pose":
        """Build a pose and derive its overall score."""
        kpts = tuple(keypoints)
        score = sum(kp.score for kp in kpts) / len(kpts) if kpts else 0.0
        return cls(keypoints=kpts, score=float(score))

    @classmethod
    def from_estimates(
        cls,
        estimates: Iterable[Sequence[float]],
        space: CoordinateSpace = CoordinateSpace.MODEL,
    ) -> "Pose":
        """
        Build a pose from raw (index, x, y, score) tuples.

        Indices outside the canonical range are ignored. Keypoints the estimator
        did not report, or reported with a NaN or infinite value, are filled in
        at the origin with zero score. Scores are clipped into [0, 1].
        """
        slots: list[Keypoint | None] = [None] * NUM_KEYPOINTS
        for idx, x, y, score in estimates:
            idx = int(idx)
            if not 0 <= idx < NUM_KEYPOINTS:
                continue
            x, y, score = float(x), float(y), float(score)
            if not (np.isfinite(x) and np.isfinite(y) and np.isfinite(score)):
                # Treated like a keypoint the estimator did not report
                continue
            slots[idx] = Keypoint(
                name=KEYPOINT_NAMES[idx],
                x=x,
                y=y,
                score=float(np.clip(score, 0.0, 1.0)),
                space=space,
            )

        kpts = [
            kp if kp is not None else Keypoint(KEYPOINT_NAMES[i], 0.0, 0.0, 0.0, space)
            for i, kp in enumerate(slots)
        ]
        return cls.from_keypoints(kpts)

    @property
    def space(self) -> CoordinateSpace:
        return self.keypoints[0].space

    def get(self, name: str) -> Keypoint:
        """Look up a keypoint by canonical name."""
        return self.keypoints[KEYPOINT_INDEX[name]]

    def to_array(self) -> np.ndarray:
        """Return keypoints as a (17, 3) array of (x, y, score)."""
        return np.array([[kp.x, kp.y, kp.score] for kp in self.keypoints], dtype=float)


@dataclass(frozen=True)
class SideAngles:
    """
    Per-side joint angle in degrees.

    None means the keypoints for that side were not confident enough on this
    frame. It is not a zero measurement.
    """

    left: float | None = None
    right: float | None = None

    def get(self, side: str) -> float | None:
        if side == "left":
            return self.left
        if side == "right":
            return self.right
        raise ValueError(f"Unknown side: {side}")


ShoulderAngles = SideAngles
